from datetime import timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
from typing import List
import logging

from core.exceptions import RoundEngineException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    引擎設定，環境變數前綴 ROUND_ENGINE_

    例如 ROUND_ENGINE_DECISION_WINDOW_MINUTES=10
    """
    model_config = SettingsConfigDict(env_prefix="ROUND_ENGINE_", env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./round_engine.db"
    # Round 3 優先隊伍的決策時間（分鐘），超過後兩邊自動分配
    decision_window_minutes: int = 15
    # SQLite 等待寫入鎖的秒數，兩個請求同時 finalize 時會用到
    sqlite_busy_timeout: int = 30
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @property
    def decision_window(self) -> timedelta:
        return timedelta(minutes=self.decision_window_minutes)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 要關掉 check_same_thread，FastAPI 會在 threadpool 裡使用 session
engine = create_engine(
    settings.database_url,
    connect_args={
        "check_same_thread": False,
        "timeout": settings.sqlite_busy_timeout,
    } if settings.is_sqlite else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency：每個請求一個 session，結束後關閉"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：一個 Manager 操作 = 一個 transaction

    使用方式：
        @staticmethod
        @transactional
        def allocate_team_options(db: Session, round_id, allocations):
            ...  # 一般不需要自己 commit

    行為：
        - 正常返回：commit
        - 業務異常（RoundEngineException）：rollback，記 warning，重新拋出
        - 其他異常：rollback，記 error + traceback，重新拋出

    注意：
        - 被 decorate 的函式之間不要互相呼叫，內層 commit 會提早提交外層的寫入
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = args[0] if args and isinstance(args[0], Session) else kwargs.get("db")
        if db is None:
            raise ValueError(f"@transactional requires 'db: Session' as first argument of {func.__name__}")

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except RoundEngineException as e:
            logger.warning(f"{func.__name__} rejected: {e.code} {e.message}")
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
