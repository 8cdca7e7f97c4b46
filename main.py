from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, SessionLocal, engine, settings
from api import admin, rounds
from core.round_registry import RoundRegistry

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        configured = [r.round_number for r in RoundRegistry.list_rounds(db)]
    finally:
        db.close()
    logger.info(
        f"Round engine started: rounds={configured or 'none'}, "
        f"decision window={settings.decision_window_minutes} min"
    )
    yield


app = FastAPI(
    title="Round Engine API",
    description="Multi-round subtask allocation, pairing and selection for team contests",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin.router)
app.include_router(rounds.router)


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
