"""
Round Registry：回合與隊伍的查詢

職責：
1. 依 id / 回合數取得 Round
2. 取得 Team
3. 計算隊伍可進入的回合（推導，不寫回資料庫）

回合角色的判斷（TEAM / PAIR / NO_SELECTION）放在 services.round_policy_service
"""
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from models import Round, Team
from core.exceptions import RoundNotFound, TeamNotFound
from services.round_policy_service import (
    can_access_round,
    get_effective_accessible_round_ids,
)

logger = logging.getLogger(__name__)


class RoundRegistry:
    """回合查詢與存取權判斷"""

    @staticmethod
    def list_rounds(db: Session) -> List[Round]:
        return db.query(Round).order_by(Round.round_number).all()

    @staticmethod
    def get_round_by_id(db: Session, round_id: str) -> Round:
        """
        透過 id 取得 Round

        異常：
            RoundNotFound: Round 不存在
        """
        round_obj = db.query(Round).filter(Round.id == round_id).first()
        if not round_obj:
            raise RoundNotFound(round_id)
        return round_obj

    @staticmethod
    def get_round_by_number(db: Session, round_number: int) -> Optional[Round]:
        return db.query(Round).filter(Round.round_number == round_number).first()

    @staticmethod
    def get_team(db: Session, team_id: str) -> Team:
        team = db.query(Team).filter(Team.id == team_id).first()
        if not team:
            raise TeamNotFound(team_id)
        return team

    @staticmethod
    def get_accessible_rounds(db: Session, team_id: str) -> List[Round]:
        """
        取得隊伍可進入的所有回合（依回合數排序）

        包含 Round 1 進行中、明確授權、以及 Round 2 授權推導出的 Round 3/4
        """
        team = RoundRegistry.get_team(db, team_id)
        rounds = RoundRegistry.list_rounds(db)
        accessible = get_effective_accessible_round_ids(team, rounds)
        return [r for r in rounds if r.id in accessible]

    @staticmethod
    def team_can_access(db: Session, team: Team, round_obj: Round) -> bool:
        return can_access_round(team, round_obj, RoundRegistry.list_rounds(db))
