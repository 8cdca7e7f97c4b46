"""
Allocation Manager：Round 1 / Round 2 的 team-level 選項分配

每隊各自拿到兩個 subtask 選項，之後由隊伍自己選一個。
分配本身不會設定 selected（那是隊伍的選擇）。
"""
from sqlalchemy.orm import Session
from typing import Iterable, List, Sequence, Tuple
import logging

from models import AssignmentMode, OptionSet, Subtask, Team
from core.exceptions import (
    InvalidAllocation,
    NotTeamAllocationRound,
    OptionNotFound,
    TeamNotFound,
)
from core.locks import with_option_set_lock
from core.round_registry import RoundRegistry
from services.round_policy_service import is_team_allocation_round
from database import transactional

logger = logging.getLogger(__name__)


def normalize_options(option_ids: Iterable[str]) -> List[str]:
    """去除空值與重複（保留順序），最多 2 個"""
    normalized: List[str] = []
    for option_id in option_ids or []:
        if option_id and option_id not in normalized:
            normalized.append(option_id)
    return normalized[:2]


class AllocationManager:
    """Team-level 選項分配"""

    @staticmethod
    @transactional
    def allocate_team_options(
        db: Session,
        round_id: str,
        allocations: Sequence[Tuple[str, Sequence[str]]],
    ) -> int:
        """
        批次分配選項給隊伍（只限 Round 1、Round 2）

        流程（每一筆）：
        1. 選項去重、最多 2 個
        2. 既有的 selected 若仍在新選項內就保留，否則清掉
        3. 強制 assignment_mode=team，清除所有配對欄位
        4. 依 (team, round) upsert

        參數：
            db: SQLAlchemy Session
            round_id: Round id
            allocations: [(team_id, [option_a, option_b]), ...]

        返回：
            處理的筆數

        異常：
            RoundNotFound: Round 不存在
            NotTeamAllocationRound: 不是 Round 1 或 Round 2
            InvalidAllocation: allocations 為空
            TeamNotFound / OptionNotFound: id 不存在
        """
        round_obj = RoundRegistry.get_round_by_id(db, round_id)
        if not is_team_allocation_round(round_obj.round_number):
            raise NotTeamAllocationRound()

        if not allocations:
            raise InvalidAllocation("allocations must be a non-empty list")

        normalized = [(team_id, normalize_options(option_ids)) for team_id, option_ids in allocations]
        AllocationManager._validate_ids(db, normalized)

        for team_id, options in normalized:
            option_set = with_option_set_lock(team_id, round_id, db).first()
            if option_set is None:
                option_set = OptionSet(team_id=team_id, round_id=round_id)
                db.add(option_set)

            keep_selection = option_set.selected_id is not None and option_set.selected_id in options
            if not keep_selection:
                if option_set.selected_id is not None:
                    logger.info(
                        f"Clearing selection {option_set.selected_id} for team {team_id} "
                        f"in round {round_obj.round_number}: no longer offered"
                    )
                option_set.selected_id = None
                option_set.selected_at = None

            option_set.options = list(options)
            option_set.assignment_mode = AssignmentMode.TEAM
            option_set.pair_id = None
            option_set.priority_team_id = None
            option_set.paired_team_id = None
            option_set.published_at = None
            option_set.auto_assigned = False
            # 同一批次可能重複出現同一隊，逐筆 flush 讓下一次查詢看得到
            db.flush()

        logger.info(f"Allocated team options for {len(normalized)} team(s) in round {round_obj.round_number}")
        return len(normalized)

    @staticmethod
    def _validate_ids(db: Session, normalized: List[Tuple[str, List[str]]]) -> None:
        team_ids = {team_id for team_id, _ in normalized}
        found_teams = {row[0] for row in db.query(Team.id).filter(Team.id.in_(team_ids)).all()}
        for team_id in team_ids - found_teams:
            raise TeamNotFound(team_id)

        option_ids = {option_id for _, options in normalized for option_id in options}
        if option_ids:
            found_options = {
                row[0] for row in db.query(Subtask.id).filter(Subtask.id.in_(option_ids)).all()
            }
            for option_id in option_ids - found_options:
                raise OptionNotFound(option_id)
