"""
Selection Manager：隊伍選擇 subtask 的狀態機

狀態：UNASSIGNED（沒有選項）-> OFFERED（有選項、未選）-> FINALIZED（已選）

- UNASSIGNED -> OFFERED：只能由 AllocationManager / PairingManager 分配
- OFFERED -> FINALIZED：隊伍選擇，或 Round 3 的自動分配
- FINALIZED：不能再改（不能反悔）

Round 3 配對：只有優先隊伍能選，選完後另一個選項立即寫給配對隊伍
"""
from datetime import datetime
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
import logging

from models import AssignmentMode, OptionSet, Round, utcnow
from core.exceptions import (
    AlreadyFinalized,
    NoOptionsAssigned,
    NoSelectionInRound,
    NotPriorityTeam,
    OptionNotOffered,
    RoundAccessDenied,
    RoundInactive,
    WaitingForPriority,
)
from core.locks import finalize_if_unselected
from core.round_registry import RoundRegistry
from core.timeout_resolver import TimeoutResolver, decision_window
from services.round_policy_service import get_round_role, is_no_selection_round
from database import transactional

logger = logging.getLogger(__name__)


class SelectionManager:
    """隊伍選擇管理器"""

    @staticmethod
    @transactional
    def get_option_set(
        db: Session,
        team_id: str,
        round_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[OptionSet]:
        """
        取得隊伍在某回合的 OptionSet

        pair-mode 會先執行 TimeoutResolver（讀取的副作用：可能完成自動分配）

        返回：
            OptionSet，沒有分配過時為 None
        """
        RoundRegistry.get_round_by_id(db, round_id)
        return TimeoutResolver.resolve_pair_timeout(db, round_id, team_id, now=now)

    @staticmethod
    @transactional
    def select_option(
        db: Session,
        team_id: str,
        round_id: str,
        option_id: str,
        now: Optional[datetime] = None,
    ) -> OptionSet:
        """
        隊伍選擇一個 subtask

        檢查順序：
        1. Round 存在、進行中、不是 Round 4
        2. 隊伍可進入這個回合
        3. 已分配選項
        4. team mode：還沒選過
           pair mode：先跑 TimeoutResolver 並提交結果，再檢查是否為優先隊伍，
           最後才檢查優先隊伍是否已選過
        5. 選項必須在分配的選項內

        並發：
            寫入使用條件更新。如果同一時間 timeout 已經幫隊伍分配，
            這次請求視為成功的 no-op，回傳目前的狀態（不報錯）

        異常：
            RoundNotFound / TeamNotFound
            RoundInactive / NoSelectionInRound / RoundAccessDenied
            NoOptionsAssigned / AlreadyFinalized / WaitingForPriority
            NotPriorityTeam / OptionNotOffered
        """
        now = now or utcnow()
        round_obj = RoundRegistry.get_round_by_id(db, round_id)

        if not round_obj.is_active:
            raise RoundInactive()
        if is_no_selection_round(round_obj.round_number):
            raise NoSelectionInRound()

        team = RoundRegistry.get_team(db, team_id)
        if not RoundRegistry.team_can_access(db, team, round_obj):
            raise RoundAccessDenied()

        option_set = TimeoutResolver.resolve_pair_timeout(db, round_id, team_id, now=now)
        # 自動分配的結果先提交，後面的檢查拋出異常時才不會被 rollback 掉
        db.commit()
        if option_set is None or not option_set.options:
            raise NoOptionsAssigned()

        if option_set.assignment_mode == AssignmentMode.PAIR:
            return SelectionManager._select_as_pair(db, option_set, round_obj, option_id, now)

        if option_set.selected_id is not None:
            raise AlreadyFinalized()
        if option_id not in option_set.options:
            raise OptionNotOffered()

        won = finalize_if_unselected(db, round_id, team_id, option_id, now, auto_assigned=False)
        if won:
            logger.info(f"Team {team_id} selected {option_id} in round {round_obj.round_number}")
        else:
            logger.warning(f"Team {team_id} lost selection race in round {round_obj.round_number}")
        return SelectionManager._reload(db, team_id, round_id)

    @staticmethod
    def _select_as_pair(
        db: Session,
        option_set: OptionSet,
        round_obj: Round,
        option_id: str,
        now: datetime,
    ) -> OptionSet:
        team_id = option_set.team_id
        round_id = round_obj.id

        # 配對隊伍的列只由系統寫入，不看它是否已經有值
        if team_id != option_set.priority_team_id:
            priority_row = SelectionManager._reload(db, option_set.priority_team_id, round_id)
            if priority_row is None or priority_row.selected_id is None:
                raise WaitingForPriority()
            raise NotPriorityTeam()

        if option_set.selected_id is not None:
            raise AlreadyFinalized()

        if option_id not in option_set.options:
            raise OptionNotOffered()

        won = finalize_if_unselected(db, round_id, team_id, option_id, now, auto_assigned=False)
        if won:
            logger.info(
                f"Priority team {team_id} selected {option_id} in round {round_obj.round_number} "
                f"(pair {option_set.pair_id})"
            )
        else:
            logger.warning(
                f"Priority team {team_id} lost selection race to timeout for pair {option_set.pair_id}"
            )

        # 同一個 transaction 內把另一個選項寫給配對隊伍
        TimeoutResolver.resolve_pair_timeout(db, round_id, team_id, now=now)
        return SelectionManager._reload(db, team_id, round_id)

    @staticmethod
    def _reload(db: Session, team_id: str, round_id: str) -> Optional[OptionSet]:
        return db.query(OptionSet).filter(
            OptionSet.team_id == team_id,
            OptionSet.round_id == round_id
        ).first()

    @staticmethod
    def get_decision_deadline(option_set: OptionSet) -> Optional[datetime]:
        """優先隊伍的決策截止時間（只有 pair mode 有）"""
        if option_set is None or option_set.assignment_mode != AssignmentMode.PAIR:
            return None
        if option_set.published_at is None:
            return None
        return option_set.published_at + decision_window()

    @staticmethod
    @transactional
    def get_team_selection_history(
        db: Session,
        team_id: str,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        取得隊伍每一輪的選項紀錄（依回合數排序）

        每一筆包含分配的選項、選擇結果、以及配對資訊，
        讓前端不需要自己組合。pair-mode 的列會先跑 TimeoutResolver。
        """
        RoundRegistry.get_team(db, team_id)
        rows = (
            db.query(OptionSet, Round.round_number)
            .join(Round, OptionSet.round_id == Round.id)
            .filter(OptionSet.team_id == team_id)
            .order_by(Round.round_number)
            .all()
        )
        targets = [(row.round_id, round_number) for row, round_number in rows]

        history: List[Dict[str, Any]] = []
        for round_id, round_number in targets:
            option_set = TimeoutResolver.resolve_pair_timeout(db, round_id, team_id, now=now)
            entry: Dict[str, Any] = {
                "round_number": round_number,
                "role": get_round_role(round_number).value,
                "state": option_set.state.value,
                "options": list(option_set.options or []),
                "selected": option_set.selected_id,
                "selected_at": option_set.selected_at,
                "auto_assigned": option_set.auto_assigned,
            }
            if option_set.assignment_mode == AssignmentMode.PAIR:
                entry["pair_id"] = option_set.pair_id
                entry["priority_team_id"] = option_set.priority_team_id
                entry["is_priority_team"] = option_set.priority_team_id == team_id
            history.append(entry)

        return history
