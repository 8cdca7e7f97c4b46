"""
Timeout / Auto-Assignment Resolver：Round 3 配對的自動分配

每次讀取 pair-mode 的 OptionSet 時呼叫（lazy），也可以由 sweep 整輪掃描，結果相同。

規則（優先隊伍 P、配對隊伍 Q、共用選項 [O1, O2]）：
1. P 已選：Q 只能拿另一個選項，Q 還沒選就寫入（auto_assigned=False）
2. P 未選且超過決策時間：P 拿 O1、Q 拿 O2（auto_assigned=True）
3. 其他情況：不動，等 P 選

所有寫入都是條件更新（selected 仍為 NULL 才寫），重複呼叫不會出錯。
"""
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from models import AssignmentMode, OptionSet, utcnow
from core.exceptions import DataIntegrityError
from core.locks import finalize_if_unselected
from core.round_registry import RoundRegistry
from database import get_settings, transactional

logger = logging.getLogger(__name__)


def decision_window() -> timedelta:
    return get_settings().decision_window


def complement_option(options: List[str], picked: str) -> Optional[str]:
    """兩個選項中，不是 picked 的那一個"""
    remaining = [option_id for option_id in options if option_id != picked]
    return remaining[0] if remaining else None


def is_decision_window_expired(published_at: Optional[datetime], now: datetime) -> bool:
    if published_at is None:
        return False
    return now - published_at >= decision_window()


def _get_option_set(db: Session, round_id: str, team_id: str) -> Optional[OptionSet]:
    return db.query(OptionSet).filter(
        OptionSet.round_id == round_id,
        OptionSet.team_id == team_id
    ).first()


class TimeoutResolver:
    """配對選擇的自動分配"""

    @staticmethod
    def resolve_pair_timeout(
        db: Session,
        round_id: str,
        team_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[OptionSet]:
        """
        把某隊的 pair-mode OptionSet 更新到最新狀態

        參數：
            db: SQLAlchemy Session
            round_id: Round id
            team_id: 被讀取的隊伍（P 或 Q 都可以）
            now: 目前時間（測試用，預設 utcnow()）

        返回：
            更新後的 OptionSet（不存在時為 None）

        異常：
            DataIntegrityError: 配對的另一隊沒有 OptionSet

        注意：
            - 不 commit，由呼叫者的 transaction 處理
        """
        current = _get_option_set(db, round_id, team_id)
        if current is None or current.assignment_mode != AssignmentMode.PAIR:
            return current

        if len(current.options or []) < 2 or not current.priority_team_id or not current.paired_team_id:
            return current

        priority_team_id = current.priority_team_id
        paired_team_id = current.paired_team_id
        priority_row = _get_option_set(db, round_id, priority_team_id)
        paired_row = _get_option_set(db, round_id, paired_team_id)

        if priority_row is None or paired_row is None:
            logger.error(
                f"Pair {current.pair_id} in round {round_id} is missing a sibling OptionSet "
                f"(priority={priority_team_id}, paired={paired_team_id})"
            )
            raise DataIntegrityError(f"Pair {current.pair_id} is missing a sibling OptionSet")

        option1, option2 = list(priority_row.options)[:2]
        now = now or utcnow()

        if priority_row.selected_id is None:
            if not is_decision_window_expired(priority_row.published_at, now):
                return current

            priority_won = finalize_if_unselected(
                db, round_id, priority_team_id, option1, now, auto_assigned=True
            )
            if priority_won:
                finalize_if_unselected(db, round_id, paired_team_id, option2, now, auto_assigned=True)
                logger.info(
                    f"Decision window expired for pair {current.pair_id}: "
                    f"auto-assigned {option1} to {priority_team_id}, {option2} to {paired_team_id}"
                )
            else:
                # 優先隊伍剛好在同一時間自己選了，改成補上另一個選項
                logger.warning(
                    f"Priority team {priority_team_id} selected concurrently with timeout "
                    f"for pair {current.pair_id}; propagating its choice instead"
                )
                TimeoutResolver._propagate_complement(db, round_id, priority_team_id, paired_team_id, now)

        elif paired_row.selected_id is None:
            TimeoutResolver._propagate_complement(db, round_id, priority_team_id, paired_team_id, now)

        return _get_option_set(db, round_id, team_id)

    @staticmethod
    def _propagate_complement(
        db: Session,
        round_id: str,
        priority_team_id: str,
        paired_team_id: str,
        now: datetime,
    ) -> bool:
        """把優先隊伍沒選的那個選項寫給配對隊伍（條件更新）"""
        priority_row = _get_option_set(db, round_id, priority_team_id)
        if priority_row is None or priority_row.selected_id is None:
            return False

        remaining = complement_option(list(priority_row.options), priority_row.selected_id)
        if remaining is None:
            logger.error(
                f"Priority team {priority_team_id} selected {priority_row.selected_id} "
                f"but no complementary option exists in round {round_id}"
            )
            raise DataIntegrityError(f"No complementary option for team {priority_team_id}")

        written = finalize_if_unselected(db, round_id, paired_team_id, remaining, now, auto_assigned=False)
        if written:
            logger.info(f"Propagated option {remaining} to paired team {paired_team_id} in round {round_id}")
        return written

    @staticmethod
    @transactional
    def sweep_round_timeouts(db: Session, round_id: str, now: Optional[datetime] = None) -> int:
        """
        主動掃描整輪所有配對（背景工作或管理員觸發）

        結果和 lazy 讀取完全相同，只是提早發生

        返回：
            這次掃描後從「未完成」變成「兩邊都已選」的配對數
        """
        RoundRegistry.get_round_by_id(db, round_id)
        now = now or utcnow()

        priority_rows = db.query(OptionSet).filter(
            OptionSet.round_id == round_id,
            OptionSet.assignment_mode == AssignmentMode.PAIR,
            OptionSet.team_id == OptionSet.priority_team_id,
        ).all()
        pending = [
            (row.team_id, row.paired_team_id)
            for row in priority_rows
        ]

        resolved = 0
        for priority_team_id, paired_team_id in pending:
            before = _get_option_set(db, round_id, paired_team_id)
            if before is not None and before.selected_id is not None:
                continue
            TimeoutResolver.resolve_pair_timeout(db, round_id, priority_team_id, now=now)
            after = _get_option_set(db, round_id, paired_team_id)
            if after is not None and after.selected_id is not None:
                resolved += 1

        logger.info(f"Timeout sweep for round {round_id} resolved {resolved} pair(s)")
        return resolved
