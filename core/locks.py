"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

兩種工具：
1. 悲觀鎖：SELECT ... FOR UPDATE（管理員操作，例如刪除配對）
2. 條件更新（compare-and-set）：UPDATE ... WHERE selected_id IS NULL
   隊伍自己選擇和 timeout 自動分配會同時寫同一列，所有寫入 selected 的動作都必須走這裡
"""
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session, Query

from models import AssignmentMode, OptionSet, Pairing


def with_pairing_lock(pairing_id: str, round_anchor_id: str, db: Session) -> Query:
    """
    鎖定一個 Pairing（行級鎖）

    使用場景：
    - 刪除配對並重設兩隊 OptionSet 時
    - 分配配對選項時（避免同時被刪除）

    範例：
        pairing = with_pairing_lock(pairing_id, round_id, db).first()
        if not pairing:
            raise PairingNotFound()

    注意：
        - SQLite 會忽略 FOR UPDATE，PostgreSQL 才會真正上鎖
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Pairing).filter(
        Pairing.id == pairing_id,
        Pairing.round_anchor_id == round_anchor_id
    ).with_for_update(nowait=False)


def with_option_set_lock(team_id: str, round_id: str, db: Session) -> Query:
    """鎖定一隊在某回合的 OptionSet（allocation upsert 時使用）"""
    return db.query(OptionSet).filter(
        OptionSet.team_id == team_id,
        OptionSet.round_id == round_id
    ).with_for_update(nowait=False)


def finalize_if_unselected(
    db: Session,
    round_id: str,
    team_id: str,
    option_id: str,
    selected_at: datetime,
    auto_assigned: bool = False,
) -> bool:
    """
    條件更新：只有 selected_id 仍為 NULL 時才寫入

    這是整個系統唯一的並發危險點：隊伍自己選擇的同時，timeout 可能也在幫它分配。
    兩邊都只能透過這個函式寫入，資料庫保證只有一個成功。

    參數：
        db: SQLAlchemy Session
        round_id / team_id: 目標 OptionSet
        option_id: 要寫入的 subtask id
        selected_at: 寫入時間
        auto_assigned: 是否為自動分配

    返回：
        True 如果這次寫入成功，False 如果已經被別人寫過（輸掉競爭，不算錯誤）

    注意：
        - 寫入前先 flush，確保 session 內的變更已送到資料庫
        - 寫入後 expire 所有物件，讓後續讀取拿到最新狀態
    """
    db.flush()
    result = db.execute(
        update(OptionSet)
        .where(
            OptionSet.round_id == round_id,
            OptionSet.team_id == team_id,
            OptionSet.selected_id.is_(None),
        )
        .values(
            selected_id=option_id,
            selected_at=selected_at,
            auto_assigned=auto_assigned,
        )
        .execution_options(synchronize_session=False)
    )
    db.expire_all()
    return result.rowcount == 1


def reset_option_sets(
    db: Session,
    team_ids: Iterable[str],
    round_id: Optional[str] = None,
    pair_id: Optional[str] = None,
) -> int:
    """
    把 OptionSet 重設為乾淨的 team mode（刪除配對時的 cascade）

    條件：team_id 在 team_ids 內，且（round_id 相符 或 pair_id 相符）

    返回：
        被重設的列數
    """
    team_ids = list(team_ids)
    scope = []
    if round_id is not None:
        scope.append(OptionSet.round_id == round_id)
    if pair_id is not None:
        scope.append(OptionSet.pair_id == pair_id)
    if not scope:
        raise ValueError("reset_option_sets requires round_id or pair_id")

    db.flush()
    result = db.execute(
        update(OptionSet)
        .where(OptionSet.team_id.in_(team_ids), or_(*scope))
        .values(
            assignment_mode=AssignmentMode.TEAM,
            pair_id=None,
            priority_team_id=None,
            paired_team_id=None,
            published_at=None,
            auto_assigned=False,
            selected_id=None,
            selected_at=None,
            options=[],
        )
        .execution_options(synchronize_session=False)
    )
    db.expire_all()
    return result.rowcount
