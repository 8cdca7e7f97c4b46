"""
優先權服務：決定配對中哪一隊先選

純計算邏輯，只讀取已存在的分數，不寫入任何狀態
（呼叫者負責把結果寫到 OptionSet）
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Round, Score, ScoreStatus, Submission
from services.round_policy_service import PRIORITY_SCORE_ROUNDS


@dataclass(frozen=True)
class PriorityTotals:
    round1: float
    round2: float

    @property
    def total(self) -> float:
        return self.round1 + self.round2


@dataclass(frozen=True)
class PriorityResolution:
    priority_team_id: str
    paired_team_id: str
    reason: str
    priority_totals: PriorityTotals
    paired_totals: PriorityTotals


def get_team_round_total(team_id: str, round_number: int, db: Session) -> float:
    """
    計算一隊在某回合所有 submission 的「已評分」分數總和

    - 回合不存在或沒有 submission：0
    - status 為 pending 的分數不計入
    """
    round_id: Optional[str] = db.query(Round.id).filter(
        Round.round_number == round_number
    ).scalar()
    if round_id is None:
        return 0.0

    total = (
        db.query(func.coalesce(func.sum(Score.score), 0))
        .join(Submission, Score.submission_id == Submission.id)
        .filter(
            Submission.team_id == team_id,
            Submission.round_id == round_id,
            Score.status == ScoreStatus.SCORED,
        )
        .scalar()
    )
    return float(total or 0)


def get_team_priority_totals(team_id: str, db: Session) -> PriorityTotals:
    first, second = PRIORITY_SCORE_ROUNDS
    return PriorityTotals(
        round1=get_team_round_total(team_id, first, db),
        round2=get_team_round_total(team_id, second, db),
    )


def resolve_priority_from_totals(
    team_a_id: str,
    team_b_id: str,
    totals_a: PriorityTotals,
    totals_b: PriorityTotals,
) -> PriorityResolution:
    """
    比較兩隊累計分數，決定優先隊伍

    規則（依序比較，先分出勝負者為優先隊伍）：
    1. Round 1 + Round 2 總分較高
    2. 同分時，Round 2 分數較高（較近期的表現）
    3. 仍同分時，team id 字典序較小者

    範例：
        A: 42, B: 17 -> A 優先（reason="total"）
        A: 20 (10+10), B: 20 (15+5) -> B 優先（reason="round2"）
    """
    if totals_a.total != totals_b.total:
        a_first = totals_a.total > totals_b.total
        reason = "total"
    elif totals_a.round2 != totals_b.round2:
        a_first = totals_a.round2 > totals_b.round2
        reason = "round2"
    else:
        a_first = team_a_id < team_b_id
        reason = "team_id"

    if a_first:
        return PriorityResolution(team_a_id, team_b_id, reason, totals_a, totals_b)
    return PriorityResolution(team_b_id, team_a_id, reason, totals_b, totals_a)


def resolve_priority_team(team_a_id: str, team_b_id: str, db: Session) -> PriorityResolution:
    return resolve_priority_from_totals(
        team_a_id,
        team_b_id,
        get_team_priority_totals(team_a_id, db),
        get_team_priority_totals(team_b_id, db),
    )
