"""
Pairing Manager：Round 2 配對與 Round 3 配對選項分配

職責：
1. 建立配對（同 track、都已進入 Round 2、每隊最多一個配對）
2. 刪除配對（cascade 重設兩隊的 OptionSet）
3. 列出已配對 / 未配對隊伍（給管理員手動配對用）
4. 分配 Round 3 共用選項，並決定優先隊伍
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Sequence, Tuple
import logging

from models import (
    AssignmentMode,
    OptionSet,
    Pairing,
    PairingMember,
    Subtask,
    Team,
    team_round_access,
    utcnow,
)
from core.exceptions import (
    DuplicatePair,
    InvalidAllocation,
    NotPairedSelectionRound,
    NotPairingRound,
    NotShortlisted,
    OptionNotFound,
    PairingNotFound,
    SelfPair,
    TrackMismatch,
)
from core.allocation_manager import normalize_options
from core.locks import reset_option_sets, with_option_set_lock, with_pairing_lock
from core.round_registry import RoundRegistry
from services.priority_service import resolve_priority_team
from services.round_policy_service import (
    PAIRING_ROUND,
    PAIRED_SELECTION_ROUND,
    is_paired_selection_round,
    is_pairing_round,
    is_shortlisted,
)
from database import transactional

logger = logging.getLogger(__name__)


def make_pair_key(team_a_id: str, team_b_id: str) -> str:
    """排序後串接，(A,B) 和 (B,A) 得到同一個 key"""
    first, second = sorted([str(team_a_id), str(team_b_id)])
    return f"{first}:{second}"


class PairingManager:
    """配對生命週期管理器"""

    @staticmethod
    @transactional
    def create_pairing(db: Session, round_id: str, team_a_id: str, team_b_id: str) -> Pairing:
        """
        建立配對

        前置條件：
        1. 兩隊不同
        2. Round 必須是配對回合（Round 2）
        3. 兩隊都已被 shortlist 進 Round 2
        4. 兩隊同一個 track
        5. 這組配對不存在，且兩隊都還沒有其他配對

        異常：
            SelfPair / NotPairingRound / NotShortlisted / TrackMismatch
            DuplicatePair: 409，重複配對或其中一隊已經有配對
            RoundNotFound / TeamNotFound

        注意：
            - 建立配對不會產生 OptionSet，那是 allocate_pair_options 的工作
        """
        if team_a_id == team_b_id:
            raise SelfPair()

        round_obj = RoundRegistry.get_round_by_id(db, round_id)
        if not is_pairing_round(round_obj.round_number):
            raise NotPairingRound()

        team_a = RoundRegistry.get_team(db, team_a_id)
        team_b = RoundRegistry.get_team(db, team_b_id)

        if not is_shortlisted(team_a, round_id) or not is_shortlisted(team_b, round_id):
            raise NotShortlisted()

        if not team_a.track_id or team_a.track_id != team_b.track_id:
            raise TrackMismatch()

        pair_key = make_pair_key(team_a_id, team_b_id)
        existing = db.query(Pairing.id).filter(
            Pairing.round_anchor_id == round_id,
            Pairing.pair_key == pair_key
        ).first()
        if existing:
            raise DuplicatePair()

        already_paired = db.query(PairingMember.team_id).filter(
            PairingMember.round_anchor_id == round_id,
            PairingMember.team_id.in_([team_a_id, team_b_id])
        ).all()
        if already_paired:
            raise DuplicatePair("One or both teams are already paired")

        pairing = Pairing(
            round_anchor_id=round_id,
            track_id=team_a.track_id,
            team_a_id=team_a_id,
            team_b_id=team_b_id,
            pair_key=pair_key,
        )
        pairing.members = [
            PairingMember(round_anchor_id=round_id, team_id=team_a_id),
            PairingMember(round_anchor_id=round_id, team_id=team_b_id),
        ]
        db.add(pairing)

        try:
            db.flush()
        except IntegrityError:
            # 並發建立時由 unique constraint 擋下
            raise DuplicatePair("One or both teams are already paired, or this pair already exists")

        logger.info(f"Created pairing {pairing.id} ({pair_key}) in round {round_obj.round_number}")
        return pairing

    @staticmethod
    @transactional
    def delete_pairing(db: Session, round_id: str, pairing_id: str) -> int:
        """
        刪除配對，並把兩隊的 OptionSet 重設為乾淨的 team mode

        重設範圍：
        - 帶有這個 pair_id 的所有 OptionSet
        - 兩隊在 Round 3 的 OptionSet

        返回：
            被重設的 OptionSet 數量

        異常：
            NotPairingRound: Round 不是配對回合
            PairingNotFound: 配對不存在或不屬於這個 Round
        """
        round_obj = RoundRegistry.get_round_by_id(db, round_id)
        if not is_pairing_round(round_obj.round_number):
            raise NotPairingRound("Pair deletion is only available for Round 2")

        pairing = with_pairing_lock(pairing_id, round_id, db).first()
        if not pairing:
            raise PairingNotFound("Pair not found")

        team_ids = pairing.team_ids
        db.delete(pairing)
        db.flush()

        paired_round = RoundRegistry.get_round_by_number(db, PAIRED_SELECTION_ROUND)
        reset_count = reset_option_sets(
            db,
            team_ids,
            round_id=paired_round.id if paired_round is not None else None,
            pair_id=pairing_id,
        )

        logger.info(
            f"Deleted pairing {pairing_id} and reset {reset_count} OptionSet row(s) "
            f"for teams {team_ids}"
        )
        return reset_count

    @staticmethod
    def list_pairing_state(db: Session, round_id: str) -> Dict[str, Any]:
        """
        列出配對狀態

        返回：
            {
                "paired": [...],
                "unpaired_by_track": {track_name: [...]},
                "shortlisted_count": int,
                "paired_count": int,
                "validation": {"odd_shortlist_count": bool, "unpaired_count": int},
            }

        注意：
            - shortlist 人數為奇數只是提示，不是錯誤
        """
        round_obj = RoundRegistry.get_round_by_id(db, round_id)
        if not is_pairing_round(round_obj.round_number):
            raise NotPairingRound()

        shortlisted_teams = (
            db.query(Team)
            .join(team_round_access, team_round_access.c.team_id == Team.id)
            .filter(team_round_access.c.round_id == round_id)
            .order_by(Team.team_name)
            .all()
        )
        pairings = (
            db.query(Pairing)
            .filter(Pairing.round_anchor_id == round_id)
            .order_by(Pairing.created_at)
            .all()
        )

        paired_team_ids = set()
        paired: List[Dict[str, Any]] = []
        for pairing in pairings:
            paired_team_ids.update(pairing.team_ids)
            paired.append({
                "id": pairing.id,
                "track": pairing.track.name if pairing.track else "Unassigned",
                "track_id": pairing.track_id,
                "team_a": {"id": pairing.team_a_id, "team_name": pairing.team_a.team_name if pairing.team_a else "-"},
                "team_b": {"id": pairing.team_b_id, "team_name": pairing.team_b.team_name if pairing.team_b else "-"},
                "created_at": pairing.created_at,
            })

        unpaired_by_track: Dict[str, List[Dict[str, Any]]] = {}
        for team in shortlisted_teams:
            if team.id in paired_team_ids:
                continue
            track_name = team.track.name if team.track else "Unassigned"
            unpaired_by_track.setdefault(track_name, []).append({
                "id": team.id,
                "team_name": team.team_name,
                "track": track_name,
                "track_id": team.track_id,
            })

        return {
            "paired": paired,
            "unpaired_by_track": unpaired_by_track,
            "shortlisted_count": len(shortlisted_teams),
            "paired_count": len(paired),
            "validation": {
                "odd_shortlist_count": len(shortlisted_teams) % 2 != 0,
                "unpaired_count": sum(len(teams) for teams in unpaired_by_track.values()),
            },
        }

    @staticmethod
    @transactional
    def allocate_pair_options(
        db: Session,
        round_id: str,
        allocations: Sequence[Tuple[str, Sequence[str]]],
    ) -> int:
        """
        分配 Round 3 的共用選項給配對

        流程（每一筆）：
        1. 選項去重，必須剛好 2 個
        2. 找到 Round 2 的配對
        3. 依 Round 1 + Round 2 分數決定優先隊伍
        4. 兩隊的 OptionSet 寫入同一組選項、pair 欄位、published_at

        同一配對、同一組選項重新分配時，保留既有的選擇與 published_at
        （不重設決策時間，也不讓隊伍失去進度）

        參數：
            allocations: [(pairing_id, [option_1, option_2]), ...]

        返回：
            處理的配對數
        """
        round_obj = RoundRegistry.get_round_by_id(db, round_id)
        if not is_paired_selection_round(round_obj.round_number):
            raise NotPairedSelectionRound()

        if not allocations:
            raise InvalidAllocation("allocations must be a non-empty list")

        anchor_round = RoundRegistry.get_round_by_number(db, PAIRING_ROUND)
        if anchor_round is None:
            raise PairingNotFound("Pairing round does not exist")

        now = utcnow()
        for pairing_id, option_ids in allocations:
            options = normalize_options(option_ids)
            if len(options) != 2:
                raise InvalidAllocation(f"Pair {pairing_id} needs exactly 2 distinct subtasks")

            found = {row[0] for row in db.query(Subtask.id).filter(Subtask.id.in_(options)).all()}
            for option_id in options:
                if option_id not in found:
                    raise OptionNotFound(option_id)

            pairing = with_pairing_lock(pairing_id, anchor_round.id, db).first()
            if not pairing:
                raise PairingNotFound(f"Pair {pairing_id} not found")

            resolution = resolve_priority_team(pairing.team_a_id, pairing.team_b_id, db)
            logger.info(
                f"Pair {pairing_id}: priority team {resolution.priority_team_id} "
                f"({resolution.priority_totals.total}) over {resolution.paired_team_id} "
                f"({resolution.paired_totals.total}), decided by {resolution.reason}"
            )

            rows = {}
            for team_id in pairing.team_ids:
                row = with_option_set_lock(team_id, round_id, db).first()
                if row is None:
                    row = OptionSet(team_id=team_id, round_id=round_id)
                    db.add(row)
                rows[team_id] = row

            unchanged = all(
                row.assignment_mode == AssignmentMode.PAIR
                and row.pair_id == pairing.id
                and row.priority_team_id == resolution.priority_team_id
                and set(row.options or []) == set(options)
                for row in rows.values()
            )

            for row in rows.values():
                row.assignment_mode = AssignmentMode.PAIR
                row.pair_id = pairing.id
                row.priority_team_id = resolution.priority_team_id
                row.paired_team_id = resolution.paired_team_id
                if unchanged:
                    continue
                row.options = list(options)
                row.published_at = now
                row.selected_id = None
                row.selected_at = None
                row.auto_assigned = False

            db.flush()

        logger.info(f"Allocated pair options for {len(allocations)} pair(s) in round {round_obj.round_number}")
        return len(allocations)
