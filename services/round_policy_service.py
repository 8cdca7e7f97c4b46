"""
回合規則服務：判斷回合的角色與隊伍的存取權

回合設計：
- Round 1-2: TEAM（每隊各自拿到兩個選項）
- Round 2: 同時也是配對回合（anchor round，在這一輪建立配對）
- Round 3: PAIR（兩隊共用兩個選項，依優先權先後選）
- Round 4: NO_SELECTION（不選 subtask）
"""
import enum
from typing import Iterable, Set

ROUND_1 = 1
ROUND_2 = 2
ROUND_3 = 3
ROUND_4 = 4

PAIRING_ROUND = ROUND_2
PAIRED_SELECTION_ROUND = ROUND_3
NO_SELECTION_ROUND = ROUND_4
# 優先權用這兩輪的累計分數決定
PRIORITY_SCORE_ROUNDS = (ROUND_1, ROUND_2)


class RoundRole(str, enum.Enum):
    TEAM = "TEAM"
    PAIR = "PAIR"
    NO_SELECTION = "NO_SELECTION"


def is_round_1(round_number: int) -> bool:
    return round_number == ROUND_1


def is_round_2(round_number: int) -> bool:
    return round_number == ROUND_2


def is_round_3(round_number: int) -> bool:
    return round_number == ROUND_3


def is_round_4(round_number: int) -> bool:
    return round_number == ROUND_4


def get_round_role(round_number: int) -> RoundRole:
    """
    根據回合數決定分配方式

    範例：
        get_round_role(1) -> RoundRole.TEAM
        get_round_role(3) -> RoundRole.PAIR
        get_round_role(4) -> RoundRole.NO_SELECTION
    """
    if round_number == PAIRED_SELECTION_ROUND:
        return RoundRole.PAIR
    elif round_number == NO_SELECTION_ROUND:
        return RoundRole.NO_SELECTION
    else:
        return RoundRole.TEAM


def is_team_allocation_round(round_number: int) -> bool:
    """只有 Round 1 和 Round 2 可以做 team-level allocation"""
    return round_number in [ROUND_1, ROUND_2]


def is_pairing_round(round_number: int) -> bool:
    return round_number == PAIRING_ROUND


def is_paired_selection_round(round_number: int) -> bool:
    return round_number == PAIRED_SELECTION_ROUND


def is_no_selection_round(round_number: int) -> bool:
    return round_number == NO_SELECTION_ROUND


def _granted_round_ids(team) -> Set[str]:
    return {r.id for r in (team.rounds_accessible or [])}


def get_effective_accessible_round_ids(team, rounds: Iterable) -> Set[str]:
    """
    計算隊伍實際可存取的回合（不寫回資料庫）

    規則：
    - 明確授權的回合
    - Round 1 正在進行中時所有隊伍都能進入
    - 被授權 Round 2（配對回合）的隊伍，自動可進入 Round 3 和 Round 4

    參數：
        team: Team（需要 rounds_accessible）
        rounds: 所有 Round

    返回：
        round id 的 set
    """
    rounds = list(rounds)
    granted = _granted_round_ids(team)
    effective = set(granted)

    by_number = {r.round_number: r for r in rounds}
    pairing_round = by_number.get(PAIRING_ROUND)
    cascade = pairing_round is not None and pairing_round.id in granted

    for round_obj in rounds:
        if round_obj.round_number == ROUND_1 and round_obj.is_active:
            effective.add(round_obj.id)
        elif cascade and round_obj.round_number in [ROUND_3, ROUND_4]:
            effective.add(round_obj.id)

    return effective


def can_access_round(team, round_obj, rounds: Iterable) -> bool:
    """
    隊伍是否可以進入某回合

    Round 1：進行中或被明確授權
    其他回合：需要明確授權（Round 3/4 可由 Round 2 的授權推導）
    """
    return round_obj.id in get_effective_accessible_round_ids(team, rounds)


def is_shortlisted(team, round_id: str) -> bool:
    """明確授權（不含推導）。配對時用來檢查兩隊都已進入 Round 2"""
    return round_id in _granted_round_ids(team)
