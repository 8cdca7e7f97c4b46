"""
Round Registry 測試：回合角色判斷與存取權推導
"""
from types import SimpleNamespace

import pytest

from core.exceptions import RoundNotFound, TeamNotFound
from core.round_registry import RoundRegistry
from services.round_policy_service import (
    RoundRole,
    can_access_round,
    get_effective_accessible_round_ids,
    get_round_role,
    is_no_selection_round,
    is_paired_selection_round,
    is_pairing_round,
    is_round_1,
    is_round_2,
    is_round_3,
    is_round_4,
    is_team_allocation_round,
)


def make_round(number, active=False):
    return SimpleNamespace(id=f"r{number}", round_number=number, is_active=active)


def make_team(*granted):
    return SimpleNamespace(rounds_accessible=list(granted))


class TestRoundPredicates:

    def test_round_number_predicates(self):
        assert is_round_1(1) and not is_round_1(2)
        assert is_round_2(2) and not is_round_2(3)
        assert is_round_3(3) and not is_round_3(4)
        assert is_round_4(4) and not is_round_4(1)

    def test_round_roles(self):
        assert get_round_role(1) == RoundRole.TEAM
        assert get_round_role(2) == RoundRole.TEAM
        assert get_round_role(3) == RoundRole.PAIR
        assert get_round_role(4) == RoundRole.NO_SELECTION

    def test_allocation_regimes(self):
        assert is_team_allocation_round(1)
        assert is_team_allocation_round(2)
        assert not is_team_allocation_round(3)
        assert not is_team_allocation_round(4)
        assert is_pairing_round(2) and not is_pairing_round(3)
        assert is_paired_selection_round(3) and not is_paired_selection_round(2)
        assert is_no_selection_round(4) and not is_no_selection_round(3)


class TestRoundAccess:

    def setup_method(self):
        self.r1 = make_round(1, active=True)
        self.r2 = make_round(2)
        self.r3 = make_round(3)
        self.r4 = make_round(4)
        self.rounds = [self.r1, self.r2, self.r3, self.r4]

    def test_round_1_open_while_active(self):
        team = make_team()
        assert can_access_round(team, self.r1, self.rounds)

    def test_round_1_requires_grant_when_inactive(self):
        self.r1.is_active = False
        assert not can_access_round(make_team(), self.r1, self.rounds)
        assert can_access_round(make_team(self.r1), self.r1, self.rounds)

    def test_other_rounds_require_grant(self):
        team = make_team(self.r1)
        assert not can_access_round(team, self.r2, self.rounds)
        assert not can_access_round(team, self.r3, self.rounds)
        assert not can_access_round(team, self.r4, self.rounds)

    def test_round_2_grant_cascades_to_rounds_3_and_4(self):
        team = make_team(self.r2)
        assert can_access_round(team, self.r2, self.rounds)
        assert can_access_round(team, self.r3, self.rounds)
        assert can_access_round(team, self.r4, self.rounds)

    def test_cascade_is_recomputed_when_grant_is_removed(self):
        team = make_team(self.r2)
        assert self.r3.id in get_effective_accessible_round_ids(team, self.rounds)
        team.rounds_accessible = []
        effective = get_effective_accessible_round_ids(team, self.rounds)
        assert effective == {self.r1.id}

    def test_direct_round_3_grant_does_not_cascade(self):
        team = make_team(self.r3)
        effective = get_effective_accessible_round_ids(team, self.rounds)
        assert self.r4.id not in effective
        assert self.r3.id in effective


class TestRoundRegistry:

    def test_accessible_rounds_follow_cascade(self, db, contest):
        rounds = RoundRegistry.get_accessible_rounds(db, contest.alpha.id)
        assert [r.round_number for r in rounds] == [1, 2, 3, 4]

        rounds = RoundRegistry.get_accessible_rounds(db, contest.delta.id)
        assert [r.round_number for r in rounds] == [1]

    def test_unknown_round_and_team(self, db, contest):
        with pytest.raises(RoundNotFound):
            RoundRegistry.get_round_by_id(db, "missing")
        with pytest.raises(TeamNotFound):
            RoundRegistry.get_team(db, "missing")
