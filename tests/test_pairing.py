"""
Pairing Manager 測試：建立 / 刪除 / 列出配對、Round 3 配對選項分配
"""
import pytest

from conftest import add_score, get_row
from models import AssignmentMode, OptionSet, OptionSetState, Pairing, PairingMember
from core.allocation_manager import AllocationManager
from core.exceptions import (
    DuplicatePair,
    InvalidAllocation,
    NotPairedSelectionRound,
    NotPairingRound,
    NotShortlisted,
    PairingNotFound,
    SelfPair,
    TeamNotFound,
    TrackMismatch,
)
from core.pairing_manager import PairingManager, make_pair_key
from core.selection_manager import SelectionManager


class TestCreatePairing:

    def test_creates_pair_with_canonical_key(self, db, contest):
        round2 = contest.rounds[2]
        pairing = PairingManager.create_pairing(db, round2.id, contest.bravo.id, contest.alpha.id)

        stored = db.query(Pairing).filter(Pairing.id == pairing.id).one()
        assert stored.pair_key == make_pair_key(contest.alpha.id, contest.bravo.id)
        assert stored.track_id == contest.ai.id
        assert db.query(PairingMember).filter(PairingMember.pairing_id == pairing.id).count() == 2
        # 建立配對本身不會產生 OptionSet
        assert db.query(OptionSet).count() == 0

    def test_pair_key_is_order_independent(self):
        assert make_pair_key("b", "a") == make_pair_key("a", "b") == "a:b"

    def test_rejects_self_pair(self, db, contest):
        with pytest.raises(SelfPair):
            PairingManager.create_pairing(db, contest.rounds[2].id, contest.alpha.id, contest.alpha.id)

    @pytest.mark.parametrize("round_number", [1, 3, 4])
    def test_rejects_non_pairing_round(self, db, contest, round_number):
        with pytest.raises(NotPairingRound):
            PairingManager.create_pairing(
                db, contest.rounds[round_number].id, contest.alpha.id, contest.bravo.id
            )

    def test_rejects_team_not_shortlisted(self, db, contest):
        with pytest.raises(NotShortlisted):
            PairingManager.create_pairing(db, contest.rounds[2].id, contest.alpha.id, contest.delta.id)

    def test_rejects_track_mismatch(self, db, contest):
        with pytest.raises(TrackMismatch):
            PairingManager.create_pairing(db, contest.rounds[2].id, contest.alpha.id, contest.charlie.id)

    def test_rejects_unknown_team(self, db, contest):
        with pytest.raises(TeamNotFound):
            PairingManager.create_pairing(db, contest.rounds[2].id, contest.alpha.id, "ghost")

    def test_reverse_duplicate_is_conflict(self, db, contest):
        round2 = contest.rounds[2]
        PairingManager.create_pairing(db, round2.id, contest.alpha.id, contest.bravo.id)
        with pytest.raises(DuplicatePair):
            PairingManager.create_pairing(db, round2.id, contest.bravo.id, contest.alpha.id)
        assert db.query(Pairing).count() == 1

    def test_team_cannot_join_two_pairings(self, db, contest):
        round2 = contest.rounds[2]
        contest.delta.rounds_accessible.append(round2)
        db.commit()

        PairingManager.create_pairing(db, round2.id, contest.alpha.id, contest.bravo.id)
        with pytest.raises(DuplicatePair):
            PairingManager.create_pairing(db, round2.id, contest.delta.id, contest.alpha.id)
        assert db.query(Pairing).count() == 1


class TestListPairingState:

    def test_partitions_paired_and_unpaired(self, db, contest):
        round2 = contest.rounds[2]
        PairingManager.create_pairing(db, round2.id, contest.alpha.id, contest.bravo.id)

        state = PairingManager.list_pairing_state(db, round2.id)
        assert state["shortlisted_count"] == 3
        assert state["paired_count"] == 1
        assert state["paired"][0]["track"] == "AI"
        assert {state["paired"][0]["team_a"]["id"], state["paired"][0]["team_b"]["id"]} == {
            contest.alpha.id, contest.bravo.id
        }
        assert list(state["unpaired_by_track"].keys()) == ["Web"]
        assert state["unpaired_by_track"]["Web"][0]["id"] == contest.charlie.id
        assert state["validation"] == {"odd_shortlist_count": True, "unpaired_count": 1}

    def test_even_shortlist(self, db, contest):
        round2 = contest.rounds[2]
        contest.delta.rounds_accessible.append(round2)
        db.commit()

        state = PairingManager.list_pairing_state(db, round2.id)
        assert state["shortlisted_count"] == 4
        assert state["validation"]["odd_shortlist_count"] is False
        assert len(state["unpaired_by_track"]["AI"]) == 3

    def test_rejects_non_pairing_round(self, db, contest):
        with pytest.raises(NotPairingRound):
            PairingManager.list_pairing_state(db, contest.rounds[3].id)


class TestAllocatePairOptions:

    def test_higher_score_gets_priority(self, db, paired):
        priority_row = get_row(db, paired.priority.id, paired.round3.id)
        other_row = get_row(db, paired.other.id, paired.round3.id)

        for row in (priority_row, other_row):
            assert row.assignment_mode == AssignmentMode.PAIR
            assert row.options == [paired.o1, paired.o2]
            assert row.pair_id == paired.pairing_id
            assert row.priority_team_id == paired.priority.id
            assert row.paired_team_id == paired.other.id
            assert row.published_at is not None
            assert row.state == OptionSetState.OFFERED

    def test_reallocating_same_pool_keeps_window_and_selection(self, db, paired):
        SelectionManager.select_option(db, paired.priority.id, paired.round3.id, paired.o2)

        PairingManager.allocate_pair_options(
            db, paired.round3.id, [(paired.pairing_id, [paired.o2, paired.o1])]
        )
        priority_row = get_row(db, paired.priority.id, paired.round3.id)
        other_row = get_row(db, paired.other.id, paired.round3.id)
        assert priority_row.selected_id == paired.o2
        assert other_row.selected_id == paired.o1
        assert priority_row.published_at == paired.published_at

    def test_reallocating_new_pool_resets_selection(self, db, paired):
        o = paired.contest.o
        SelectionManager.select_option(db, paired.priority.id, paired.round3.id, paired.o1)

        PairingManager.allocate_pair_options(db, paired.round3.id, [(paired.pairing_id, [o.o3, o.o4])])
        for team in (paired.priority, paired.other):
            row = get_row(db, team.id, paired.round3.id)
            assert row.options == [o.o3, o.o4]
            assert row.selected_id is None
            assert row.auto_assigned is False

    def test_requires_two_distinct_options(self, db, paired):
        with pytest.raises(InvalidAllocation):
            PairingManager.allocate_pair_options(
                db, paired.round3.id, [(paired.pairing_id, [paired.o1, paired.o1])]
            )

    def test_only_in_paired_selection_round(self, db, paired):
        with pytest.raises(NotPairedSelectionRound):
            PairingManager.allocate_pair_options(
                db, paired.contest.rounds[2].id, [(paired.pairing_id, [paired.o1, paired.o2])]
            )

    def test_unknown_pairing(self, db, paired):
        with pytest.raises(PairingNotFound):
            PairingManager.allocate_pair_options(db, paired.round3.id, [("ghost", [paired.o1, paired.o2])])

    def test_tied_scores_use_team_id_order(self, db, contest):
        add_score(db, contest.alpha, contest.rounds[1], 5)
        add_score(db, contest.bravo, contest.rounds[1], 5)
        pairing = PairingManager.create_pairing(db, contest.rounds[2].id, contest.alpha.id, contest.bravo.id)
        PairingManager.allocate_pair_options(
            db, contest.rounds[3].id, [(pairing.id, [contest.o.o1, contest.o.o2])]
        )

        row = get_row(db, contest.alpha.id, contest.rounds[3].id)
        assert row.priority_team_id == min(contest.alpha.id, contest.bravo.id)


class TestDeletePairing:

    def test_cascade_resets_both_rows(self, db, paired):
        SelectionManager.select_option(db, paired.priority.id, paired.round3.id, paired.o1)

        reset_count = PairingManager.delete_pairing(db, paired.contest.rounds[2].id, paired.pairing_id)
        assert reset_count == 2
        assert db.query(Pairing).count() == 0
        assert db.query(PairingMember).count() == 0

        for team in (paired.priority, paired.other):
            row = get_row(db, team.id, paired.round3.id)
            assert row.assignment_mode == AssignmentMode.TEAM
            assert row.selected_id is None
            assert row.selected_at is None
            assert row.options == []
            assert row.pair_id is None
            assert row.priority_team_id is None
            assert row.paired_team_id is None
            assert row.published_at is None
            assert row.auto_assigned is False
            assert row.state == OptionSetState.UNASSIGNED

    def test_cascade_leaves_other_rounds_untouched(self, db, paired):
        o = paired.contest.o
        round1 = paired.contest.rounds[1]
        AllocationManager.allocate_team_options(db, round1.id, [(paired.priority.id, [o.o5, o.o6])])

        PairingManager.delete_pairing(db, paired.contest.rounds[2].id, paired.pairing_id)
        assert get_row(db, paired.priority.id, round1.id).options == [o.o5, o.o6]

    def test_teams_can_be_paired_again(self, db, paired):
        round2 = paired.contest.rounds[2]
        PairingManager.delete_pairing(db, round2.id, paired.pairing_id)
        pairing = PairingManager.create_pairing(db, round2.id, paired.other.id, paired.priority.id)
        assert pairing.id != paired.pairing_id

    def test_not_found(self, db, paired):
        with pytest.raises(PairingNotFound):
            PairingManager.delete_pairing(db, paired.contest.rounds[2].id, "ghost")

    def test_rejects_non_pairing_round(self, db, paired):
        with pytest.raises(NotPairingRound):
            PairingManager.delete_pairing(db, paired.round3.id, paired.pairing_id)
        assert db.query(Pairing).count() == 1
