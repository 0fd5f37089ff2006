"""
Exhaustive transition-table tests for the two suggestion state machines.

    1. **Review** (REVIEW_TRANSITIONS) -- 5 states, 6 valid edges
       - PENDING_FIRST_REVIEW -> PENDING_SECOND_REVIEW | REJECTED | WITHDRAWN
       - PENDING_SECOND_REVIEW -> APPROVED | REJECTED
       - REJECTED -> WITHDRAWN
       - APPROVED, WITHDRAWN -> (terminal)

    2. **Implementation** (IMPLEMENTATION_TRANSITIONS) -- 7 states, 12 valid edges
       - NOT_STARTED -> CONTACTING | CANCELLED
       - CONTACTING -> IN_PROGRESS | CANCELLED
       - IN_PROGRESS -> COMPLETED | DELAYED | CANCELLED
       - DELAYED -> IN_PROGRESS | COMPLETED | CANCELLED
       - COMPLETED -> EVALUATED
       - EVALUATED -> (terminal)
       - CANCELLED -> CONTACTING

Every pair of states is checked against the table, then the store-level
gate is exercised for representative edges.
"""

import pytest

from suggestion_hub.core.exceptions import InvalidStateTransition, ValidationError
from suggestion_hub.models.suggestion import (
    IMPLEMENTATION_STATUSES,
    IMPLEMENTATION_TRANSITIONS,
    REVIEW_STATUSES,
    REVIEW_TRANSITIONS,
    validate_implementation_transition,
    validate_review_transition,
)
from suggestion_hub.services.suggestion_store import SuggestionStore

REVIEW_VALID = [(src, dst) for src, targets in REVIEW_TRANSITIONS.items() for dst in targets]
REVIEW_INVALID = [
    (src, dst) for src in REVIEW_STATUSES for dst in REVIEW_STATUSES
    if (src, dst) not in REVIEW_VALID
]

IMPL_VALID = [(src, dst) for src, targets in IMPLEMENTATION_TRANSITIONS.items() for dst in targets]
IMPL_INVALID = [
    (src, dst) for src in IMPLEMENTATION_STATUSES for dst in IMPLEMENTATION_STATUSES
    if (src, dst) not in IMPL_VALID
]


class TestTransitionTables:
    def test_every_state_has_an_entry(self):
        assert set(REVIEW_TRANSITIONS) == set(REVIEW_STATUSES)
        assert set(IMPLEMENTATION_TRANSITIONS) == set(IMPLEMENTATION_STATUSES)

    def test_edge_counts(self):
        assert len(REVIEW_VALID) == 6
        assert len(IMPL_VALID) == 12

    @pytest.mark.parametrize("src,dst", REVIEW_VALID)
    def test_valid_review_edge(self, src, dst):
        assert validate_review_transition(src, dst) is True

    @pytest.mark.parametrize("src,dst", REVIEW_INVALID)
    def test_invalid_review_edge(self, src, dst):
        assert validate_review_transition(src, dst) is False

    @pytest.mark.parametrize("src,dst", IMPL_VALID)
    def test_valid_implementation_edge(self, src, dst):
        assert validate_implementation_transition(src, dst) is True

    @pytest.mark.parametrize("src,dst", IMPL_INVALID)
    def test_invalid_implementation_edge(self, src, dst):
        assert validate_implementation_transition(src, dst) is False

    @pytest.mark.parametrize("terminal", ["APPROVED", "WITHDRAWN"])
    def test_review_terminal_states(self, terminal):
        assert REVIEW_TRANSITIONS[terminal] == []

    def test_evaluated_is_terminal(self):
        assert IMPLEMENTATION_TRANSITIONS["EVALUATED"] == []

    def test_unknown_state_has_no_edges(self):
        assert validate_review_transition("DRAFT", "PENDING_FIRST_REVIEW") is False
        assert validate_implementation_transition("PAUSED", "IN_PROGRESS") is False


class TestStoreReviewGate:
    """The store refuses review moves that skip or reverse an edge."""

    @pytest.mark.parametrize("target", ["APPROVED", "WITHDRAWN", "PENDING_FIRST_REVIEW"])
    def test_pending_second_cannot_jump(self, submit, principals, target):
        from suggestion_hub.services.review_pipeline import ReviewPipeline

        s = submit()
        ReviewPipeline().submit_first_review(s.id, principals["supervisor"], "APPROVED")

        def _force(row):
            row.review_status = target

        if target == "APPROVED":
            # APPROVED without an implementation record breaks the existence rule
            with pytest.raises(ValidationError):
                SuggestionStore().update(s.id, _force)
        else:
            with pytest.raises(InvalidStateTransition) as exc:
                SuggestionStore().update(s.id, _force)
            assert exc.value.current == "PENDING_SECOND_REVIEW"

    def test_skip_second_stage_is_rejected(self, submit):
        s = submit()

        def _force(row):
            row.review_status = "APPROVED"
            row.implementation = {"status": "NOT_STARTED", "history": []}

        with pytest.raises(InvalidStateTransition):
            SuggestionStore().update(s.id, _force)

    def test_approved_never_regresses(self, approved):
        s = approved()

        def _force(row):
            row.review_status = "PENDING_SECOND_REVIEW"
            row.implementation = None

        with pytest.raises(InvalidStateTransition) as exc:
            SuggestionStore().update(s.id, _force)
        assert exc.value.current == "APPROVED"
        assert SuggestionStore().find_by_id(s.id).review_status == "APPROVED"


class TestStoreImplementationGate:
    """Lenient by default; strict mode enforces the directed edges."""

    @pytest.mark.parametrize("src,dst", [
        ("NOT_STARTED", "COMPLETED"),
        ("NOT_STARTED", "IN_PROGRESS"),
        ("CANCELLED", "IN_PROGRESS"),
    ])
    def test_lenient_store_allows_off_table_moves(self, approved, src, dst):
        s = approved()
        store = SuggestionStore()
        if src != "NOT_STARTED":
            store.update(s.id, lambda row: row.implementation.update(status=src))
        store.update(s.id, lambda row: row.implementation.update(status=dst))
        assert store.find_by_id(s.id).implementation_status == dst

    @pytest.mark.parametrize("src,dst", [
        ("NOT_STARTED", "COMPLETED"),
        ("NOT_STARTED", "IN_PROGRESS"),
        ("CANCELLED", "IN_PROGRESS"),
        ("COMPLETED", "IN_PROGRESS"),
    ])
    def test_strict_store_refuses_off_table_moves(self, approved, src, dst):
        s = approved()
        lenient = SuggestionStore()
        if src != "NOT_STARTED":
            lenient.update(s.id, lambda row: row.implementation.update(status=src))
        strict = SuggestionStore(strict_implementation=True)
        with pytest.raises(InvalidStateTransition) as exc:
            strict.update(s.id, lambda row: row.implementation.update(status=dst))
        assert exc.value.current == src
        assert strict.find_by_id(s.id).implementation_status == src

    @pytest.mark.parametrize("src,dst", [
        ("NOT_STARTED", "CONTACTING"),
        ("DELAYED", "COMPLETED"),
        ("CANCELLED", "CONTACTING"),
    ])
    def test_strict_store_allows_table_edges(self, approved, src, dst):
        s = approved()
        if src != "NOT_STARTED":
            SuggestionStore().update(s.id, lambda row: row.implementation.update(status=src))
        strict = SuggestionStore(strict_implementation=True)
        strict.update(s.id, lambda row: row.implementation.update(status=dst))
        assert strict.find_by_id(s.id).implementation_status == dst

    @pytest.mark.parametrize("src", ["NOT_STARTED", "IN_PROGRESS", "DELAYED"])
    def test_evaluated_only_from_completed(self, approved, src):
        s = approved()
        store = SuggestionStore()
        if src != "NOT_STARTED":
            store.update(s.id, lambda row: row.implementation.update(status=src))
        with pytest.raises(InvalidStateTransition) as exc:
            store.update(s.id, lambda row: row.implementation.update(status="EVALUATED"))
        assert exc.value.expected == ["COMPLETED"]

    def test_evaluated_cannot_be_left(self, completed, principals):
        from suggestion_hub.services.scoring_service import ScoringService

        s = completed()
        ScoringService().score_suggestion(s.id, principals["manager"], 7)
        with pytest.raises(InvalidStateTransition):
            SuggestionStore().update(s.id, lambda row: row.implementation.update(status="IN_PROGRESS"))
