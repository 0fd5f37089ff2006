"""
Optimistic concurrency: at most one committed transition per read state.
"""

import pytest
from sqlalchemy import text

from suggestion_hub.core.exceptions import ConflictError, InvalidStateTransition
from suggestion_hub.models import db
from suggestion_hub.models.suggestion import Suggestion
from suggestion_hub.services.review_pipeline import ReviewPipeline
from suggestion_hub.services.suggestion_service import SuggestionService
from suggestion_hub.services.suggestion_store import SuggestionStore


def _bump_version_behind_session(suggestion_id):
    """Simulate a competing writer committing between our read and write."""
    db.session.execute(
        text("UPDATE suggestions SET version = version + 1 WHERE id = :id"),
        {"id": suggestion_id},
    )


class TestOptimisticConcurrency:
    def test_stale_write_raises_conflict(self, submit):
        s = submit()
        store = SuggestionStore()
        store.find_by_id(s.id)  # loaded at version 1
        _bump_version_behind_session(s.id)

        with pytest.raises(ConflictError):
            store.update(s.id, lambda row: setattr(row, "title", "Lost update"))

        db.session.expire_all()
        assert store.find_by_id(s.id).title == "Reduce valve wear"

    def test_expected_version_mismatch(self, submit):
        s = submit()
        with pytest.raises(ConflictError) as exc:
            SuggestionStore().update(s.id, lambda row: setattr(row, "title", "x" * 5), expected_version=7)
        assert exc.value.details == {"expected_version": 7}
        assert exc.value.code == "ERR_CONFLICT"

    def test_expected_version_match(self, submit):
        s = submit()
        saved, _ = SuggestionStore().update(
            s.id, lambda row: setattr(row, "title", "Renamed"), expected_version=1,
        )
        assert saved.version == 2

    def test_repeated_first_review_is_rejected(self, submit, principals):
        """Once a first review has committed, another one sees the new state."""
        s = submit()
        pipeline = ReviewPipeline()
        pipeline.submit_first_review(s.id, principals["supervisor"], "APPROVED")
        with pytest.raises(InvalidStateTransition) as exc:
            pipeline.submit_first_review(s.id, principals["manager"], "REJECTED")
        assert exc.value.current == "PENDING_SECOND_REVIEW"

    def test_competing_first_reviews_from_same_read(self, submit, principals):
        """Both reviewers read PENDING_FIRST_REVIEW at version 1; only one commits."""
        s = submit()
        store = SuggestionStore()
        loaded = store.find_by_id(s.id)
        assert (loaded.review_status, loaded.version) == ("PENDING_FIRST_REVIEW", 1)

        # the other reviewer commits first
        db.session.execute(
            text(
                "UPDATE suggestions SET review_status = 'REJECTED', version = version + 1 "
                "WHERE id = :id"
            ),
            {"id": s.id},
        )

        with pytest.raises(ConflictError):
            ReviewPipeline(store).submit_first_review(s.id, principals["manager"], "APPROVED")

    def test_conflict_leaves_review_untouched(self, submit, principals):
        s = submit()
        store = SuggestionStore()
        store.find_by_id(s.id)
        _bump_version_behind_session(s.id)

        with pytest.raises(ConflictError):
            ReviewPipeline(store).submit_first_review(s.id, principals["supervisor"], "APPROVED")

        db.session.expire_all()
        fresh = store.find_by_id(s.id)
        assert fresh.review_status == "PENDING_FIRST_REVIEW"
        assert fresh.first_review is None


class TestConcurrentDelete:
    def test_stale_delete_raises_conflict(self, submit):
        s = submit()
        store = SuggestionStore()
        store.find_by_id(s.id)
        _bump_version_behind_session(s.id)

        with pytest.raises(ConflictError):
            store.delete(s.id)

        db.session.expire_all()
        assert Suggestion.query.count() == 1

    def test_delete_overtaken_by_write_is_conflict(self, submit, principals):
        s = submit()
        service = SuggestionService()
        service.store.find_by_id(s.id)
        _bump_version_behind_session(s.id)

        with pytest.raises(ConflictError) as exc:
            service.delete_suggestion(s.id, principals["member"])
        assert exc.value.code == "ERR_CONFLICT"
        assert Suggestion.query.count() == 1
