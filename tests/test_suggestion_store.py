"""
Suggestion Store: create validation, queries, invariant enforcement, rollback.
"""

import pytest

from suggestion_hub.core.exceptions import NotFoundError, ValidationError
from suggestion_hub.models.suggestion import Suggestion
from suggestion_hub.services.suggestion_store import (
    SYNC_NOTE,
    SuggestionStore,
    parse_sort,
    validate_suggestion_fields,
)

TEAM = "A-shift"
OTHER_TEAM = "B-shift"

VALID_DRAFT = {
    "title": "Reduce valve wear",
    "type": "MECHANICAL",
    "content": "Replace the gate valve packing with graphite rings to cut wear.",
    "expectedBenefit": "Fewer unplanned stops on line 2",
}


def _draft(**overrides):
    return {**VALID_DRAFT, "submitter": "u-member", "submitterName": "Mia", "team": TEAM, **overrides}


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_create_starts_pending_first_review(self):
        s = SuggestionStore().create(_draft())
        assert s.review_status == "PENDING_FIRST_REVIEW"
        assert s.implementation is None
        assert s.implementation_status is None
        assert s.version == 1
        assert s.comments == [] and s.attachments == []

    @pytest.mark.parametrize("field", ["title", "type", "content", "expectedBenefit"])
    def test_missing_field(self, field):
        with pytest.raises(ValidationError) as exc:
            SuggestionStore().create(_draft(**{field: ""}))
        assert exc.value.details[field] == "required"

    @pytest.mark.parametrize("field", ["title", "content", "expectedBenefit"])
    def test_blank_field(self, field):
        with pytest.raises(ValidationError):
            SuggestionStore().create(_draft(**{field: "   "}))

    def test_unknown_type(self):
        with pytest.raises(ValidationError) as exc:
            SuggestionStore().create(_draft(type="KEXIN"))
        assert "type" in exc.value.details

    def test_content_minimum_length(self):
        with pytest.raises(ValidationError) as exc:
            SuggestionStore().create(_draft(content="too short"))
        assert "content" in exc.value.details

    def test_content_of_exactly_twenty_chars_is_accepted(self):
        s = SuggestionStore().create(_draft(content="x" * 20))
        assert len(s.content) == 20

    def test_title_maximum_length(self):
        with pytest.raises(ValidationError):
            SuggestionStore().create(_draft(title="t" * 201))

    def test_submitter_and_team_required(self):
        with pytest.raises(ValidationError) as exc:
            SuggestionStore().create(_draft(submitter=None, team=""))
        assert set(exc.value.details) >= {"submitter", "team"}

    def test_errors_reported_together(self):
        with pytest.raises(ValidationError) as exc:
            validate_suggestion_fields({"title": "", "type": "NOPE", "content": "short"})
        assert set(exc.value.details) == {"title", "type", "content", "expectedBenefit"}

    def test_partial_validation_checks_present_keys_only(self):
        assert validate_suggestion_fields({"title": " New "}, partial=True) == {"title": "New"}


# ═════════════════════════════════════════════════════════════════════════════
# Read / query
# ═════════════════════════════════════════════════════════════════════════════


class TestQuery:
    @pytest.fixture()
    def seeded(self):
        store = SuggestionStore()
        rows = [
            store.create(_draft(title="Pump seal", type="MECHANICAL")),
            store.create(_draft(title="Cable trays", type="ELECTRICAL")),
            store.create(_draft(title="Guard rail", type="SAFETY", team=OTHER_TEAM, submitter="u-member-b")),
            store.create(_draft(title="Alarm tuning", type="MONITORING",
                                content="Retune the flow alarm thresholds on the pump skid.")),
        ]
        return store, rows

    def test_find_by_id_missing(self):
        with pytest.raises(NotFoundError):
            SuggestionStore().find_by_id("nope")

    def test_no_filters_returns_all(self, seeded):
        store, rows = seeded
        result = store.query()
        assert result["total"] == 4
        assert result["page"] == 1
        assert result["pageSize"] == 20
        assert {r["_id"] for r in result["items"]} == {r.id for r in rows}

    def test_multi_value_filter_is_or(self, seeded):
        store, _ = seeded
        result = store.query({"type": {"SAFETY", "ELECTRICAL"}})
        assert {r["type"] for r in result["items"]} == {"SAFETY", "ELECTRICAL"}

    def test_comma_separated_filter(self, seeded):
        store, _ = seeded
        assert store.query({"type": "SAFETY,MECHANICAL"})["total"] == 2

    def test_filters_combine_with_and(self, seeded):
        store, _ = seeded
        result = store.query({"team": {TEAM}, "type": {"SAFETY"}})
        assert result["total"] == 0

    def test_exclude_type(self, seeded):
        store, _ = seeded
        result = store.query({"excludeType": {"SAFETY"}})
        assert result["total"] == 3
        assert all(r["type"] != "SAFETY" for r in result["items"])

    def test_search_matches_title_or_content(self, seeded):
        store, _ = seeded
        assert store.query({"search": "pump"})["total"] == 2

    def test_empty_filter_set_matches_nothing(self, seeded):
        store, _ = seeded
        assert store.query({"team": set()})["total"] == 0

    def test_filter_by_implementation_status(self, seeded, principals):
        from suggestion_hub.services.review_pipeline import ReviewPipeline

        store, rows = seeded
        pipeline = ReviewPipeline()
        pipeline.submit_first_review(rows[0].id, principals["supervisor"], "APPROVED")
        pipeline.submit_second_review(rows[0].id, principals["ops_admin"], "APPROVED")
        result = store.query({"implementationStatus": {"NOT_STARTED"}})
        assert [r["_id"] for r in result["items"]] == [rows[0].id]
        assert result["items"][0]["implementationStatus"] == "NOT_STARTED"

    def test_sort_by_title(self, seeded):
        store, _ = seeded
        titles = [r["title"] for r in store.query(sort="title")["items"]]
        assert titles == sorted(titles)
        desc = [r["title"] for r in store.query(sort="title:desc")["items"]]
        assert desc == sorted(titles, reverse=True)

    def test_pagination(self, seeded):
        store, _ = seeded
        page1 = store.query(sort="title", page=1, page_size=3)
        page2 = store.query(sort="title", page=2, page_size=3)
        assert page1["total"] == page2["total"] == 4
        assert len(page1["items"]) == 3
        assert len(page2["items"]) == 1

    def test_page_size_is_capped(self, seeded):
        store, _ = seeded
        assert store.query(page_size=10_000)["pageSize"] == 100

    @pytest.mark.parametrize("sort,expected", [
        (None, ("createdAt", True)),
        ("-updatedAt", ("updatedAt", True)),
        ("score", ("score", False)),
        ("reviewStatus:desc", ("reviewStatus", True)),
        ("type:asc", ("type", False)),
    ])
    def test_parse_sort(self, sort, expected):
        assert parse_sort(sort) == expected

    def test_unknown_sort_key(self):
        with pytest.raises(ValidationError):
            parse_sort("password")

    def test_list_row_projection(self, seeded):
        store, _ = seeded
        row = store.query()["items"][0]
        assert "content" not in row
        assert {"_id", "title", "type", "typeName", "reviewStatus", "implementationStatus"} <= set(row)


# ═════════════════════════════════════════════════════════════════════════════
# Invariants on update
# ═════════════════════════════════════════════════════════════════════════════


class TestInvariants:
    def test_implementation_only_when_approved(self, submit):
        s = submit()

        def _sneak(row):
            row.implementation = {"status": "NOT_STARTED", "history": []}

        with pytest.raises(ValidationError):
            SuggestionStore().update(s.id, _sneak)
        assert SuggestionStore().find_by_id(s.id).implementation is None

    def test_approved_requires_implementation(self, approved):
        s = approved()

        def _drop(row):
            row.implementation = None

        with pytest.raises(ValidationError):
            SuggestionStore().update(s.id, _drop)

    def test_unknown_implementation_status(self, approved):
        s = approved()
        with pytest.raises(ValidationError):
            SuggestionStore().update(s.id, lambda row: row.implementation.update(status="PAUSED"))

    def test_history_is_append_only(self, approved):
        s = approved()

        def _rewrite(row):
            row.implementation["history"][0]["notes"] = "rewritten"

        with pytest.raises(ValidationError):
            SuggestionStore().update(s.id, _rewrite)
        history = SuggestionStore().find_by_id(s.id).implementation_history
        assert history[0]["notes"] == "approved, awaiting assignment"

    def test_history_truncation_rejected(self, approved):
        s = approved()
        with pytest.raises(ValidationError):
            SuggestionStore().update(s.id, lambda row: row.implementation.update(history=[]))

    def test_out_of_sync_tail_gets_synchronizing_entry(self, approved):
        s = approved()
        saved, _ = SuggestionStore().update(
            s.id, lambda row: row.implementation.update(status="CONTACTING"),
        )
        history = saved.implementation_history
        assert len(history) == 2
        assert history[-1]["status"] == "CONTACTING"
        assert history[-1]["updatedBy"] == "system"
        assert history[-1]["notes"] == SYNC_NOTE

    def test_mirror_equals_embedded_status(self, approved):
        s = approved()
        saved, _ = SuggestionStore().update(
            s.id, lambda row: row.implementation.update(status="CANCELLED"),
        )
        assert saved.to_dict()["implementationStatus"] == saved.implementation["status"] == "CANCELLED"

    def test_failed_mutation_leaves_row_untouched(self, submit):
        s = submit()
        version = s.version

        def _explode(row):
            row.title = "half applied"
            row.comments.append({"content": "half"})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            SuggestionStore().update(s.id, _explode)
        fresh = SuggestionStore().find_by_id(s.id)
        assert fresh.title == VALID_DRAFT["title"]
        assert fresh.comments == []
        assert fresh.version == version

    def test_mutator_result_is_returned(self, submit):
        s = submit()
        saved, result = SuggestionStore().update(s.id, lambda row: row.title)
        assert result == VALID_DRAFT["title"]
        assert saved.id == s.id

    def test_update_bumps_version(self, submit):
        s = submit()
        saved, _ = SuggestionStore().update(s.id, lambda row: setattr(row, "title", "Renamed"))
        assert saved.version == 2

    def test_delete(self, submit):
        s = submit()
        SuggestionStore().delete(s.id)
        assert Suggestion.query.count() == 0
        with pytest.raises(NotFoundError):
            SuggestionStore().delete(s.id)
