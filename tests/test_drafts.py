"""Tests for utils/drafts.py: one in-progress draft per user and form family."""
from datetime import datetime

from sqlalchemy import func, select

from rms.db.models.partner_mapping import PartnerMappingDraft
from rms.db.models.survey_draft import SurveyDraft
from rms.utils.drafts import DraftStore
from rms.utils.families import PARTNER_MAPPINGS, SURVEYS


def _parse(ts):
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def _count(database, model, user_id):
    with database.session() as db:
        return db.execute(select(func.count(model.id)).where(model.user_id == user_id)).scalar_one()


class TestDraftUpsert:
    def test_repeated_saves_keep_a_single_draft(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        stamps = []
        for i in range(5):
            result = store.save(respondent, {"organisationInfo": {"organisationName": f"Org {i}"}})
            assert result.success
            stamps.append(_parse(result.draft["lastUpdated"]))

        assert _count(database, SurveyDraft, respondent.id) == 1
        loaded = store.load(respondent)
        assert loaded.draft["formData"] == {"organisationInfo": {"organisationName": "Org 4"}}
        assert stamps == sorted(stamps)

    def test_draft_id_is_stable_across_saves(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        first = store.save(respondent, {"a": 1})
        second = store.save(respondent, {"a": 2}, "project")
        assert first.id == second.id
        assert second.draft["currentStep"] == "project"

    def test_current_step_kept_when_not_given(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        store.save(respondent, {}, "activities")
        result = store.save(respondent, {"risks": "none"})
        assert result.draft["currentStep"] == "activities"

    def test_progress_is_recorded(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        result = store.save(
            respondent,
            {"organisationInfo": {"organisationName": "Acme", "region": "Ashanti", "email": "a@b.org"}},
        )
        # organisation + partners + final review
        assert result.draft["progress"] == 50
        assert result.draft["status"] == "draft"

    def test_malformed_sections_count_as_empty(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        result = store.save(respondent, {"organisationInfo": "Acme", "projectInfo": ["Screening"]})
        assert result.success
        # only partners + final review
        assert result.draft["progress"] == 33
        assert result.draft["formData"]["organisationInfo"] == "Acme"

    def test_families_do_not_share_drafts(self, database, respondent):
        DraftStore(database, SURVEYS).save(respondent, {"a": 1})
        DraftStore(database, PARTNER_MAPPINGS).save(respondent, {"partnerMappings": []})
        assert _count(database, SurveyDraft, respondent.id) == 1
        assert _count(database, PartnerMappingDraft, respondent.id) == 1


class TestDraftFailures:
    def test_save_without_user(self, database):
        result = DraftStore(database, SURVEYS).save(None, {"a": 1})
        assert result.success is False
        assert result.status_code == 401
        assert result.message == "Authentication required"

    def test_unknown_step(self, database, respondent):
        result = DraftStore(database, SURVEYS).save(respondent, {}, "payment")
        assert result.status_code == 400
        assert "currentStep" in result.errors
        assert _count(database, SurveyDraft, respondent.id) == 0

    def test_form_data_must_be_an_object(self, database, respondent):
        result = DraftStore(database, SURVEYS).save(respondent, ["not", "a", "dict"])
        assert result.status_code == 400
        assert "formData" in result.errors

    def test_load_when_missing(self, database, respondent):
        result = DraftStore(database, SURVEYS).load(respondent)
        assert result.success is False
        assert result.status_code == 200
        assert result.message == "No draft found"


class TestDiscard:
    def test_discard_removes_the_draft(self, database, respondent):
        store = DraftStore(database, SURVEYS)
        store.save(respondent, {"a": 1})
        result = store.discard(respondent)
        assert result.success
        assert result.data == {"deleted": 1}
        assert _count(database, SurveyDraft, respondent.id) == 0

    def test_discard_without_draft_is_not_an_error(self, database, respondent):
        result = DraftStore(database, SURVEYS).discard(respondent)
        assert result.success
        assert result.data == {"deleted": 0}
