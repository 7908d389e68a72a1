import time
from datetime import datetime, timezone

from study_generator.repositories import usage_repo
from study_generator.services import quota_service

from conftest import FAKE_FIRESTORE_MODULE, FakeFirestore, FakeSnapshot


def test_today_key_uses_utc_date():
    moment = datetime(2026, 3, 1, 23, 30, tzinfo=timezone.utc)
    assert quota_service.today_key(moment) == "2026-03-01"


def test_free_plan_defaults():
    quotas = quota_service.resolve_user_quotas({"plan": "free"})
    assert quotas == {"mcqs": 30, "flashcards": 30, "definitions": 30, "pdfs": 2, "true_false": 30}


def test_unknown_plan_falls_back_to_free():
    assert quota_service.sanitize_plan("platinum") == "free"
    assert quota_service.resolve_user_quotas({"plan": "platinum"})["pdfs"] == 2


def test_custom_quota_overrides_plan_and_settings():
    settings = {"plan_quotas": {"basic": {"mcqs": 80}}}
    profile = {"plan": "basic", "custom_daily_mcqs": 5, "custom_daily_pdfs": None}

    quotas = quota_service.resolve_user_quotas(profile, settings)

    assert quotas["mcqs"] == 5
    assert quotas["flashcards"] == 60
    assert quotas["pdfs"] == 10


def test_settings_override_plan_defaults():
    quotas = quota_service.resolve_plan_quotas("premium", {"plan_quotas": {"premium": {"pdfs": 50, "mcqs": -1}}})
    assert quotas["pdfs"] == 50
    assert quotas["mcqs"] == 200


def test_expired_paid_plan_reverts_to_free():
    profile = {"plan": "premium", "plan_expires_at": 100.0}

    assert quota_service.effective_plan(profile, now_ts=50.0) == "premium"
    assert quota_service.effective_plan(profile, now_ts=150.0) == "free"
    assert quota_service.resolve_user_quotas(profile, now_ts=150.0)["pdfs"] == 2


def test_can_generate_respects_limit():
    quotas = {"mcqs": 30}
    usage = {"mcqs_used": 25}

    assert quota_service.can_generate(quotas, usage, "mcqs", 5) is True
    assert quota_service.can_generate(quotas, usage, "mcqs", 6) is False
    assert quota_service.can_generate(quotas, usage, "unknown", 1) is False
    assert quota_service.can_generate(None, usage, "mcqs", 1) is False


def test_quota_snapshot_reports_remaining():
    quotas = quota_service.resolve_user_quotas({"plan": "free"})
    usage = quota_service.build_empty_usage("u1", "2026-03-01")
    usage["flashcards_used"] = 12
    usage["pdfs_generated"] = 5

    snapshot = quota_service.build_quota_snapshot(quotas, usage)

    assert snapshot["date"] == "2026-03-01"
    assert snapshot["usage"]["flashcards"] == 12
    assert snapshot["remaining"]["flashcards"] == 18
    assert snapshot["remaining"]["pdfs"] == 0


def test_get_or_create_daily_usage_creates_zeroed_document():
    db = FakeFirestore()

    usage = quota_service.get_or_create_daily_usage(db, "u1", "2026-03-01", time_module=time)

    assert usage["mcqs_used"] == 0
    stored = db.data("daily_usage", "u1_2026-03-01")
    assert stored["uid"] == "u1"
    assert stored["date"] == "2026-03-01"


def test_reserve_usage_grants_only_what_is_left():
    db = FakeFirestore()
    db.seed("daily_usage", "u1_2026-03-01", {"uid": "u1", "date": "2026-03-01", "mcqs_used": 27})

    granted = quota_service.reserve_usage(
        db, "u1", "2026-03-01", "mcqs", 10, 30,
        firestore_module=FAKE_FIRESTORE_MODULE,
        time_module=time,
    )

    assert granted == 3
    assert db.data("daily_usage", "u1_2026-03-01")["mcqs_used"] == 30

    again = quota_service.reserve_usage(
        db, "u1", "2026-03-01", "mcqs", 1, 30,
        firestore_module=FAKE_FIRESTORE_MODULE,
        time_module=time,
    )
    assert again == 0


def test_daily_usage_creation_keeps_concurrent_reservation(monkeypatch):
    db = FakeFirestore()
    db.seed("daily_usage", "u1_2026-03-01", {"uid": "u1", "date": "2026-03-01", "mcqs_used": 7})
    real_get_doc = usage_repo.get_doc
    reads = []

    def _stale_first_read(db_, uid, date_key):
        reads.append(date_key)
        if len(reads) == 1:
            return FakeSnapshot("u1_2026-03-01", None)
        return real_get_doc(db_, uid, date_key)

    monkeypatch.setattr(usage_repo, "get_doc", _stale_first_read)

    usage = quota_service.get_or_create_daily_usage(db, "u1", "2026-03-01", time_module=time)

    assert usage["mcqs_used"] == 7
    assert db.data("daily_usage", "u1_2026-03-01")["mcqs_used"] == 7


def test_reserve_usages_grants_each_type_in_one_write():
    db = FakeFirestore()
    db.seed("daily_usage", "u1_2026-03-01", {"uid": "u1", "date": "2026-03-01", "flashcards_used": 29})

    granted, usage = quota_service.reserve_usages(
        db, "u1", "2026-03-01", {"mcqs": (5, 30), "flashcards": (3, 30), "definitions": (0, 30)},
        firestore_module=FAKE_FIRESTORE_MODULE,
        time_module=time,
    )

    assert granted == {"mcqs": 5, "flashcards": 1, "definitions": 0}
    assert usage["flashcards_used"] == 30
    stored = db.data("daily_usage", "u1_2026-03-01")
    assert stored["mcqs_used"] == 5
    assert stored["flashcards_used"] == 30
