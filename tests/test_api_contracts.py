import io
from types import SimpleNamespace

import pytest

from study_generator import runtime as app_module
from study_generator.services import generation_service, pdf_service, quota_service


class _GatewayError(Exception):
    def __init__(self, code):
        super().__init__(f"gateway returned {code}")
        self.code = code


def _fake_ai_client(args=None, error=None):
    def _generate_content(**_kwargs):
        if error is not None:
            raise error
        call = SimpleNamespace(name=generation_service.FUNCTION_NAME, args=args)
        return SimpleNamespace(function_calls=[call], text="")

    return SimpleNamespace(models=SimpleNamespace(generate_content=_generate_content))


def _usage_doc_id(uid):
    return f"{uid}_{quota_service.today_key()}"


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_request_id_is_echoed(client):
    response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_config_endpoint_shape(client, monkeypatch):
    monkeypatch.setattr(app_module, "STRIPE_PUBLISHABLE_KEY", "pk_test_contract")

    response = client.get("/api/config")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["stripe_publishable_key"] == "pk_test_contract"
    assert set(payload["plans"]) == {"free", "basic", "premium"}
    assert payload["plans"]["basic"]["price_cents"] == 50000
    assert payload["plans"]["premium"]["badge"] == "gold_star"
    assert payload["plans"]["free"]["quotas"]["pdfs"] == 2


def test_generate_requires_sign_in(client):
    response = client.post("/api/generate", json={"text": "x", "difficulty": "kids", "options": ["summary"]})

    assert response.status_code == 401
    assert response.get_json()["redirect"] == "/auth"


def test_pending_user_is_sent_to_verification_page(client, seed_user, sign_in):
    seed_user("pending-u1", verification_status="pending")
    sign_in("pending-u1")

    response = client.post("/api/generate", json={"text": "x", "difficulty": "kids", "options": ["summary"]})

    assert response.status_code == 403
    body = response.get_json()
    assert body["redirect"] == "/verification-pending"
    assert "pending verification" in body["error"]


def test_blocked_user_is_refused(client, seed_user, sign_in):
    seed_user("blocked-u1", is_blocked=True)
    sign_in("blocked-u1")

    response = client.get("/api/quota")

    assert response.status_code == 403
    assert "blocked" in response.get_json()["error"]


def test_generate_missing_fields_returns_400(client, seed_user, sign_in):
    seed_user("gen-u1")
    sign_in("gen-u1")

    response = client.post("/api/generate", json={"text": "", "difficulty": "kids", "options": ["summary"]})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Missing required fields: text, difficulty, or options"


def test_generate_rejects_unknown_options(client, seed_user, sign_in):
    seed_user("gen-u2")
    sign_in("gen-u2")

    response = client.post("/api/generate", json={"text": "Cells", "difficulty": "kids", "options": ["poems"]})

    assert response.status_code == 400
    assert response.get_json()["error"] == "No valid content options selected"


def test_generate_blocks_when_daily_quota_is_used(client, fake_db, seed_user, sign_in, monkeypatch):
    seed_user("gen-u3")
    sign_in("gen-u3")
    fake_db.seed("daily_usage", _usage_doc_id("gen-u3"), {"uid": "gen-u3", "mcqs_used": 30})
    monkeypatch.setattr(app_module, "client", _fake_ai_client(args={"mcqs": []}))

    response = client.post("/api/generate", json={"text": "Cells", "difficulty": "kids", "options": ["summary", "mcqs"]})

    assert response.status_code == 429
    body = response.get_json()
    assert body["quota_exceeded"] == "mcqs"
    assert body["quota"]["remaining"]["mcqs"] == 0


def test_generate_trims_sections_to_remaining_quota(client, fake_db, seed_user, sign_in, monkeypatch):
    seed_user("gen-u4")
    sign_in("gen-u4")
    fake_db.seed("daily_usage", _usage_doc_id("gen-u4"), {"uid": "gen-u4", "flashcards_used": 28})
    cards = [{"question": f"Q{i}", "answer": f"A{i}"} for i in range(5)]
    monkeypatch.setattr(app_module, "client", _fake_ai_client(args={"flashcards": cards, "summary": "Short"}))

    response = client.post(
        "/api/generate",
        json={"text": "Cells divide.", "difficulty": "university", "options": ["flashcards", "summary"]},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert set(body["content"]) == {"flashcards", "summary"}
    assert len(body["content"]["flashcards"]) == 2
    assert body["trimmed"] == ["flashcards"]
    assert body["quota"]["remaining"]["flashcards"] == 0
    assert fake_db.data("daily_usage", _usage_doc_id("gen-u4"))["flashcards_used"] == 30


def test_generate_maps_gateway_rate_limit(client, seed_user, sign_in, monkeypatch):
    seed_user("gen-u5")
    sign_in("gen-u5")
    monkeypatch.setattr(app_module, "client", _fake_ai_client(error=_GatewayError(429)))

    response = client.post("/api/generate", json={"text": "Cells", "difficulty": "kids", "options": ["summary"]})

    assert response.status_code == 429
    assert response.get_json()["error"] == "Rate limit exceeded. Please try again in a moment."


def test_generate_is_rate_limited(client, seed_user, sign_in, monkeypatch):
    seed_user("gen-u6")
    sign_in("gen-u6")
    monkeypatch.setattr(app_module, "check_rate_limit", lambda **_kwargs: (False, 42))

    response = client.post("/api/generate", json={"text": "Cells", "difficulty": "kids", "options": ["summary"]})

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "42"


def test_maintenance_mode_blocks_users_but_not_admins(client, fake_db, seed_user, sign_in):
    fake_db.seed("app_settings", "global", {"app_enabled": False, "maintenance_message": "Upgrading servers"})
    seed_user("maint-u1")
    seed_user("maint-admin", role="admin")

    sign_in("maint-u1")
    blocked = client.post("/api/generate", json={"text": "Cells", "difficulty": "kids", "options": ["summary"]})
    assert blocked.status_code == 503
    assert blocked.get_json() == {"error": "Upgrading servers", "maintenance": True}

    sign_in("maint-admin")
    allowed = client.post("/api/generate", json={"text": "", "difficulty": "kids", "options": ["summary"]})
    assert allowed.status_code == 400


def test_quota_endpoint_reports_plan(client, seed_user, sign_in):
    seed_user("quota-u1", plan="basic")
    sign_in("quota-u1")

    response = client.get("/api/quota")

    assert response.status_code == 200
    body = response.get_json()
    assert body["plan"] == "basic"
    assert body["quotas"]["mcqs"] == 60
    assert body["remaining"]["pdfs"] == 10


def test_extract_text_returns_plain_text_verbatim(client, seed_user, sign_in):
    seed_user("ext-u1")
    sign_in("ext-u1")
    raw = "Chapter 1\n\n  The heart has four chambers.\n"

    response = client.post(
        "/api/extract-text",
        data={"file": (io.BytesIO(raw.encode("utf-8")), "notes.txt")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    assert response.get_json()["text"] == raw


def test_extract_text_rejects_word_files(client, seed_user, sign_in):
    seed_user("ext-u2")
    sign_in("ext-u2")

    response = client.post(
        "/api/extract-text",
        data={"file": (io.BytesIO(b"PK\x03\x04 docx"), "lecture.docx")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400
    assert "PDF or TXT" in response.get_json()["error"]


def test_extract_text_requires_file(client, seed_user, sign_in):
    seed_user("ext-u3")
    sign_in("ext-u3")

    response = client.post("/api/extract-text", data={}, content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json()["error"] == "No file provided"


def test_export_pdf_returns_attachment_and_counts_usage(client, fake_db, seed_user, sign_in):
    seed_user("pdf-u1")
    sign_in("pdf-u1")
    content = {
        "summary": "The heart pumps blood.",
        "flashcards": [{"question": "How many chambers?", "answer": "Four"}],
    }

    response = client.post("/api/export/pdf", json={"content": content, "difficulty": "kids"})

    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert "complete-study-materials.pdf" in response.headers["Content-Disposition"]
    assert response.data.startswith(b"%PDF")
    assert fake_db.data("daily_usage", _usage_doc_id("pdf-u1"))["pdfs_generated"] == 1


def test_export_single_section_filename(client, seed_user, sign_in):
    seed_user("pdf-u2")
    sign_in("pdf-u2")

    response = client.post(
        "/api/export/pdf",
        json={"content": {"flashcards": [{"question": "Q", "answer": "A"}]}, "section": "flashcards"},
    )

    assert response.status_code == 200
    assert "flashcards.pdf" in response.headers["Content-Disposition"]


def test_export_pdf_respects_daily_pdf_quota(client, fake_db, seed_user, sign_in):
    seed_user("pdf-u3")
    sign_in("pdf-u3")
    fake_db.seed("daily_usage", _usage_doc_id("pdf-u3"), {"uid": "pdf-u3", "pdfs_generated": 2})

    response = client.post("/api/export/pdf", json={"content": {"summary": "Text"}})

    assert response.status_code == 429
    assert response.get_json()["quota_exceeded"] == "pdfs"


def test_export_pdf_with_nothing_to_export(client, seed_user, sign_in):
    seed_user("pdf-u4")
    sign_in("pdf-u4")

    empty = client.post("/api/export/pdf", json={"content": {"mcqs": []}})
    unknown = client.post("/api/export/pdf", json={"content": {"summary": "Text"}, "section": "essay"})

    assert empty.status_code == 400
    assert empty.get_json()["error"] == "No content to export"
    assert unknown.status_code == 400
    assert unknown.get_json()["error"] == "Unknown section"


def test_pages_redirect_to_auth_without_session(client):
    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/auth")


def test_pages_redirect_pending_users(client, seed_user, monkeypatch):
    seed_user("page-u1", verification_status="pending")
    monkeypatch.setattr(app_module, "verify_session_cookie", lambda _request: {"uid": "page-u1", "email": "page-u1@example.com"})

    response = client.get("/community")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/verification-pending")


def test_pages_render_for_approved_users_and_gate_admin(client, seed_user, monkeypatch):
    seed_user("page-u2")
    monkeypatch.setattr(app_module, "verify_session_cookie", lambda _request: {"uid": "page-u2", "email": "page-u2@example.com"})

    home = client.get("/")
    room = client.get("/community/c-42")
    admin = client.get("/admin")

    assert home.status_code == 200
    assert b'id="generator"' in home.data
    assert b'data-community-id="c-42"' in room.data
    assert admin.status_code == 302
    assert admin.headers["Location"].endswith("/")


def test_public_pages_render(client):
    assert client.get("/auth").status_code == 200
    assert client.get("/verification-pending").status_code == 200


def test_failed_usage_reservation_charges_nothing(client, fake_db, seed_user, sign_in, monkeypatch):
    seed_user("gen-u7")
    sign_in("gen-u7")
    mcqs = [
        {"question": f"Q{i}", "options": ["A", "B", "C", "D"], "correctAnswer": 0}
        for i in range(5)
    ]
    cards = [{"question": "Q", "answer": "A"}]
    monkeypatch.setattr(app_module, "client", _fake_ai_client(args={"mcqs": mcqs, "flashcards": cards}))

    def _unavailable():
        raise RuntimeError("transaction aborted")

    monkeypatch.setattr(fake_db, "transaction", _unavailable)

    response = client.post(
        "/api/generate",
        json={"text": "Cells", "difficulty": "kids", "options": ["mcqs", "flashcards"]},
    )

    assert response.status_code == 500
    usage = fake_db.data("daily_usage", _usage_doc_id("gen-u7"))
    assert usage["mcqs_used"] == 0
    assert usage["flashcards_used"] == 0


def test_failed_pdf_build_does_not_use_pdf_quota(client, fake_db, seed_user, sign_in, monkeypatch):
    seed_user("pdf-u5")
    sign_in("pdf-u5")

    def _broken_build(*_args, **_kwargs):
        raise RuntimeError("font missing")

    monkeypatch.setattr(app_module.pdf_service, "build_study_pdf", _broken_build)

    response = client.post("/api/export/pdf", json={"content": {"summary": "The heart pumps blood."}})

    assert response.status_code == 500
    assert fake_db.data("daily_usage", _usage_doc_id("pdf-u5"))["pdfs_generated"] == 0


FULL_CONTENT = {
    "summary": "The heart pumps blood.",
    "kidsExplanation": "Your heart is a pump that never sleeps.",
    "professionalExplanation": "Cardiac output equals stroke volume times heart rate.",
    "definitions": [{"term": "Systole", "definition": "Contraction phase"}],
    "flashcards": [{"question": "How many chambers?", "answer": "Four"}],
    "trueFalse": [{"statement": "The heart has five chambers", "answer": False}],
    "mcqs": [{"question": "Which chamber pumps to the body?", "options": ["LV", "RV", "LA", "RA"], "correctAnswer": 0}],
}


@pytest.mark.parametrize("section", sorted(pdf_service.SECTION_TITLES))
def test_every_section_exports_its_own_file(client, seed_user, sign_in, section):
    seed_user("pdf-each")
    sign_in("pdf-each")

    response = client.post("/api/export/pdf", json={"content": FULL_CONTENT, "section": section})

    assert response.status_code == 200
    assert f"{section}.pdf" in response.headers["Content-Disposition"]
    assert response.data.startswith(b"%PDF")
    assert len(response.data) > 1000
