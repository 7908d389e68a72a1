import pytest

from study_generator.config import load_config


def test_load_config_requires_secret_key_in_non_dev(monkeypatch):
    monkeypatch.setenv("RENDER", "true")
    monkeypatch.delenv("FLASK_ENV", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.delenv("ENV", raising=False)
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    with pytest.raises(RuntimeError):
        load_config()


def test_load_config_allows_missing_secret_in_dev(monkeypatch):
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.delenv("SENTRY_ENVIRONMENT", raising=False)
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.delenv("FLASK_SECRET_KEY", raising=False)

    cfg = load_config()
    assert cfg.flask_secret_key == ""
    assert cfg.sentry_release == "study-material-generator"


def test_create_app_records_factory_state(monkeypatch):
    monkeypatch.delenv("RENDER", raising=False)
    monkeypatch.setenv("FLASK_ENV", "development")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    from study_generator import create_app

    app = create_app()
    state = app.extensions["study_generator"]

    assert state["factory_initialized"] is True
    assert state["log_level"] == "WARNING"


def test_log_event_includes_request_id(caplog):
    import logging

    from flask import Flask, g

    from study_generator.logging_config import log_event

    logger = logging.getLogger("study_generator.test")
    with Flask(__name__).app_context():
        g.request_id = "req-9"
        with caplog.at_level(logging.INFO, logger="study_generator.test"):
            log_event(logger, logging.INFO, "pdf_exported", uid="u1")

    assert '"request_id": "req-9"' in caplog.text
    assert '"event": "pdf_exported"' in caplog.text
