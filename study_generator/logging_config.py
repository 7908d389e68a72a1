import json
import logging

from flask import g, has_app_context

NOISY_LOGGERS = ('httpx', 'urllib3', 'google_genai.models')


def configure_logging(level: str = 'INFO') -> None:
    """Set up root logging once; later factory calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=getattr(logging, str(level or 'INFO').upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(logger, level, event, **fields):
    """Emit one JSON line tagged with the current request id when there is one."""
    payload = {'event': event}
    if has_app_context():
        request_id = getattr(g, 'request_id', '')
        if request_id:
            payload['request_id'] = request_id
    for key, value in fields.items():
        payload[str(key)] = value
    logger.log(level, json.dumps(payload, ensure_ascii=True, default=str))
