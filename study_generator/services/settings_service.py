"""Global app settings (maintenance switch, plan quotas and prices)."""

from study_generator.repositories import settings_repo

from . import quota_service

MAX_MAINTENANCE_MESSAGE_LEN = 500
MAX_PRICE_CENTS = 10000000
DEFAULT_MAINTENANCE_MESSAGE = 'The app is temporarily unavailable for maintenance. Please check back soon.'
DEFAULT_PLAN_PRICES = {
    'free': 0,
    'basic': 50000,
    'premium': 150000,
}


def build_default_settings():
    return {
        'app_enabled': True,
        'maintenance_message': '',
        'plan_quotas': {},
        'plan_prices': dict(DEFAULT_PLAN_PRICES),
    }


def sanitize_plan_prices(payload):
    if not isinstance(payload, dict):
        return {}
    cleaned = {}
    for plan, value in payload.items():
        safe_plan = quota_service.sanitize_plan(plan, default='')
        if not safe_plan or isinstance(value, bool):
            continue
        try:
            price = int(value)
        except (TypeError, ValueError):
            continue
        if 0 <= price <= MAX_PRICE_CENTS:
            cleaned[safe_plan] = price
    return cleaned


def sanitize_settings_update(payload):
    """Return (updates, error) for an admin settings PUT body."""
    if not isinstance(payload, dict):
        return {}, 'Invalid settings payload'
    updates = {}
    if 'app_enabled' in payload:
        if not isinstance(payload['app_enabled'], bool):
            return {}, 'app_enabled must be true or false'
        updates['app_enabled'] = payload['app_enabled']
    if 'maintenance_message' in payload:
        updates['maintenance_message'] = str(payload.get('maintenance_message') or '').strip()[:MAX_MAINTENANCE_MESSAGE_LEN]
    if 'plan_quotas' in payload:
        if not isinstance(payload['plan_quotas'], dict):
            return {}, 'plan_quotas must be an object'
        updates['plan_quotas'] = quota_service.sanitize_plan_quotas(payload['plan_quotas'])
    if 'plan_prices' in payload:
        if not isinstance(payload['plan_prices'], dict):
            return {}, 'plan_prices must be an object'
        updates['plan_prices'] = sanitize_plan_prices(payload['plan_prices'])
    if not updates:
        return {}, 'No valid settings provided'
    return updates, ''


def merge_settings(stored):
    settings = build_default_settings()
    stored = stored if isinstance(stored, dict) else {}
    if isinstance(stored.get('app_enabled'), bool):
        settings['app_enabled'] = stored['app_enabled']
    settings['maintenance_message'] = str(stored.get('maintenance_message') or '')
    settings['plan_quotas'] = quota_service.sanitize_plan_quotas(stored.get('plan_quotas'))
    settings['plan_prices'].update(sanitize_plan_prices(stored.get('plan_prices')))
    for key in ('updated_at', 'updated_by'):
        if key in stored:
            settings[key] = stored[key]
    return settings


def load_app_settings(db, logger=None):
    """Stored settings merged over defaults; defaults when Firestore is unavailable."""
    if db is None:
        return build_default_settings()
    try:
        snapshot = settings_repo.get_doc(db)
    except Exception as exc:
        if logger is not None:
            logger.info(f"⚠️ Could not load app settings, using defaults: {exc}")
        return build_default_settings()
    if not snapshot.exists:
        return build_default_settings()
    return merge_settings(snapshot.to_dict() or {})


def resolve_maintenance_message(settings):
    message = str((settings or {}).get('maintenance_message') or '').strip()
    return message or DEFAULT_MAINTENANCE_MESSAGE
