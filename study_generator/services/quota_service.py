"""Daily quota accounting per user and plan.

Each user has one usage document per UTC day (``daily_usage/{uid}_{date}``).
Limits come from the plan defaults, optionally overridden by the global app
settings and then by per-user ``custom_daily_*`` fields set by admins.
"""

from datetime import datetime, timezone

from google.api_core.exceptions import AlreadyExists

from study_generator.repositories import usage_repo

QUOTA_TYPES = ('mcqs', 'flashcards', 'definitions', 'pdfs', 'true_false')
USAGE_FIELDS = {
    'mcqs': 'mcqs_used',
    'flashcards': 'flashcards_used',
    'definitions': 'definitions_used',
    'pdfs': 'pdfs_generated',
    'true_false': 'true_false_used',
}
# Generation option id -> quota type. Summaries and explanations are not metered.
OPTION_QUOTA_TYPES = {
    'mcqs': 'mcqs',
    'flashcards': 'flashcards',
    'definitions': 'definitions',
    'trueFalse': 'true_false',
}
QUOTA_LABELS = {
    'mcqs': 'MCQs',
    'flashcards': 'Flashcards',
    'definitions': 'Definitions',
    'pdfs': 'PDFs',
    'true_false': 'True/False',
}

PLANS = ('free', 'basic', 'premium')
DEFAULT_PLAN_QUOTAS = {
    'free': {'mcqs': 30, 'flashcards': 30, 'definitions': 30, 'pdfs': 2, 'true_false': 30},
    'basic': {'mcqs': 60, 'flashcards': 60, 'definitions': 60, 'pdfs': 10, 'true_false': 60},
    'premium': {'mcqs': 200, 'flashcards': 200, 'definitions': 200, 'pdfs': 999, 'true_false': 200},
}
PLAN_BADGES = {
    'free': 'bronze',
    'basic': 'diamond',
    'premium': 'gold_star',
}
MAX_QUOTA_VALUE = 100000


def today_key(now=None):
    current = now or datetime.now(timezone.utc)
    return current.astimezone(timezone.utc).strftime('%Y-%m-%d')


def sanitize_plan(value, default='free'):
    plan = str(value or '').strip().lower()
    return plan if plan in PLANS else default


def sanitize_quota_value(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed < 0 or parsed > MAX_QUOTA_VALUE:
        return None
    return parsed


def sanitize_plan_quotas(payload):
    """Keep only valid per-plan quota overrides from an admin settings payload."""
    if not isinstance(payload, dict):
        return {}
    cleaned = {}
    for plan, quotas in payload.items():
        safe_plan = sanitize_plan(plan, default='')
        if not safe_plan or not isinstance(quotas, dict):
            continue
        plan_values = {}
        for quota_type in QUOTA_TYPES:
            value = sanitize_quota_value(quotas.get(quota_type))
            if value is not None:
                plan_values[quota_type] = value
        if plan_values:
            cleaned[safe_plan] = plan_values
    return cleaned


def resolve_plan_quotas(plan, settings=None):
    safe_plan = sanitize_plan(plan)
    quotas = dict(DEFAULT_PLAN_QUOTAS[safe_plan])
    overrides = sanitize_plan_quotas((settings or {}).get('plan_quotas', {}))
    quotas.update(overrides.get(safe_plan, {}))
    return quotas


def effective_plan(profile, now_ts=None):
    """Stored plan, or free once a paid period (plan_expires_at) has lapsed."""
    profile = profile or {}
    plan = sanitize_plan(profile.get('plan'))
    expires_at = profile.get('plan_expires_at')
    if plan != 'free' and expires_at:
        current = now_ts if now_ts is not None else datetime.now(timezone.utc).timestamp()
        if float(expires_at) <= current:
            return 'free'
    return plan


def resolve_user_quotas(profile, settings=None, now_ts=None):
    profile = profile or {}
    quotas = resolve_plan_quotas(effective_plan(profile, now_ts), settings)
    for quota_type in QUOTA_TYPES:
        custom = sanitize_quota_value(profile.get(f'custom_daily_{quota_type}'))
        if custom is not None:
            quotas[quota_type] = custom
    return quotas


def build_empty_usage(uid, date_key):
    usage = {'uid': uid, 'date': date_key}
    for field in USAGE_FIELDS.values():
        usage[field] = 0
    return usage


def usage_count(usage, quota_type):
    try:
        return max(0, int((usage or {}).get(USAGE_FIELDS[quota_type], 0) or 0))
    except (TypeError, ValueError):
        return 0


def remaining_quota(quotas, usage, quota_type):
    limit = int((quotas or {}).get(quota_type, 0) or 0)
    return max(0, limit - usage_count(usage, quota_type))


def can_generate(quotas, usage, quota_type, amount):
    if quota_type not in USAGE_FIELDS or quotas is None or usage is None:
        return False
    limit = int(quotas.get(quota_type, 0) or 0)
    return usage_count(usage, quota_type) + int(amount) <= limit


def build_quota_snapshot(quotas, usage):
    return {
        'date': (usage or {}).get('date', ''),
        'quotas': {quota_type: int(quotas.get(quota_type, 0)) for quota_type in QUOTA_TYPES},
        'usage': {quota_type: usage_count(usage, quota_type) for quota_type in QUOTA_TYPES},
        'remaining': {quota_type: remaining_quota(quotas, usage, quota_type) for quota_type in QUOTA_TYPES},
    }


def get_or_create_daily_usage(db, uid, date_key, *, time_module):
    usage = build_empty_usage(uid, date_key)
    snapshot = usage_repo.get_doc(db, uid, date_key)
    if not snapshot.exists:
        fresh = dict(usage, updated_at=time_module.time())
        try:
            usage_repo.create_doc(db, uid, date_key, fresh)
            return fresh
        except AlreadyExists:
            # A concurrent reservation wrote the document first.
            snapshot = usage_repo.get_doc(db, uid, date_key)
    usage.update(snapshot.to_dict() or {})
    return usage


def reserve_usages(db, uid, date_key, requests, *, firestore_module, time_module):
    """Atomically consume several quota types at once.

    ``requests`` maps quota type to ``(amount, limit)``. Returns the granted
    amount per quota type and the usage document after the write. Nothing is
    consumed when the transaction fails.
    """
    usage_ref = usage_repo.doc_ref(db, uid, date_key)
    transaction = db.transaction()

    @firestore_module.transactional
    def _reserve(txn):
        snapshot = usage_ref.get(transaction=txn)
        usage = build_empty_usage(uid, date_key)
        if snapshot.exists:
            usage.update(snapshot.to_dict() or {})
        granted = {}
        for quota_type, (amount, limit) in requests.items():
            used = usage_count(usage, quota_type)
            granted[quota_type] = min(max(0, int(amount)), max(0, int(limit) - used))
            usage[USAGE_FIELDS[quota_type]] = used + granted[quota_type]
        if any(granted.values()):
            usage['updated_at'] = time_module.time()
            txn.set(usage_ref, usage, merge=True)
        return granted, usage

    return _reserve(transaction)


def reserve_usage(db, uid, date_key, quota_type, amount, limit, *, firestore_module, time_module):
    """Atomically consume up to ``amount`` units; return how many were granted."""
    if max(0, int(amount)) == 0:
        return 0
    granted, _usage = reserve_usages(
        db,
        uid,
        date_key,
        {quota_type: (amount, limit)},
        firestore_module=firestore_module,
        time_module=time_module,
    )
    return granted[quota_type]
