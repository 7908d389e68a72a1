"""Per-user request throttling.

Counters live in Firestore so every worker shares one budget. When Firestore
is disabled or errors out, each process keeps its own sliding window instead.
"""

import hashlib

from study_generator.repositories import rate_limit_repo

RATE_LIMIT_NAMES = {'generate', 'extract', 'export', 'checkout', 'message'}


def fixed_window_bounds(now_ts, window_seconds):
    window_seconds = int(window_seconds)
    window_start = int(now_ts // window_seconds) * window_seconds
    retry_after = max(1, int(window_start + window_seconds - now_ts))
    return window_start, retry_after


def window_counter_id(key, window_seconds, window_start):
    digest_source = f"{key}|{int(window_seconds)}|{int(window_start)}"
    return hashlib.sha256(digest_source.encode('utf-8')).hexdigest()


def check_rate_limit_firestore(
    key,
    limit,
    window_seconds,
    now_ts,
    *,
    firestore_enabled,
    db,
    firestore_module,
    counter_collection,
):
    """Return (allowed, retry_after) from a shared Firestore counter, or None when unavailable."""
    if not firestore_enabled or db is None:
        return None
    window_start, retry_after = fixed_window_bounds(now_ts, window_seconds)

    @firestore_module.transactional
    def _consume(transaction, counter_ref):
        snapshot = counter_ref.get(transaction=transaction)
        used = int((snapshot.to_dict() or {}).get('count', 0) or 0) if snapshot.exists else 0
        if used >= limit:
            return False, retry_after
        transaction.set(counter_ref, {
            'key': key,
            'count': used + 1,
            'window_start': window_start,
            'window_seconds': int(window_seconds),
            'updated_at': now_ts,
            # Collection TTL policy clears stale windows.
            'expires_at': window_start + int(window_seconds) * 3,
        }, merge=True)
        return True, 0

    try:
        counter_ref = rate_limit_repo.counter_doc_ref(
            db,
            counter_collection,
            window_counter_id(key, window_seconds, window_start),
        )
        return _consume(db.transaction(), counter_ref)
    except Exception:
        return None


def check_rate_limit_memory(key, limit, window_seconds, now_ts, *, events, lock):
    with lock:
        recent = [ts for ts in events.get(key, []) if ts >= now_ts - window_seconds]
        if len(recent) >= limit:
            events[key] = recent
            return False, max(1, int(recent[0] + window_seconds - now_ts))
        recent.append(now_ts)
        events[key] = recent
    return True, 0


def check_rate_limit(
    key,
    limit,
    window_seconds,
    *,
    firestore_enabled,
    db,
    firestore_module,
    counter_collection,
    in_memory_events,
    in_memory_lock,
    time_module,
):
    now_ts = time_module.time()
    shared = check_rate_limit_firestore(
        key,
        limit,
        window_seconds,
        now_ts,
        firestore_enabled=firestore_enabled,
        db=db,
        firestore_module=firestore_module,
        counter_collection=counter_collection,
    )
    if shared is not None:
        return shared
    return check_rate_limit_memory(
        key,
        limit,
        window_seconds,
        now_ts,
        events=in_memory_events,
        lock=in_memory_lock,
    )


def log_rate_limit_hit(limit_name, retry_after=0, *, db, logger, time_module):
    safe_name = str(limit_name or '').strip().lower()
    if safe_name not in RATE_LIMIT_NAMES or db is None:
        return False
    try:
        retry_after_seconds = max(1, int(float(retry_after)))
    except (TypeError, ValueError):
        retry_after_seconds = 1
    try:
        db.collection('rate_limit_logs').add({
            'limit_name': safe_name,
            'retry_after_seconds': retry_after_seconds,
            'created_at': time_module.time(),
        })
    except Exception as exc:
        if logger is not None:
            logger.info(f"⚠️ Could not store rate limit log ({safe_name}): {exc}")
        return False
    return True
