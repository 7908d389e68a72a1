"""Firestore accessors for fixed-window rate limit counters."""

DEFAULT_COUNTER_COLLECTION = 'rate_limit_counters'


def counter_doc_ref(db, collection_name, counter_id):
    return db.collection(collection_name or DEFAULT_COUNTER_COLLECTION).document(counter_id)
