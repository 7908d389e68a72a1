"""Firestore accessors for per-day usage counters."""

from .query_utils import apply_where


def usage_doc_id(uid, date_key):
    return f"{uid}_{date_key}"


def doc_ref(db, uid, date_key):
    return db.collection('daily_usage').document(usage_doc_id(uid, date_key))


def get_doc(db, uid, date_key):
    return doc_ref(db, uid, date_key).get()


def set_doc(db, uid, date_key, data, merge=False):
    return doc_ref(db, uid, date_key).set(data, merge=merge)


def list_by_date(db, date_key, limit=2000):
    return list(apply_where(db.collection('daily_usage'), 'date', '==', date_key).limit(limit).stream())


def create_doc(db, uid, date_key, data):
    """Create the day's document; raises AlreadyExists when it is present."""
    return doc_ref(db, uid, date_key).create(data)
