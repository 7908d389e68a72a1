"""Firestore accessors for the payments collection."""

from .query_utils import apply_where


def doc_ref(db, payment_id):
    return db.collection('payments').document(payment_id)


def get_doc(db, payment_id):
    return doc_ref(db, payment_id).get()


def set_doc(db, payment_id, data, merge=True):
    return doc_ref(db, payment_id).set(data, merge=merge)


def add_doc(db, data):
    return db.collection('payments').add(data)


def list_by_uid(db, uid, firestore_module, limit):
    query = apply_where(db.collection('payments'), 'user_id', '==', uid)
    query = query.order_by('created_at', direction=firestore_module.Query.DESCENDING)
    return list(query.limit(limit).stream())


def list_by_status(db, status, firestore_module, limit):
    query = apply_where(db.collection('payments'), 'status', '==', status)
    query = query.order_by('created_at', direction=firestore_module.Query.DESCENDING)
    return list(query.limit(limit).stream())


def query_by_session_id(db, stripe_session_id, limit=1):
    query = apply_where(db.collection('payments'), 'stripe_session_id', '==', stripe_session_id).limit(limit)
    return list(query.stream())
