"""Firestore accessors for the users (profiles) collection."""

from .query_utils import apply_where


def doc_ref(db, uid):
    return db.collection('users').document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def set_doc(db, uid, data, merge=False):
    return doc_ref(db, uid).set(data, merge=merge)


def update_doc(db, uid, updates):
    return doc_ref(db, uid).update(updates)


def list_by_status(db, verification_status, firestore_module, limit=200):
    query = apply_where(db.collection('users'), 'verification_status', '==', verification_status)
    query = query.order_by('created_at', direction=firestore_module.Query.ASCENDING)
    return list(query.limit(limit).stream())


def list_by_email(db, email, limit=5):
    query = apply_where(db.collection('users'), 'email', '==', email)
    return list(query.limit(limit).stream())


def list_newest(db, firestore_module, limit=1000):
    query = db.collection('users').order_by('created_at', direction=firestore_module.Query.DESCENDING)
    return list(query.limit(limit).stream())
