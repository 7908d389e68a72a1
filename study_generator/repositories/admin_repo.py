"""Firestore accessors for the admin audit log and overview counts."""

from .query_utils import apply_where


def add_action(db, payload):
    return db.collection('admin_actions').add(payload)


def list_recent_actions(db, limit, firestore_module=None):
    query = db.collection('admin_actions')
    if firestore_module is not None:
        query = query.order_by('timestamp', direction=firestore_module.Query.DESCENDING)
    return list(query.limit(limit).stream())


def count_collection(db, collection_name):
    agg = db.collection(collection_name).count().get()
    if agg:
        return int(agg[0][0].value)
    return 0


def count_where(db, collection_name, field_path, op_string, value):
    agg = apply_where(db.collection(collection_name), field_path, op_string, value).count().get()
    if agg:
        return int(agg[0][0].value)
    return 0
