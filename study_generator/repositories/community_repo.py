"""Firestore accessors for communities, members, messages, reports and bans."""

from .query_utils import apply_where


def community_doc_ref(db, community_id):
    return db.collection('communities').document(community_id)


def create_community_doc_ref(db):
    return db.collection('communities').document()


def get_community_doc(db, community_id):
    return community_doc_ref(db, community_id).get()


def list_public_communities(db, firestore_module, limit=100):
    query = apply_where(db.collection('communities'), 'type', '==', 'public')
    query = query.order_by('created_at', direction=firestore_module.Query.DESCENDING)
    return list(query.limit(limit).stream())


def member_doc_id(community_id, uid):
    return f"{community_id}__{uid}"


def member_doc_ref(db, community_id, uid):
    return db.collection('community_members').document(member_doc_id(community_id, uid))


def get_member_doc(db, community_id, uid):
    return member_doc_ref(db, community_id, uid).get()


def list_memberships_by_uid(db, uid, limit=200):
    return list(apply_where(db.collection('community_members'), 'user_id', '==', uid).limit(limit).stream())


def count_members(db, community_id):
    agg = apply_where(db.collection('community_members'), 'community_id', '==', community_id).count().get()
    if agg:
        return int(agg[0][0].value)
    return 0


def message_doc_ref(db, message_id):
    return db.collection('community_messages').document(message_id)


def create_message_doc_ref(db):
    return db.collection('community_messages').document()


def get_message_doc(db, message_id):
    return message_doc_ref(db, message_id).get()


def list_messages(db, firestore_module, community_id, after_ts=None, limit=200):
    """Latest `limit` messages, or the oldest `limit` newer than `after_ts` when polling."""
    query = apply_where(db.collection('community_messages'), 'community_id', '==', community_id)
    if after_ts is None:
        query = query.order_by('created_at', direction=firestore_module.Query.DESCENDING)
    else:
        query = apply_where(query, 'created_at', '>', after_ts)
        query = query.order_by('created_at', direction=firestore_module.Query.ASCENDING)
    return list(query.limit(limit).stream())


def report_doc_ref(db, report_id):
    return db.collection('message_reports').document(report_id)


def create_report_doc_ref(db):
    return db.collection('message_reports').document()


def list_reports(db, community_id=None, status='pending', limit=200):
    query = db.collection('message_reports')
    if community_id:
        query = apply_where(query, 'community_id', '==', community_id)
    if status:
        query = apply_where(query, 'status', '==', status)
    return list(query.limit(limit).stream())


def ban_doc_ref(db, community_id, uid):
    return db.collection('community_bans').document(member_doc_id(community_id, uid))


def get_ban_doc(db, community_id, uid):
    return ban_doc_ref(db, community_id, uid).get()
