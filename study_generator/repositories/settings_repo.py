"""Firestore accessors for global app settings."""

SETTINGS_DOC_ID = 'global'


def doc_ref(db):
    return db.collection('app_settings').document(SETTINGS_DOC_ID)


def get_doc(db):
    return doc_ref(db).get()


def set_doc(db, data, merge=True):
    return doc_ref(db).set(data, merge=merge)
