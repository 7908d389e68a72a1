import itertools
import operator
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import AlreadyExists

from study_generator import runtime as app_module
from study_generator.services import profile_service


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocRef:
    def __init__(self, store, doc_id):
        self._store = store
        self.id = doc_id

    def get(self, transaction=None):
        return FakeSnapshot(self.id, self._store.get(self.id))

    def set(self, data, merge=False):
        if merge and self.id in self._store:
            self._store[self.id].update(data)
        else:
            self._store[self.id] = dict(data)

    def create(self, data):
        if self.id in self._store:
            raise AlreadyExists(f"Document already exists: {self.id}")
        self._store[self.id] = dict(data)

    def update(self, updates):
        if self.id not in self._store:
            raise KeyError(f"No document to update: {self.id}")
        self._store[self.id].update(updates)

    def delete(self):
        self._store.pop(self.id, None)


class FakeQuery:
    OPS = {
        '==': operator.eq,
        '>': operator.gt,
        '>=': operator.ge,
        '<': operator.lt,
        '<=': operator.le,
    }

    def __init__(self, store, filters=(), max_results=None, order=None):
        self._store = store
        self._filters = tuple(filters)
        self._max_results = max_results
        self._order = order

    # Positional-only so apply_where exercises its fallback path.
    def where(self, field_path, op_string, value):
        return FakeQuery(self._store, self._filters + ((field_path, op_string, value),), self._max_results, self._order)

    def limit(self, count):
        return FakeQuery(self._store, self._filters, count, self._order)

    def order_by(self, field_path, direction=None):
        return FakeQuery(self._store, self._filters, self._max_results, (field_path, direction))

    def _matches(self, data):
        for field_path, op_string, value in self._filters:
            if field_path not in data or data[field_path] is None:
                return False
            if not self.OPS[op_string](data[field_path], value):
                return False
        return True

    def stream(self):
        rows = [(doc_id, data) for doc_id, data in list(self._store.items()) if self._matches(data)]
        if self._order:
            field_path, direction = self._order
            rows.sort(key=lambda row: row[1].get(field_path, 0) or 0, reverse=direction == 'DESCENDING')
        if self._max_results is not None:
            rows = rows[:self._max_results]
        return iter([FakeSnapshot(doc_id, data) for doc_id, data in rows])

    def count(self):
        total = len(list(self.stream()))
        return SimpleNamespace(get=lambda: [[SimpleNamespace(value=total)]])


class FakeCollection(FakeQuery):
    _ids = itertools.count(1)

    def document(self, doc_id=None):
        return FakeDocRef(self._store, doc_id or f"auto-{next(self._ids)}")

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return 0, ref


class FakeTransaction:
    def set(self, ref, data, merge=False):
        ref.set(data, merge=merge)


class FakeFirestore:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return FakeCollection(self.collections.setdefault(name, {}))

    def transaction(self):
        return FakeTransaction()

    def seed(self, collection_name, doc_id, data):
        self.collections.setdefault(collection_name, {})[doc_id] = dict(data)

    def data(self, collection_name, doc_id):
        return self.collections.get(collection_name, {}).get(doc_id)

    def all(self, collection_name):
        return dict(self.collections.get(collection_name, {}))


FAKE_FIRESTORE_MODULE = SimpleNamespace(
    transactional=lambda func: func,
    Query=SimpleNamespace(DESCENDING='DESCENDING', ASCENDING='ASCENDING'),
)


@pytest.fixture()
def fake_db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(app_module, "db", db)
    monkeypatch.setattr(app_module, "firestore", FAKE_FIRESTORE_MODULE)
    return db


@pytest.fixture()
def client(fake_db, monkeypatch):
    app_module.app.config["TESTING"] = True
    monkeypatch.setattr(app_module, "SENTRY_BACKEND_DSN", "")
    monkeypatch.setattr(app_module, "RATE_LIMIT_FIRESTORE_ENABLED", False)
    monkeypatch.setattr(app_module, "ADMIN_EMAILS", set())
    monkeypatch.setattr(app_module, "ADMIN_UIDS", set())
    app_module.RATE_LIMIT_EVENTS.clear()
    with app_module.app.test_client() as test_client:
        yield test_client
    app_module.RATE_LIMIT_EVENTS.clear()


@pytest.fixture()
def seed_user(fake_db):
    """Store a profile; approved by default."""

    def _seed(uid, email=None, **overrides):
        fields = {
            'real_name': f"Student {uid}",
            'father_name': 'Parent',
            'whatsapp_number': '+923001234567',
            'batch_year': '2024',
            'class_or_degree': 'MBBS',
        }
        profile = profile_service.build_new_profile(
            uid,
            email or f"{uid}@example.com",
            fields,
            now_ts=1000.0,
            verification_status='approved',
        )
        profile.update(overrides)
        fake_db.seed('users', uid, profile)
        return profile

    return _seed


@pytest.fixture()
def sign_in(monkeypatch):
    """Make every request carry a verified Firebase token for ``uid``."""

    def _sign_in(uid, email=None):
        token = {"uid": uid, "email": email or f"{uid}@example.com"}
        monkeypatch.setattr(app_module, "verify_firebase_token", lambda _request: token)
        return token

    return _sign_in
