"""
Shared fixtures: an in-memory stand-in for Firestore, the Storage bucket and
Firebase Auth, wired into ``create_app`` so routes run end to end without
Google credentials.
"""
import copy
import itertools
import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from linestamp.core.config import Settings
from linestamp.services.gcp_clients import Clients
from linestamp.services.submission import MockSubmitter
from linestamp.services.storage_gcp import StampStore

_DESCENDING = "DESCENDING"


# ───────────────────────── Firestore ─────────────────────────
class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)
        self.exists = data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocRef:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self._collection = collection
        self.id = doc_id

    @property
    def _key(self):
        return (self._collection, self.id)

    def get(self, transaction=None):
        return FakeSnapshot(self, self._db.docs.get(self._key))

    def set(self, data, merge=False):
        self._db.write(("set", self._key, data, merge))

    def update(self, data):
        self._db.write(("update", self._key, data, False))

    def create(self, data):
        self._db.write(("create", self._key, data, False))

    def delete(self):
        self._db.write(("delete", self._key, None, False))


class FakeQuery:
    def __init__(self, db, collection, filters=(), orders=(), limit_to=None):
        self._db = db
        self._collection = collection
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit_to

    def where(self, filter=None):
        return FakeQuery(self._db, self._collection, self._filters + (filter,), self._orders, self._limit)

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._db, self._collection, self._filters, self._orders + ((field, direction),), self._limit)

    def limit(self, n):
        return FakeQuery(self._db, self._collection, self._filters, self._orders, n)

    @staticmethod
    def _matches(data, f):
        value = data.get(f.field_path)
        if f.op_string == "==":
            return value == f.value
        if f.op_string == "in":
            return value in f.value
        raise NotImplementedError(f.op_string)

    def get(self):
        rows = [
            (doc_id, data) for (coll, doc_id), data in self._db.docs.items()
            if coll == self._collection and all(self._matches(data, f) for f in self._filters)
        ]
        for field, direction in reversed(self._orders):
            rows.sort(key=lambda r: r[1].get(field), reverse=direction == _DESCENDING)
        if self._limit:
            rows = rows[: self._limit]
        return [FakeSnapshot(FakeDocRef(self._db, self._collection, doc_id), data) for doc_id, data in rows]

    def stream(self):
        return iter(self.get())


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        super().__init__(db, name)
        self.name = name

    def document(self, doc_id=None):
        return FakeDocRef(self._db, self.name, doc_id or uuid.uuid4().hex[:20])


class FakeBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(("set", ref._key, data, merge))

    def update(self, ref, data):
        self._ops.append(("update", ref._key, data, False))

    def delete(self, ref):
        self._ops.append(("delete", ref._key, None, False))

    def commit(self):
        self._db.apply(self._ops)
        self._ops = []


class FakeTransaction(FakeBatch):
    """Reads go straight to the store; writes are held until the callable returns."""

    def create(self, ref, data):
        self._ops.append(("create", ref._key, data, False))


class FakeFirestore:
    def __init__(self):
        self.docs = {}
        self.transactions_started = 0
        self.transactions_committed = 0

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)

    def transaction(self):
        self.transactions_started += 1
        return FakeTransaction(self)

    def write(self, op):
        self.apply([op])

    def apply(self, ops):
        staged = copy.deepcopy(self.docs)
        for kind, key, data, merge in ops:
            if kind == "create":
                if key in staged:
                    raise ValueError(f"Document already exists: {key}")
                staged[key] = copy.deepcopy(data)
            elif kind == "set":
                staged[key] = {**staged.get(key, {}), **copy.deepcopy(data)} if merge else copy.deepcopy(data)
            elif kind == "update":
                if key not in staged:
                    raise ValueError(f"No document to update: {key}")
                doc = copy.deepcopy(staged[key])
                for path, value in data.items():
                    *parents, leaf = path.split(".")
                    node = doc
                    for part in parents:
                        node = node.setdefault(part, {})
                    node[leaf] = copy.deepcopy(value)
                staged[key] = doc
            elif kind == "delete":
                staged.pop(key, None)
        self.docs = staged

    # test helpers
    def doc(self, collection, doc_id):
        return copy.deepcopy(self.docs.get((collection, doc_id)))

    def put(self, collection, doc_id, data):
        self.docs[(collection, doc_id)] = copy.deepcopy(data)

    def all(self, collection):
        return [dict(d, id=k[1]) for k, d in self.docs.items() if k[0] == collection]


def fake_transactional(fn):
    def _run(txn, *args, **kwargs):
        result = fn(txn, *args, **kwargs)
        txn._db.apply(txn._ops)
        txn._db.transactions_committed += 1
        return result
    return _run


# ───────────────────────── Storage / Auth ─────────────────────────
class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.cache_control = None
        self.public = False

    def upload_from_string(self, data, content_type=None):
        self.bucket.objects[self.name] = (bytes(data), content_type)

    def make_public(self):
        self.public = True


class FakeBucket:
    name = "linestamp-test.firebasestorage.app"

    def __init__(self):
        self.objects = {}

    def blob(self, name):
        return FakeBlob(self, name)


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.users = {}

    def add_user(self, uid, token=None, display_name=None, email=None):
        token = token or f"token-{uid}"
        self.tokens[token] = uid
        self.users[uid] = SimpleNamespace(uid=uid, display_name=display_name, email=email, photo_url=None)
        return token

    def verify_id_token(self, id_token):
        if id_token not in self.tokens:
            raise ValueError("Invalid ID token")
        return {"uid": self.tokens[id_token]}

    def get_user(self, uid):
        return self.users[uid]


# ───────────────────────── Fixtures ─────────────────────────
@pytest.fixture
def settings():
    return Settings(
        environment="test",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret="whsec_test_secret",
        frontend_url="http://localhost:3000",
        submission_step_delay_s=0,
        submission_final_delay_s=0,
    )


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def fake_auth():
    return FakeAuth()


@pytest.fixture
def store(db, bucket):
    return StampStore(db, bucket, transactional=fake_transactional)


@pytest.fixture
def session_ok():
    """Flip ``session_ok.valid`` to False to make the mock marketplace expire the session."""
    return SimpleNamespace(valid=True)


@pytest.fixture
def app(settings, db, bucket, fake_auth, store, session_ok):
    from linestamp.main import create_app

    submitter = MockSubmitter(0, 0, session_check=lambda _sid: session_ok.valid, sleep=lambda _s: None)
    return create_app(
        settings=settings,
        clients=Clients(db=db, bucket=bucket, auth=fake_auth),
        store=store,
        submitter=submitter,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def alice(fake_auth, db):
    token = fake_auth.add_user("alice", display_name="Alice", email="alice@example.com")
    db.put("users", "alice", {"uid": "alice", "tokenBalance": 20, "createdAt": "2024-01-01T00:00:00.000Z"})
    return {"uid": "alice", "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def bob(fake_auth, db):
    token = fake_auth.add_user("bob", display_name="Bob")
    db.put("users", "bob", {"uid": "bob", "tokenBalance": 0, "createdAt": "2024-01-01T00:00:00.000Z"})
    return {"uid": "bob", "headers": {"Authorization": f"Bearer {token}"}}


_seq = itertools.count(1)


@pytest.fixture
def make_stamp(db):
    """Insert a stamp document directly; returns its id."""
    def _make(user_id="alice", status="generated", **fields):
        stamp_id = f"stamp{next(_seq)}"
        n = next(_seq)
        db.put("stamps", stamp_id, {
            "userId": user_id,
            "status": status,
            "retryCount": 0,
            "createdAt": f"2024-01-01T{n // 3600 % 24:02d}:{n // 60 % 60:02d}:{n % 60:02d}.000Z",
            "updatedAt": f"2024-01-01T{n // 3600 % 24:02d}:{n // 60 % 60:02d}:{n % 60:02d}.000Z",
            **fields,
        })
        return stamp_id
    return _make
