import itertools
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import AlreadyExists, NotFound

from notification_dispatch.config import settings
from notification_dispatch.notification_store import NotificationStore
from notification_dispatch.token_reconciler import TokenReconciler
from notification_dispatch.user_lookup import UserLookup


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db, collection, doc_id):
        self.db = db
        self.collection = collection
        self.id = doc_id

    @property
    def _key(self):
        return (self.collection, self.id)

    def get(self):
        self.db.reads.append(self._key)
        return FakeSnapshot(self.id, self.db.docs.get(self._key))

    def create(self, data):
        if self._key in self.db.docs:
            raise AlreadyExists(f"Document already exists: {self.collection}/{self.id}")
        self.db.docs[self._key] = dict(data)

    def set(self, data):
        self.db.docs[self._key] = dict(data)

    def update(self, data):
        if self._key not in self.db.docs:
            raise NotFound(f"No document to update: {self.collection}/{self.id}")
        self.db.docs[self._key].update(data)
        self.db.updates.append((self._key, dict(data)))


class FakeCollection:
    def __init__(self, db, name):
        self.db = db
        self.name = name

    def document(self, doc_id):
        return FakeDocumentRef(self.db, self.name, doc_id)

    def add(self, data):
        ref = self.document(f"auto-{next(self.db.ids)}")
        ref.set(data)
        return None, ref


class FakeFirestore:
    """In-memory stand-in for the Firestore client used by the dispatchers."""

    def __init__(self):
        self.docs = {}
        self.reads = []
        self.updates = []
        self.ids = itertools.count(1)

    def collection(self, name):
        return FakeCollection(self, name)

    def put(self, collection, doc_id, data):
        self.docs[(collection, doc_id)] = dict(data)

    def data(self, collection, doc_id):
        return self.docs.get((collection, doc_id))

    def documents(self, collection):
        return {doc_id: data for (name, doc_id), data in self.docs.items() if name == collection}


class FakeFirebaseClient:
    """Records multicast sends and answers with per-token outcomes."""

    def __init__(self, firestore_db):
        self.firestore_db = firestore_db
        self.sent = []
        self.failures = {}
        self.batch_error = None

    def send_multicast(self, tokens, payload):
        self.sent.append((list(tokens), payload))
        if self.batch_error is not None:
            raise self.batch_error
        responses = []
        for token in tokens:
            error = self.failures.get(token)
            responses.append(SimpleNamespace(success=error is None, exception=error, message_id=None))
        return SimpleNamespace(responses=responses)


@pytest.fixture
def firestore_db():
    return FakeFirestore()


@pytest.fixture
def firebase_client(firestore_db):
    return FakeFirebaseClient(firestore_db)


@pytest.fixture
def users(firestore_db):
    return UserLookup(firestore_db)


@pytest.fixture
def notifications(firestore_db):
    return NotificationStore(firestore_db)


@pytest.fixture
def reconciler(firebase_client, users):
    return TokenReconciler(firebase_client, users)


@pytest.fixture
def add_user(firestore_db):
    def _add_user(user_id, username=None, tokens=None, matched=None):
        firestore_db.put(settings.users_collection, user_id, {
            "username": username or user_id,
            "deviceTokens": list(tokens or []),
            "matchedUserID": matched,
        })
    return _add_user


def encode_value(value):
    """Encode a Python value the way Firestore document events do."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, list):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value)}")


def encode_fields(data):
    return {name: encode_value(value) for name, value in data.items()}


def event_document(path, data):
    if data is None:
        return None
    return {
        "name": f"projects/pairchat/databases/(default)/documents/{path}",
        "fields": encode_fields(data),
        "createTime": "2024-05-01T10:00:00.000000Z",
        "updateTime": "2024-05-01T10:00:00.000000Z",
    }


def document_event_data(path, before=None, after=None, update_mask=None):
    data = {}
    if update_mask is not None:
        data["updateMask"] = {"fieldPaths": list(update_mask)}
    if before is not None:
        data["oldValue"] = event_document(path, before)
    if after is not None:
        data["value"] = event_document(path, after)
    return data
