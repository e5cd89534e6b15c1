"""Test fixtures with a mocked Firestore."""
import uuid
from datetime import timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from google.api_core.datetime_helpers import DatetimeWithNanoseconds


# --- Fake Firestore in-memory store ---

class FakeDocRef:
    def __init__(self, db, collection_path, doc_id):
        self._db = db
        self._store = db._store
        self._collection_path = collection_path
        self.id = doc_id

    def _key(self):
        return (self._collection_path, self.id)

    def get(self):
        data = self._store.get(self._key())
        return FakeDocSnapshot(self._db, self._collection_path, self.id, data)

    def set(self, data, merge=False):
        if merge and self._key() in self._store:
            self._store[self._key()].update(data)
        else:
            self._store[self._key()] = dict(data)

    def update(self, data):
        existing = self._store.get(self._key(), {})
        existing.update(data)
        self._store[self._key()] = existing

    def delete(self):
        self._store.pop(self._key(), None)


class FakeDocSnapshot:
    def __init__(self, db, collection_path, doc_id, data):
        self.id = doc_id
        self._data = data
        self.exists = data is not None
        self.reference = FakeDocRef(db, collection_path, doc_id)

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeQuery:
    def __init__(self, db, collection_path, docs=None):
        self._db = db
        self._store = db._store
        self._collection_path = collection_path
        self._docs = docs

    def _get_docs(self):
        if self._docs is not None:
            return self._docs
        results = []
        for (coll, doc_id), data in self._store.items():
            if coll == self._collection_path:
                results.append(FakeDocSnapshot(self._db, self._collection_path, doc_id, data))
        return results

    def where(self, filter=None, **kwargs):
        docs = self._get_docs()
        filtered = [d for d in docs if d.to_dict().get(filter.field_path) == filter.value]
        return FakeQuery(self._db, self._collection_path, filtered)

    def limit(self, n):
        docs = self._get_docs()[:n]
        return FakeQuery(self._db, self._collection_path, docs)

    def stream(self):
        if self._collection_path in self._db.failing_collections:
            raise RuntimeError(f"{self._collection_path} unavailable")
        return iter(self._get_docs())


class FakeCollectionRef(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocRef(self._db, self._collection_path, doc_id or uuid.uuid4().hex)


class FakeWriteBatch:
    def __init__(self, db):
        self._db = db
        self._ops = []

    def set(self, ref, data, merge=False):
        if ref._collection_path in self._db.failing_collections:
            raise RuntimeError(f"{ref._collection_path} unavailable")
        self._ops.append(lambda: ref.set(data, merge=merge))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._db.commits.append(len(self._ops))


class FakeFirestoreClient:
    def __init__(self):
        self._store = {}
        self.commits = []
        self.failing_collections = set()

    def collection(self, name):
        return FakeCollectionRef(self, name)

    def batch(self):
        return FakeWriteBatch(self)

    # Test helpers

    def seed(self, collection_name, doc_id, data):
        self._store[(collection_name, doc_id)] = dict(data)

    def docs(self, collection_name):
        return {
            doc_id: data
            for (coll, doc_id), data in self._store.items()
            if coll == collection_name
        }


# --- Fixtures ---

@pytest.fixture()
def fake_db():
    return FakeFirestoreClient()


@pytest.fixture()
def target_db():
    """A second, empty store to restore backups into."""
    return FakeFirestoreClient()


def _ts(*args):
    return DatetimeWithNanoseconds(*args, tzinfo=timezone.utc)


@pytest.fixture()
def seeded_db(fake_db):
    """Farm f1 owned by user u1, with a small family of goats and their records."""
    fake_db.seed("farms", "f1", {
        "name": "La Esperanza",
        "ownerId": "u1",
        "collaboratorsIds": ["u9"],
        "createdAt": _ts(2023, 1, 10, 9, 0, 0),
        "updatedAt": _ts(2024, 5, 1, 12, 30, 0),
    })
    fake_db.seed("animals", "mom", {
        "farmId": "f1",
        "farmerId": "u1",
        "animalNumber": "C-001",
        "type": "cabra",
        "birthDate": _ts(2021, 3, 2, 0, 0, 0),
        "createdAt": _ts(2023, 1, 11, 8, 0, 0),
        "records": [
            {"type": "vaccine", "date": _ts(2024, 2, 1, 10, 0, 0), "title": "2024-02-01T10:00:00 dose"},
        ],
    })
    fake_db.seed("animals", "kid", {
        "farmId": "f1",
        "farmerId": "u1",
        "animalNumber": "C-002",
        "motherId": "mom",
        "fatherId": "external-buck",
        "birthDate": _ts(2024, 4, 20, 6, 15, 0),
    })
    fake_db.seed("animals", "other-farm", {"farmId": "f2", "farmerId": "u2", "animalNumber": "X-1"})
    fake_db.seed("breedingRecords", "b1", {
        "farmId": "f1",
        "farmerId": "u1",
        "maleId": "external-buck",
        "breedingDate": _ts(2023, 11, 20, 0, 0, 0),
        "femaleBreedingInfo": [
            {
                "femaleId": "mom",
                "offspring": ["kid"],
                "expectedBirthDate": _ts(2024, 4, 18, 0, 0, 0),
                "actualBirthDate": _ts(2024, 4, 20, 6, 15, 0),
            },
        ],
        "comments": [{"text": "all good", "timestamp": _ts(2024, 4, 21, 9, 0, 0)}],
    })
    fake_db.seed("reminders", "r1", {
        "farmId": "f1",
        "farmerId": "u1",
        "title": "Deworm",
        "dueDate": _ts(2024, 6, 1, 0, 0, 0),
    })
    fake_db.seed("reminders", "r-other-user", {"farmId": "f1", "farmerId": "u3", "title": "Not mine"})
    fake_db.seed("weightRecords", "w1", {
        "farmerId": "u1",
        "animalId": "kid",
        "weight": 4.2,
        "date": _ts(2024, 5, 1, 0, 0, 0),
    })
    fake_db.seed("farmInvitations", "i1", {
        "farmId": "f1",
        "email": "helper@example.com",
        "status": "accepted",
        "userId": "u9",
        "token": "old-token",
        "acceptedAt": _ts(2024, 1, 5, 0, 0, 0),
        "expiresAt": _ts(2024, 1, 12, 0, 0, 0),
    })
    return fake_db


@pytest.fixture()
def client(fake_db):
    with patch("backend.dependencies._init_firebase"):
        with patch("backend.dependencies.get_firestore_client", return_value=fake_db):
            from backend.main import app
            yield TestClient(app)
