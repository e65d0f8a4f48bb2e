import itertools
import os
import sys

import pytest
from google.api_core import exceptions as google_exceptions

sys.path.append(os.path.dirname(os.path.dirname(__file__)))


def _matches(data: dict, field: str, op: str, value) -> bool:
    if field not in data:
        return False
    actual = data[field]
    if op == "==":
        return actual == value
    if op == "in":
        return actual in value
    if actual is None:
        return False
    if op == ">=":
        return actual >= value
    if op == "<=":
        return actual <= value
    raise ValueError(f"unsupported operator {op}")


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict | None) -> None:
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        return dict(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, collection: "FakeCollection", doc_id: str) -> None:
        self.collection = collection
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        self.collection.client.check()
        return FakeSnapshot(self.id, self.collection.docs.get(self.id))

    def set(self, data: dict) -> None:
        self.collection.client.check()
        self.collection.docs[self.id] = dict(data)

    def update(self, data: dict) -> None:
        self.collection.client.check()
        if self.id not in self.collection.docs:
            raise google_exceptions.NotFound(f"no document {self.id}")
        self.collection.docs[self.id].update(data)

    def delete(self) -> None:
        self.collection.client.check()
        self.collection.docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection: "FakeCollection", filters: tuple = ()) -> None:
        self._collection = collection
        self._filters = filters

    def where(self, field: str, op: str, value) -> "FakeQuery":
        if op == "in" and len(value) > 10:
            raise google_exceptions.InvalidArgument("'in' supports up to 10 values")
        return FakeQuery(self._collection, self._filters + ((field, op, value),))

    def stream(self):
        client = self._collection.client
        client.check()
        client.queries.append((self._collection.name, self._filters))
        for doc_id, data in list(self._collection.docs.items()):
            if all(_matches(data, *f) for f in self._filters):
                yield FakeSnapshot(doc_id, dict(data))


class FakeCollection(FakeQuery):
    def __init__(self, client: "FakeFirestoreClient", name: str) -> None:
        super().__init__(self)
        self.client = client
        self.name = name
        self.docs: dict[str, dict] = {}

    def document(self, doc_id: str | None = None) -> FakeDocument:
        return FakeDocument(self, doc_id or self.client.next_id())

    def add(self, data: dict):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeBatch:
    def __init__(self, client: "FakeFirestoreClient") -> None:
        self.client = client
        self.ops: list = []

    def set(self, ref, data) -> None:
        self.ops.append((ref.set, data))

    def update(self, ref, data) -> None:
        self.ops.append((ref.update, data))

    def delete(self, ref) -> None:
        self.ops.append((ref.delete, None))

    def commit(self) -> None:
        self.client.check()
        for op, data in self.ops:
            op(data) if data is not None else op()
        self.client.commits.append(len(self.ops))


class FakeFirestoreClient:
    """In-memory stand-in for ``google.cloud.firestore.Client``."""

    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}
        self.commits: list[int] = []
        self.queries: list = []
        self.failure: Exception | None = None
        self._ids = itertools.count(1)

    def next_id(self) -> str:
        return f"doc{next(self._ids):05d}"

    def check(self) -> None:
        if self.failure is not None:
            raise self.failure

    def collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    def batch(self) -> FakeBatch:
        return FakeBatch(self)


@pytest.fixture
def fake_firestore():
    return FakeFirestoreClient()


@pytest.fixture
def firestore_store(fake_firestore):
    from firestore_store import FirestoreStore

    return FirestoreStore(fake_firestore)


@pytest.fixture
def sqlite_store(tmp_path):
    from db import SQLiteStore

    return SQLiteStore(str(tmp_path / "training.db"))


@pytest.fixture(params=["sqlite", "firestore"])
def store(request, tmp_path):
    if request.param == "sqlite":
        from db import SQLiteStore

        return SQLiteStore(str(tmp_path / "training.db"))
    from firestore_store import FirestoreStore

    return FirestoreStore(FakeFirestoreClient())
