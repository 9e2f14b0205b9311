"""
Shared fixtures for the SensorWatch tests.

The document service runs against an in-memory SQLite database; the
dashboard side talks to ``FakeGateway``, which keeps documents in memory
and evaluates queries with the service's own constraint engine.
"""

import os
import uuid

# Must be set before sensorwatch.config is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from sensorwatch.backend.query import apply_constraints
from sensorwatch.frontend.cache import QueryCache
from sensorwatch.frontend.constraints import to_payload
from sensorwatch.frontend.gateway import RemoteError


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSubscription:
    def __init__(self, on_change, description):
        self.on_change = on_change
        self.description = description
        self.active = True

    def emit(self, result):
        if self.active:
            self.on_change(result)

    def unsubscribe(self):
        self.active = False


class FakeGateway:
    """
    In-memory stand-in for ``Gateway``.

    Attributes:
        collections: collection name -> {doc id -> fields}
        calls: (method, collection, ...) tuples, in call order
        fail: when set, every call raises ``RemoteError(fail)``
        hooks: method name -> callable run before the method returns
        subscriptions: every subscription opened, in order
    """

    def __init__(self):
        self.collections = {}
        self.calls = []
        self.fail = None
        self.hooks = {}
        self.subscriptions = []

    def add(self, collection, doc_id, fields):
        self.collections.setdefault(collection, {})[doc_id] = dict(fields)

    def _enter(self, method, *args):
        self.calls.append((method,) + args)
        if self.fail:
            raise RemoteError(self.fail)
        hook = self.hooks.get(method)
        if hook:
            hook(*args)

    def count(self, method):
        return sum(1 for call in self.calls if call[0] == method)

    def read_one(self, collection, doc_id):
        self._enter("read_one", collection, doc_id)
        fields = self.collections.get(collection, {}).get(doc_id)
        if fields is None:
            return None
        return {**fields, "id": doc_id}

    def read_many(self, collection, constraints=()):
        self._enter("read_many", collection, tuple(constraints))
        records = [{**fields, "id": doc_id} for doc_id, fields in self.collections.get(collection, {}).items()]
        return apply_constraints(records, to_payload(constraints))

    def create(self, collection, fields):
        self._enter("create", collection)
        doc_id = uuid.uuid4().hex
        self.add(collection, doc_id, fields)
        return doc_id

    def update(self, collection, doc_id, fields):
        self._enter("update", collection, doc_id)
        self.collections.setdefault(collection, {}).setdefault(doc_id, {}).update(fields)

    def delete(self, collection, doc_id):
        self._enter("delete", collection, doc_id)
        self.collections.get(collection, {}).pop(doc_id, None)

    def watch_collection(self, collection, constraints, on_change):
        self._enter("watch_collection", collection)
        subscription = FakeSubscription(on_change, collection)
        self.subscriptions.append(subscription)
        return subscription

    def watch_document(self, collection, doc_id, on_change):
        self._enter("watch_document", collection, doc_id)
        subscription = FakeSubscription(on_change, f"{collection}/{doc_id}")
        self.subscriptions.append(subscription)
        return subscription


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(clock=clock)


@pytest.fixture
def gateway():
    fake = FakeGateway()
    fake.add("devices", "dev-1", {"name": "Sensor Nave A", "lastActive": {"seconds": 1700000000, "nanoseconds": 0}})
    fake.add("devices", "dev-2", {"name": "Sensor Nave B"})
    return fake


def make_reading(ts, ax=0.0, ay=0.0, az=9.81, gx=0.0, gy=0.0, gz=0.0, doc_id=None, count=50):
    """Raw reading document as the service returns it."""
    accel = {"x": ax, "y": ay, "z": az}
    gyro = {"x": gx, "y": gy, "z": gz}
    return {
        "id": doc_id or uuid.uuid4().hex,
        "ts": ts,
        "count": count,
        "last": {"accel": dict(accel), "gyro": dict(gyro), "ts_local": 0},
        "avg": {"accel": accel, "gyro": gyro},
    }
