"""
Data bindings between the dashboard and the document service.

A binding owns the state a view renders from (``data``, ``loading``,
``error``) and knows how to refresh it:

- ``CollectionBinding`` / ``DocumentBinding`` fetch once per target and go
  through the shared ``QueryCache``.
- ``LiveCollectionBinding`` / ``LiveDocumentBinding`` hold one gateway watch
  and replace ``data`` on every emission. They never cache.
- ``DocumentOperations`` wraps writes and invalidates the cache of the
  collection it touched.

Fetches carry a generation number. A result that comes back after the target
changed is dropped, so a slow response for old parameters can never replace
the data of the current ones.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sensorwatch.frontend.cache import QueryCache, collection_key, document_key
from sensorwatch.frontend.constraints import Constraint
from sensorwatch.frontend.gateway import Gateway, RemoteError, Subscription

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Error desconocido"


class _FetchBinding:
    """Shared state machine of the cached, fetch-on-change bindings."""

    empty: Any = None

    def __init__(self, gateway: Gateway, cache: QueryCache):
        self.gateway = gateway
        self.cache = cache
        self.data = self.empty
        self.loading = False
        self.error: Optional[str] = None
        self._target: Optional[Tuple] = None
        self._key: Optional[str] = None
        self._generation = 0
        self._lock = threading.Lock()

    def _bind(self, target: Tuple, key: Optional[str], use_cache: bool = True):
        with self._lock:
            if target == self._target:
                return self
            self._target = target
            self._key = key
        self._fetch(use_cache=use_cache)
        return self

    def refetch(self):
        """Fetch again from the service, skipping the cache read."""
        if self._target is not None:
            self._fetch(use_cache=False)
        return self

    def clear_cache(self) -> None:
        if self._key is not None:
            self.cache.delete(self._key)

    def _load(self, target: Tuple):
        raise NotImplementedError

    def _store(self, key: str, result) -> None:
        raise NotImplementedError

    def _from_entry(self, records: List[Dict[str, Any]]):
        raise NotImplementedError

    def _fetch(self, use_cache: bool) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            target, key = self._target, self._key
            self.error = None

            if key is None:
                self.data = self.empty
                self.loading = False
                return

            if use_cache:
                entry = self.cache.get(key)
                if entry is not None:
                    self.data = self._from_entry(entry.records)
                    self.loading = False
                    return

            self.loading = True

        try:
            result = self._load(target)
        except RemoteError as e:
            with self._lock:
                if generation == self._generation:
                    self.error = e.message or UNKNOWN_ERROR
                    self.loading = False
            return

        self._store(key, result)
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale result for {key}")
                return
            self.data = result
            self.loading = False

    def snapshot(self) -> Dict[str, Any]:
        return {"data": self.data, "loading": self.loading, "error": self.error}


class CollectionBinding(_FetchBinding):
    """Cached query over a collection."""

    empty: List[Dict[str, Any]] = []

    def bind(self, collection: str, constraints: Sequence[Constraint] = (), use_cache: bool = True):
        constraints = tuple(constraints)
        return self._bind((collection, constraints), collection_key(collection, constraints), use_cache)

    def _load(self, target):
        collection, constraints = target
        return self.gateway.read_many(collection, constraints)

    def _store(self, key, result):
        self.cache.put(key, result)

    def _from_entry(self, records):
        return list(records)


class DocumentBinding(_FetchBinding):
    """Cached lookup of one document; ``doc_id=None`` yields ``None``."""

    def bind(self, collection: str, doc_id: Optional[str], use_cache: bool = True):
        key = document_key(collection, doc_id) if doc_id else None
        return self._bind((collection, doc_id), key, use_cache)

    def _load(self, target):
        collection, doc_id = target
        return self.gateway.read_one(collection, doc_id)

    def _store(self, key, result):
        # Missing documents are not cached
        if result is not None:
            self.cache.put(key, [result])

    def _from_entry(self, records):
        return records[0] if records else None


class _LiveBinding:
    """
    Holds at most one open subscription.

    Use as a context manager to release the subscription on exit::

        with LiveDocumentBinding(gateway) as device:
            device.watch("devices", device_id)
            ...
    """

    empty: Any = None

    def __init__(self, gateway: Gateway):
        self.gateway = gateway
        self.data = self.empty
        self.loading = False
        self.error: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self._target: Optional[Tuple] = None
        self._generation = 0
        self._lock = threading.Lock()

    def _open(self, target: Tuple, on_change) -> Optional[Subscription]:
        raise NotImplementedError

    def _watch(self, target: Tuple):
        with self._lock:
            if target == self._target and self._subscription is not None:
                return self
            previous = self._subscription
            self._subscription = None
            self._target = target
            self._generation += 1
            generation = self._generation
            self.loading = True
            self.error = None
        if previous is not None:
            previous.unsubscribe()

        try:
            subscription = self._open(target, self._receiver(generation))
        except RemoteError as e:
            with self._lock:
                if generation == self._generation:
                    self.error = e.message or UNKNOWN_ERROR
                    self.loading = False
            return self

        with self._lock:
            current = generation == self._generation
            if current:
                self._subscription = subscription
                if subscription is None:
                    self.data = self.empty
                    self.loading = False
        if not current and subscription is not None:
            # Target moved on while this one was opening
            subscription.unsubscribe()
        return self

    def _receiver(self, generation: int):
        def on_change(result):
            with self._lock:
                if generation != self._generation:
                    return
                self.data = result
                self.loading = False

        return on_change

    def close(self) -> None:
        with self._lock:
            subscription = self._subscription
            self._subscription = None
            self._target = None
            self._generation += 1
        if subscription is not None:
            subscription.unsubscribe()

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def snapshot(self) -> Dict[str, Any]:
        return {"data": self.data, "loading": self.loading, "error": self.error}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class LiveCollectionBinding(_LiveBinding):
    empty: List[Dict[str, Any]] = []

    def watch(self, collection: str, constraints: Sequence[Constraint] = ()):
        return self._watch((collection, tuple(constraints)))

    def _open(self, target, on_change):
        collection, constraints = target
        return self.gateway.watch_collection(collection, constraints, on_change)


class LiveDocumentBinding(_LiveBinding):
    def watch(self, collection: str, doc_id: Optional[str]):
        return self._watch((collection, doc_id))

    def _open(self, target, on_change):
        collection, doc_id = target
        if not doc_id:
            return None
        return self.gateway.watch_document(collection, doc_id, on_change)


class DocumentOperations:
    """Writes that keep the query cache honest."""

    def __init__(self, gateway: Gateway, cache: QueryCache):
        self.gateway = gateway
        self.cache = cache
        self.loading = False
        self.error: Optional[str] = None

    def _run(self, collection: str, failure: str, call, *args):
        self.loading = True
        self.error = None
        try:
            result = call(*args)
        except RemoteError as e:
            self.error = e.message or failure
            raise
        finally:
            self.loading = False
        removed = self.cache.invalidate_prefix(collection)
        logger.debug(f"Invalidated {removed} cached queries for {collection}")
        return result

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        return self._run(collection, "Error al agregar documento", self.gateway.create, collection, data)

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._run(collection, "Error al actualizar documento", self.gateway.update, collection, doc_id, data)

    def remove(self, collection: str, doc_id: str) -> None:
        self._run(collection, "Error al eliminar documento", self.gateway.delete, collection, doc_id)
