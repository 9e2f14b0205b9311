"""
HTTP gateway to the SensorWatch document service.

Every operation addresses documents by collection name (which may be a nested
path such as ``devices/<id>/readings``) and document id. Transport failures
are logged and re-raised as ``RemoteError``; callers decide how to surface
them. Absent documents are not errors.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from sensorwatch import config
from sensorwatch.frontend.constraints import Constraint, to_payload

logger = logging.getLogger(__name__)


class RemoteError(Exception):
    """A document service call failed (network error or non-2xx response)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class Subscription:
    """
    Polling watch over a collection query or a single document.

    ``fetch`` is called every ``interval`` seconds on a daemon thread and
    ``on_change`` receives the result whenever it differs from the last one
    delivered (the first result is always delivered). Fetch errors are logged
    and the subscription keeps polling.
    """

    def __init__(self, fetch: Callable[[], Any], on_change: Callable[[Any], None],
                 interval: float, description: str):
        self._fetch = fetch
        self._on_change = on_change
        self._interval = interval
        self._description = description
        self._stopped = threading.Event()
        # Held while delivering, so unsubscribe() returns only once no callback runs
        self._deliver_lock = threading.RLock()
        self._last: Any = None
        self._delivered = False
        self._thread = threading.Thread(target=self._run, name=f"watch:{description}", daemon=True)

    def start(self) -> "Subscription":
        self._thread.start()
        return self

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def unsubscribe(self) -> None:
        self._stopped.set()
        with self._deliver_lock:
            pass

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                result = self._fetch()
            except RemoteError as e:
                logger.error(f"Error in subscription to {self._description}: {e}")
            else:
                with self._deliver_lock:
                    if self._stopped.is_set():
                        return
                    if not self._delivered or result != self._last:
                        self._last = result
                        self._delivered = True
                        self._on_change(result)
            self._stopped.wait(self._interval)


class Gateway:
    """Synchronous client for the document service."""

    def __init__(self, base_url: str = config.API_URL, timeout: float = config.API_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 watch_interval: float = config.WATCH_INTERVAL):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.watch_interval = watch_interval

    def _request(self, method: str, path: str, allow_404: bool = False, decode: bool = True, **kwargs) -> Any:
        """
        Send one request and return the decoded JSON body.

        Returns None for an allowed 404, or when ``decode`` is False.

        Raises:
            RemoteError: transport failure, non-2xx status, a body that is not
                JSON, or a request body that cannot be encoded
        """
        try:
            response = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
            if allow_404 and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json() if decode else None
        except (requests.RequestException, ValueError, TypeError) as e:
            logger.error(f"Error calling {method} {path}: {e}")
            raise RemoteError(str(e), cause=e) from e

    def read_one(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document, or None if it does not exist."""
        return self._request("GET", f"/api/documents/{doc_id}", allow_404=True, params={"collection": collection})

    def read_many(self, collection: str, constraints: Sequence[Constraint] = ()) -> List[Dict[str, Any]]:
        """Run a query; an empty constraint list returns the whole collection."""
        return self._request("POST", "/api/query", json={
            "collection": collection,
            "constraints": to_payload(constraints),
        })

    def create(self, collection: str, fields: Dict[str, Any]) -> str:
        """Store a new document and return its server-generated id."""
        body = self._request("POST", "/api/documents", params={"collection": collection}, json=fields)
        if not isinstance(body, dict) or "id" not in body:
            logger.error(f"No document id in create response for {collection}: {body!r}")
            raise RemoteError("Respuesta sin identificador de documento")
        return body["id"]

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._request("PATCH", f"/api/documents/{doc_id}", decode=False,
                      params={"collection": collection}, json=fields)

    def delete(self, collection: str, doc_id: str) -> None:
        # Deleting a missing document is a no-op for callers
        self._request("DELETE", f"/api/documents/{doc_id}", allow_404=True, decode=False,
                      params={"collection": collection})

    def watch_collection(self, collection: str, constraints: Sequence[Constraint],
                         on_change: Callable[[List[Dict[str, Any]]], None]) -> Subscription:
        constraints = list(constraints)
        return Subscription(
            lambda: self.read_many(collection, constraints),
            on_change,
            self.watch_interval,
            collection,
        ).start()

    def watch_document(self, collection: str, doc_id: str,
                       on_change: Callable[[Optional[Dict[str, Any]]], None]) -> Subscription:
        return Subscription(
            lambda: self.read_one(collection, doc_id),
            on_change,
            self.watch_interval,
            f"document {doc_id} in {collection}",
        ).start()
