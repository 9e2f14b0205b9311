"""
Everything a dashboard process shares: the gateway, the query cache and
the write operations, plus the queries the pages run.
"""

from typing import Optional

from sensorwatch.frontend.bindings import CollectionBinding, DocumentBinding, DocumentOperations
from sensorwatch.frontend.cache import QueryCache
from sensorwatch.frontend.constraints import limit, order_by
from sensorwatch.frontend.gateway import Gateway

DEVICES = "devices"
READINGS_LIMIT = 1000


def readings_collection(device_id: str) -> str:
    return f"{DEVICES}/{device_id}/readings"


class DashboardContext:
    def __init__(self, gateway: Optional[Gateway] = None, cache: Optional[QueryCache] = None):
        self.gateway = gateway or Gateway()
        self.cache = cache or QueryCache()
        self.operations = DocumentOperations(self.gateway, self.cache)

    def devices(self, fresh: bool = False) -> CollectionBinding:
        return CollectionBinding(self.gateway, self.cache).bind(DEVICES, [], use_cache=not fresh)

    def device(self, device_id: str, fresh: bool = False) -> DocumentBinding:
        return DocumentBinding(self.gateway, self.cache).bind(DEVICES, device_id, use_cache=not fresh)

    def latest_reading(self, device_id: str, fresh: bool = False) -> CollectionBinding:
        return CollectionBinding(self.gateway, self.cache).bind(
            readings_collection(device_id),
            [order_by("ts", "desc"), limit(1)],
            use_cache=not fresh,
        )

    def chart_readings(self, device_id: str, fresh: bool = False) -> CollectionBinding:
        return CollectionBinding(self.gateway, self.cache).bind(
            readings_collection(device_id),
            [order_by("ts", "desc"), limit(READINGS_LIMIT)],
            use_cache=not fresh,
        )

    def rename_device(self, device_id: str, name: str) -> None:
        self.operations.update(DEVICES, device_id, {"name": name})

    def delete_device(self, device_id: str) -> None:
        self.operations.remove(DEVICES, device_id)
