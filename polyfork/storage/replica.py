"""Remote replicas and local/remote reconciliation.

A sync takes full snapshots of both sides, merges them with
`polyfork.merge.merge_fork_nodes` and writes the one merged dataset back to
both, replacing (never patching) what was there.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from polyfork.errors import ReplicaError, ReplicaUnavailableError
from polyfork.events import EventBus, ReplicasMerged
from polyfork.lib.json import JSONDecodeError, dumps_bytes, loads
from polyfork.lib.log import get_logger
from polyfork.merge import coerce_fork_nodes_data, merge_fork_nodes
from polyfork.models import ForkNodesData
from polyfork.storage.store import ForkNodeStore, write_json_atomic

logger = get_logger(__name__)

DEFAULT_SYNC_RETRIES = 3
DEFAULT_RETRY_BASE = 0.5


class Replica(Protocol):
    def load(self) -> object:
        """Return the replica's dataset in any shape `merge_fork_nodes` accepts."""
        ...

    def save(self, data: ForkNodesData) -> None:
        ...


@dataclass
class FileReplica:
    """A replica kept as a JSON file, e.g. inside a synced folder."""

    path: Path

    def load(self) -> object:
        if not self.path.exists():
            return None
        try:
            return loads(self.path.read_bytes())
        except OSError as exc:
            raise ReplicaUnavailableError(f"Cannot read replica {self.path}: {exc}") from exc
        except JSONDecodeError:
            logger.warning("replica_malformed", path=str(self.path))
            return None

    def save(self, data: ForkNodesData) -> None:
        try:
            write_json_atomic(self.path, data.to_payload())
        except OSError as exc:
            raise ReplicaError(f"Cannot write replica {self.path}: {exc}") from exc


class HttpReplica:
    """A replica served as a JSON document: GET to read, PUT to replace."""

    def __init__(self, url: str, *, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the httpx client if this replica created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpReplica:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(self, method: str, **kwargs: object) -> httpx.Response:
        try:
            response = self._client.request(method, self.url, **kwargs)  # type: ignore[arg-type]
        except httpx.TransportError as exc:
            raise ReplicaUnavailableError(f"{method} {self.url} failed: {exc}") from exc
        if response.status_code >= 500:
            raise ReplicaUnavailableError(f"{method} {self.url}: HTTP {response.status_code}")
        return response

    def load(self) -> object:
        response = self._request("GET")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ReplicaError(f"GET {self.url}: HTTP {response.status_code}")
        try:
            return loads(response.content)
        except JSONDecodeError:
            logger.warning("replica_malformed", url=self.url)
            return None

    def save(self, data: ForkNodesData) -> None:
        response = self._request(
            "PUT",
            content=dumps_bytes(data.to_payload()),
            headers={"Content-Type": "application/json"},
        )
        if response.status_code >= 400:
            raise ReplicaError(f"PUT {self.url}: HTTP {response.status_code}")


@dataclass(frozen=True)
class SyncResult:
    local_nodes: int
    remote_nodes: int
    merged_nodes: int
    groups: int
    data: ForkNodesData


def _retrying(retries: int, retry_base: float) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(max(retries, 0) + 1),
        wait=wait_exponential(multiplier=retry_base, min=retry_base, max=10),
        retry=retry_if_exception_type(ReplicaUnavailableError),
        reraise=True,
    )


def sync_replicas(
    store: ForkNodeStore,
    remote: Replica,
    *,
    retries: int = DEFAULT_SYNC_RETRIES,
    retry_base: float = DEFAULT_RETRY_BASE,
    bus: EventBus | None = None,
) -> SyncResult:
    """Reconcile the local store with ``remote`` and write the result to both.

    Local wins timestamp ties. Raises `ReplicaError` when the remote cannot be
    read or written after ``retries`` extra attempts; the local store is left
    untouched if the remote could not be read. An unreadable local store
    raises `StoreError` instead of being overwritten.
    """
    remote_data = coerce_fork_nodes_data(_retrying(retries, retry_base)(remote.load))
    local_data = store.load_for_write()

    merged = merge_fork_nodes(local_data, remote_data)
    written = store.replace_all(merged)
    _retrying(retries, retry_base)(remote.save, written)

    result = SyncResult(
        local_nodes=local_data.node_count,
        remote_nodes=remote_data.node_count,
        merged_nodes=written.node_count,
        groups=len(written.groups),
        data=written,
    )
    logger.info(
        "replicas_synced",
        local_nodes=result.local_nodes,
        remote_nodes=result.remote_nodes,
        merged_nodes=result.merged_nodes,
        groups=result.groups,
    )
    if bus is not None:
        bus.emit(
            ReplicasMerged(
                local_nodes=result.local_nodes,
                remote_nodes=result.remote_nodes,
                merged_nodes=result.merged_nodes,
                groups=result.groups,
            )
        )
    return result


__all__ = [
    "FileReplica",
    "HttpReplica",
    "Replica",
    "SyncResult",
    "sync_replicas",
]
