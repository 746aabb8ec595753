"""Checking whether linked conversations still exist, and pruning those that don't.

Existence checks fail open: if a conversation cannot be verified (network
error, timeout), it is treated as existing so that stored branch links are
never dropped because of a flaky connection.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

import httpx

from polyfork.errors import StoreError, TransportError
from polyfork.lib.log import get_logger
from polyfork.models import ForkNode

logger = get_logger(__name__)

DEFAULT_EXISTENCE_TTL_MS = 30_000
DEFAULT_VERIFY_TIMEOUT_MS = 4_000

_APP_PATH_RE = re.compile(r"/app/([^/?#]+)")
_GEM_PATH_RE = re.compile(r"/gem/[^/]+/([^/?#]+)")


def extract_conversation_id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    path = urlsplit(url).path
    match = _APP_PATH_RE.search(path) or _GEM_PATH_RE.search(path)
    return match.group(1) if match else None


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class _CacheEntry:
    exists: bool
    observed_at: int


class ExistenceCache:
    """Time-bounded memo of existence results keyed by conversation id."""

    def __init__(self, ttl_ms: int = DEFAULT_EXISTENCE_TTL_MS, *, now: Callable[[], int] = _now_ms) -> None:
        self.ttl_ms = ttl_ms
        self._now = now
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, conversation_id: str) -> bool | None:
        entry = self._entries.get(conversation_id)
        if entry is None:
            return None
        if self._now() - entry.observed_at > self.ttl_ms:
            return None
        return entry.exists

    def set(self, conversation_id: str, exists: bool) -> None:
        self._entries[conversation_id] = _CacheEntry(exists=exists, observed_at=self._now())

    def invalidate(self, conversation_id: str | None = None) -> None:
        if conversation_id is None:
            self._entries.clear()
        else:
            self._entries.pop(conversation_id, None)

    def __len__(self) -> int:
        return len(self._entries)


class ConversationVerifier(Protocol):
    def __call__(self, node: ForkNode) -> bool:
        """Return whether ``node``'s conversation exists; may raise on network failure."""
        ...


_INCONCLUSIVE_STATUS = 429


class HttpConversationVerifier:
    """Probe the conversation URL; it exists if the final URL still names it.

    Rate limiting and server errors say nothing about the conversation and
    raise `httpx.HTTPStatusError`, so the checker treats them as unknown.
    """

    def __init__(self, client: httpx.Client | None = None, *, timeout_ms: int = DEFAULT_VERIFY_TIMEOUT_MS) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout_ms / 1000)

    def __call__(self, node: ForkNode) -> bool:
        response = self._client.get(node.conversation_url, follow_redirects=True)
        if response.status_code == _INCONCLUSIVE_STATUS or response.is_server_error:
            response.raise_for_status()
        final_id = extract_conversation_id_from_url(str(response.url))
        return response.is_success and final_id == node.conversation_id

    def close(self) -> None:
        """Close the httpx client if this verifier created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpConversationVerifier:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class ConversationExistenceChecker:
    def __init__(self, cache: ExistenceCache | None = None, verifier: ConversationVerifier | None = None) -> None:
        self.cache = cache or ExistenceCache()
        self.verifier = verifier

    def exists(
        self,
        node: ForkNode,
        *,
        current_conversation_id: str | None = None,
        known_conversation_ids: Collection[str] = (),
    ) -> bool:
        if current_conversation_id and node.conversation_id == current_conversation_id:
            return True
        if node.conversation_id in known_conversation_ids:
            self.cache.set(node.conversation_id, True)
            return True

        cached = self.cache.get(node.conversation_id)
        if cached is not None:
            return cached

        if not node.conversation_url:
            self.cache.set(node.conversation_id, False)
            return False
        if self.verifier is None:
            return True

        try:
            exists = self.verifier(node)
        except (httpx.HTTPError, OSError) as exc:
            logger.debug("conversation_verify_failed", conversation_id=node.conversation_id, error=str(exc))
            return True
        self.cache.set(node.conversation_id, exists)
        return exists


class _NodeRemover(Protocol):
    def remove_fork_node(self, conversation_id: str, turn_id: str, fork_group_id: str) -> bool:
        ...


def prune_deleted_nodes(
    group_nodes: Iterable[ForkNode],
    checker: ConversationExistenceChecker,
    service: _NodeRemover,
    *,
    current_conversation_id: str | None = None,
    known_conversation_ids: Collection[str] = (),
) -> list[ForkNode]:
    """Return the nodes whose conversations exist, removing the others from the store.

    A failed removal is logged and the node is still left out of the result.
    """
    cleaned: list[ForkNode] = []
    for node in group_nodes:
        if checker.exists(
            node,
            current_conversation_id=current_conversation_id,
            known_conversation_ids=known_conversation_ids,
        ):
            cleaned.append(node)
            continue
        try:
            removed = service.remove_fork_node(node.conversation_id, node.turn_id, node.fork_group_id)
        except TransportError as exc:
            logger.debug("fork_prune_skipped", conversation_id=node.conversation_id, error=str(exc))
        except StoreError as exc:
            logger.error("fork_prune_failed", conversation_id=node.conversation_id, error=str(exc))
        else:
            logger.info(
                "fork_node_pruned",
                conversation_id=node.conversation_id,
                fork_group_id=node.fork_group_id,
                removed=removed,
            )
    return cleaned


__all__ = [
    "ConversationExistenceChecker",
    "ConversationVerifier",
    "ExistenceCache",
    "HttpConversationVerifier",
    "extract_conversation_id_from_url",
    "prune_deleted_nodes",
]
