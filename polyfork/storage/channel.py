"""Message channel between fork-node consumers and the store owner.

Requests are plain dicts ``{"type": ..., "payload": ...}``; responses are
``{"ok": True, ...}`` or ``{"ok": False, "error": "..."}``. Keeping the wire
shape dict-based lets any transport carry it (in-process call, a queue, an
extension-style ``sendMessage``).

Failure modes seen by `ForkNodesService`:

- the store answered ``ok: False``: `StoreError` with the store's message;
- the transport raised or produced no response: `TransportError`, the
  operation never executed and may be retried;
- "nothing to add/remove" is not an error, it is a ``False`` result.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from polyfork.errors import StoreError, TransportError
from polyfork.events import EventBus, ForkAdded, ForkRemoved
from polyfork.lib.log import get_logger
from polyfork.models import ForkNode, ForkNodesData
from polyfork.storage.store import ForkNodeStore

logger = get_logger(__name__)

MSG_ADD = "fork.add"
MSG_REMOVE = "fork.remove"
MSG_GET_ALL = "fork.getAll"
MSG_GET_FOR_CONVERSATION = "fork.getForConversation"
MSG_GET_GROUP = "fork.getGroup"

Message = dict[str, Any]
Response = dict[str, Any]
Transport = Callable[[Message], Response | None]


def _required_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value


class ForkStoreRouter:
    """Storage-owner side: dispatches channel messages to a `ForkNodeStore`."""

    def __init__(self, store: ForkNodeStore) -> None:
        self.store = store
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Response]] = {
            MSG_ADD: self._add,
            MSG_REMOVE: self._remove,
            MSG_GET_ALL: self._get_all,
            MSG_GET_FOR_CONVERSATION: self._get_for_conversation,
            MSG_GET_GROUP: self._get_group,
        }

    def __call__(self, message: Message) -> Response:
        return self.handle(message)

    def handle(self, message: Message) -> Response:
        message_type = message.get("type") if isinstance(message, Mapping) else None
        handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if handler is None:
            return {"ok": False, "error": f"Unknown message type: {message_type!r}"}
        payload = message.get("payload") or {}
        if not isinstance(payload, Mapping):
            return {"ok": False, "error": "Payload must be an object"}
        try:
            return handler(payload)
        except (ValueError, ValidationError) as exc:
            return {"ok": False, "error": str(exc)}
        except StoreError as exc:
            logger.error("fork_store_failed", message_type=message_type, error=str(exc))
            return {"ok": False, "error": str(exc)}

    def _add(self, payload: Mapping[str, Any]) -> Response:
        node = ForkNode.model_validate(payload)
        return {"ok": True, "added": self.store.add(node)}

    def _remove(self, payload: Mapping[str, Any]) -> Response:
        removed = self.store.remove(
            _required_str(payload, "conversationId"),
            _required_str(payload, "turnId"),
            _required_str(payload, "forkGroupId"),
        )
        return {"ok": True, "removed": removed}

    def _get_all(self, payload: Mapping[str, Any]) -> Response:
        return {"ok": True, "data": self.store.get_all().to_payload()}

    def _get_for_conversation(self, payload: Mapping[str, Any]) -> Response:
        nodes = self.store.get_for_conversation(_required_str(payload, "conversationId"))
        return {"ok": True, "nodes": [node.to_payload() for node in nodes]}

    def _get_group(self, payload: Mapping[str, Any]) -> Response:
        nodes = self.store.get_group(_required_str(payload, "forkGroupId"))
        return {"ok": True, "nodes": [node.to_payload() for node in nodes]}


class ForkNodesService:
    """Consumer side of the channel."""

    def __init__(self, transport: Transport, *, bus: EventBus | None = None) -> None:
        self._transport = transport
        self._bus = bus

    @classmethod
    def local(cls, store: ForkNodeStore, *, bus: EventBus | None = None) -> ForkNodesService:
        """Service wired straight to an in-process store."""
        return cls(ForkStoreRouter(store), bus=bus)

    def _send(self, message_type: str, payload: Mapping[str, Any] | None = None) -> Response:
        message: Message = {"type": message_type, "payload": dict(payload) if payload else None}
        try:
            response = self._transport(message)
        except StoreError:
            raise
        except Exception as exc:
            raise TransportError(f"{message_type}: {exc}") from exc
        if response is None:
            raise TransportError(f"{message_type}: no response from fork store")
        if not response.get("ok"):
            raise StoreError(str(response.get("error") or "Unknown error"))
        return response

    def _emit(self, event: ForkAdded | ForkRemoved) -> None:
        if self._bus is not None:
            self._bus.emit(event)

    def add_fork_node(self, node: ForkNode) -> bool:
        response = self._send(MSG_ADD, node.to_payload())
        added = bool(response.get("added"))
        if added:
            self._emit(
                ForkAdded(
                    conversation_id=node.conversation_id,
                    turn_id=node.turn_id,
                    fork_group_id=node.fork_group_id,
                )
            )
        return added

    def remove_fork_node(self, conversation_id: str, turn_id: str, fork_group_id: str) -> bool:
        response = self._send(
            MSG_REMOVE,
            {"conversationId": conversation_id, "turnId": turn_id, "forkGroupId": fork_group_id},
        )
        removed = bool(response.get("removed"))
        if removed:
            self._emit(
                ForkRemoved(
                    conversation_id=conversation_id,
                    turn_id=turn_id,
                    fork_group_id=fork_group_id,
                )
            )
        return removed

    def get_all_fork_nodes(self) -> ForkNodesData:
        response = self._send(MSG_GET_ALL)
        return ForkNodesData.from_payload(response.get("data") or {})

    def get_for_conversation(self, conversation_id: str) -> list[ForkNode]:
        response = self._send(MSG_GET_FOR_CONVERSATION, {"conversationId": conversation_id})
        return [ForkNode.model_validate(entry) for entry in response.get("nodes") or ()]

    def get_group(self, fork_group_id: str) -> list[ForkNode]:
        response = self._send(MSG_GET_GROUP, {"forkGroupId": fork_group_id})
        return [ForkNode.model_validate(entry) for entry in response.get("nodes") or ()]


__all__ = [
    "ForkNodesService",
    "ForkStoreRouter",
    "MSG_ADD",
    "MSG_GET_ALL",
    "MSG_GET_FOR_CONVERSATION",
    "MSG_GET_GROUP",
    "MSG_REMOVE",
    "Transport",
]
