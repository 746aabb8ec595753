"""Type aliases for polyfork."""
from __future__ import annotations

from typing import NewType

# Semantic ID types - provides compile-time distinction
ConversationId = NewType("ConversationId", str)
ForkGroupId = NewType("ForkGroupId", str)
TurnId = NewType("TurnId", str)

# (conversation_id, turn_id, fork_group_id)
NodeIdentity = tuple[str, str, str]
