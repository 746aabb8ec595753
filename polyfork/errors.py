"""Polyfork error hierarchy.

All project exceptions inherit from PolyforkError, enabling:
- ``except PolyforkError`` at top-level boundaries (CLI)
- Fine-grained catches deeper in the stack (``except TransportError``)

Hierarchy:
    PolyforkError
    ├── ConfigError                 # config file or value rejected
    ├── StoreError                  # store rejected an operation
    │   └── TransportError          # request never reached the store
    └── ReplicaError                # remote replica rejected a read/write
        └── ReplicaUnavailableError # remote unreachable; safe to retry
"""

from __future__ import annotations


class PolyforkError(Exception):
    """Base class for all polyfork errors."""


class ConfigError(PolyforkError):
    """Invalid or unreadable configuration."""


class StoreError(PolyforkError):
    """The fork node store answered with a failure."""


class TransportError(StoreError):
    """The message channel failed before the store could act.

    Distinct from a plain ``StoreError``: the operation did not execute,
    so the caller may retry it.
    """


class ReplicaError(PolyforkError):
    """The remote replica could not be read or written."""


class ReplicaUnavailableError(ReplicaError):
    """The remote replica is temporarily unreachable."""
