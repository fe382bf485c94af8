"""Core transport helpers shared by the sync engine."""

from .async_utils import run_sync
from .client import RemoteClient

__all__ = ["RemoteClient", "run_sync"]
