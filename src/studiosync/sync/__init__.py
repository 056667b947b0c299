"""Sync layer.

This package is the single owner of collection state: the per-kind cache,
the pending-save slot, the drain loop that persists it, and the teardown
flush that rescues whatever the drain loop has not yet taken.
"""

from studiosync.sync.coalescer import CoalescerState, SaveResult, WriteCoalescer
from studiosync.sync.flusher import UnloadFlusher
from studiosync.sync.store import EntityStore
from studiosync.sync.teardown import AtexitTeardownHook, BeaconSender, ManualTeardownHook, TeardownHook, ThreadBeaconSender

__all__ = [
    "AtexitTeardownHook",
    "BeaconSender",
    "CoalescerState",
    "EntityStore",
    "ManualTeardownHook",
    "SaveResult",
    "TeardownHook",
    "ThreadBeaconSender",
    "UnloadFlusher",
    "WriteCoalescer",
]
