"""studiosync - write-through persistence for content-studio collections."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("studiosync")
except PackageNotFoundError:
    __version__ = "0+local"
from studiosync.config import SyncConfig
from studiosync.exceptions import (
    FlushError,
    HydrationError,
    PersistError,
    StudioSyncError,
    SyncConfigError,
    SyncConflictError,
    SyncTransportError,
)
from studiosync.gateway import HttpRemoteGateway, RemoteGateway, SaveAck, StorageStatus
from studiosync.kinds import ALL_KINDS, MEDIA, PROJECTS, VOICES, CollectionKind, Snapshot
from studiosync.models import (
    Entity,
    Episode,
    LinkableEntity,
    MediaItem,
    MediaSource,
    MediaType,
    Project,
    ProjectSpec,
    ProjectStage,
    Religion,
    VoiceCharacter,
)
from studiosync.studio import Studio
from studiosync.sync import (
    AtexitTeardownHook,
    CoalescerState,
    EntityStore,
    ManualTeardownHook,
    SaveResult,
    ThreadBeaconSender,
    UnloadFlusher,
    WriteCoalescer,
)

__all__ = [
    "__version__",
    "ALL_KINDS",
    "AtexitTeardownHook",
    "CoalescerState",
    "CollectionKind",
    "Entity",
    "EntityStore",
    "Episode",
    "FlushError",
    "HttpRemoteGateway",
    "HydrationError",
    "LinkableEntity",
    "MEDIA",
    "ManualTeardownHook",
    "MediaItem",
    "MediaSource",
    "MediaType",
    "PROJECTS",
    "PersistError",
    "Project",
    "ProjectSpec",
    "ProjectStage",
    "Religion",
    "RemoteGateway",
    "SaveAck",
    "SaveResult",
    "Snapshot",
    "StorageStatus",
    "Studio",
    "StudioSyncError",
    "SyncConfig",
    "SyncConfigError",
    "SyncConflictError",
    "SyncTransportError",
    "ThreadBeaconSender",
    "UnloadFlusher",
    "VOICES",
    "VoiceCharacter",
    "WriteCoalescer",
]
