"""
Sync data models -- configuration, remote metadata and results.

SyncConfiguration and RemoteMetadata cross process boundaries (sidecar
files, provider storage), so they serialize with camelCase keys.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from ..models import CamelModel, Timestamp, utcnow


class ConflictResolution(str, Enum):
    """Policy applied when local and remote diverge at the same timestamp."""

    MANUAL = "manual"
    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    MERGE = "merge"


class ResolutionStrategy(str, Enum):
    """Caller-chosen side for resolve_conflicts()."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"


class SyncAction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    NO_CHANGE = "no-change"
    CONFLICT = "conflict"


class SyncStatusKind(str, Enum):
    SYNCED = "synced"
    PENDING = "pending"
    CONFLICT = "conflict"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class ConflictType(str, Enum):
    CONTENT = "content"
    DELETE = "delete"
    METADATA = "metadata"


class SyncConfiguration(CamelModel):
    """Per-vault sync settings, stored in the ``.<vault>.sync.json`` sidecar."""

    enabled: bool = False
    provider: str = ""
    vault_id: str = ""
    auto_sync: bool = False
    sync_interval: Optional[int] = 15  # minutes
    conflict_resolution: ConflictResolution = ConflictResolution.MANUAL
    credentials: dict[str, str] = Field(default_factory=dict)


class RemoteMetadata(CamelModel):
    """Describes one sealed blob instance. Used for comparison, never decryption."""

    version: str = "1.0"
    last_modified: Timestamp
    checksum: str
    size: int
    author: Optional[str] = None
    description: Optional[str] = None


class VaultVersion(CamelModel):
    """One historical copy of a remote vault."""

    id: str
    timestamp: Timestamp
    size: int
    checksum: str = ""
    author: Optional[str] = None


class Conflict(CamelModel):
    """Local and remote copies diverged."""

    type: ConflictType
    local_data: Optional[RemoteMetadata] = None
    remote_data: Optional[RemoteMetadata] = None
    last_common_version: Optional[str] = None
    timestamp: Timestamp = Field(default_factory=utcnow)


class SyncResult(CamelModel):
    """Outcome of one sync or resolve call."""

    success: bool
    action: SyncAction
    local_version: Optional[str] = None
    remote_version: Optional[str] = None
    conflict_details: Optional[Conflict] = None
    error: Optional[str] = None


class SyncStatus(CamelModel):
    """Read-only snapshot of a vault's sync health."""

    is_configured: bool
    last_sync: Optional[datetime] = None
    status: SyncStatusKind
    provider: str
    error: Optional[str] = None
    conflict_count: int = 0


class SyncState(CamelModel):
    """Reconciler bookkeeping persisted next to the sync sidecar."""

    last_sync: Optional[Timestamp] = None
    last_action: Optional[SyncAction] = None
    last_error: Optional[str] = None
    pending_conflict: Optional[Conflict] = None
    sync_count: int = 0
