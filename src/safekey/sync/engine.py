"""
Sync Engine -- reconciles a local sealed vault with its remote copy.

For one vault it decides whether to upload, download, do nothing, or
flag a conflict, then does it. The engine only moves sealed bytes; it
never needs the master password.

    sync_vault()  ->  authenticate -> existence checks -> compare -> act

Newer side wins by modification time. Equal times with different
checksums is a real conflict: under the ``manual`` policy the engine
raises SyncConflictError and touches neither copy.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import ValidationError

from .._io import atomic_write, file_mtime, set_file_mtime, truncate_ms
from ..config import Config
from ..errors import RemoteVaultNotFoundError, SyncConflictError, VaultError
from ..models import SealedVault, utcnow
from .models import (
    Conflict,
    ConflictResolution,
    ConflictType,
    RemoteMetadata,
    ResolutionStrategy,
    SyncAction,
    SyncConfiguration,
    SyncResult,
    SyncState,
    SyncStatus,
    SyncStatusKind,
    VaultVersion,
)
from .providers import CloudProvider, get_provider

logger = logging.getLogger("safekey.sync.engine")

SIDECAR_FILE_MODE = 0o600


def sync_config_path(vault_path: Path) -> Path:
    """Sidecar path for a vault: ``<dir>/.<stem>.sync.json``.

    No extra dot is added when the vault name already starts with one.
    """
    stem = vault_path.stem
    name = f"{stem}.sync.json" if stem.startswith(".") else f".{stem}.sync.json"
    return vault_path.parent / name


def sync_state_path(vault_path: Path) -> Path:
    config_path = sync_config_path(vault_path)
    return config_path.with_name(config_path.name[: -len(".json")] + ".state.json")


def generate_vault_id(vault_path: Path) -> str:
    """Stable remote identifier derived from the vault's absolute path."""
    return hashlib.sha256(str(vault_path).encode("utf-8")).hexdigest()[:16]


class SyncManager:
    """Orchestrates synchronization between local vaults and providers."""

    def __init__(
        self,
        config: Optional[Config] = None,
        provider_factory: Callable[[str], CloudProvider] = get_provider,
    ):
        """Initialize the sync manager.

        Args:
            config: SafeKey config used to resolve profile names.
            provider_factory: Maps a provider name to a fresh provider.
        """
        self._config = config
        self._provider_factory = provider_factory

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = Config()
        return self._config

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def resolve_vault_path(self, vault: Union[str, Path]) -> Path:
        """Resolve ``default``, a profile name, or a literal path."""
        text = str(vault)
        if text == "default":
            return self.config.get_current_profile().vault_path.expanduser().resolve()

        if not any(sep in text for sep in ("/", "\\", ".")):
            profile = self.config.get_profile(text)
            if profile is not None:
                return profile.vault_path.expanduser().resolve()

        return Path(text).expanduser().resolve()

    def get_sync_configuration(self, vault: Union[str, Path]) -> SyncConfiguration:
        """Read the sidecar; a missing or unreadable one means sync is off."""
        config_file = sync_config_path(self.resolve_vault_path(vault))
        if not config_file.exists():
            return SyncConfiguration()
        try:
            return SyncConfiguration.model_validate_json(
                config_file.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as exc:
            logger.warning("Failed to load sync config %s: %s", config_file, exc)
            return SyncConfiguration()

    def _save_sync_configuration(
        self, vault_path: Path, sync_config: SyncConfiguration
    ) -> None:
        atomic_write(
            sync_config_path(vault_path),
            sync_config.model_dump_json(by_alias=True, indent=2),
            mode=SIDECAR_FILE_MODE,
        )

    def _load_state(self, vault_path: Path) -> SyncState:
        state_file = sync_state_path(vault_path)
        if state_file.exists():
            try:
                return SyncState.model_validate_json(
                    state_file.read_text(encoding="utf-8")
                )
            except (OSError, ValidationError) as exc:
                logger.warning("Failed to load sync state %s: %s", state_file, exc)
        return SyncState()

    def _save_state(self, vault_path: Path, state: SyncState) -> None:
        atomic_write(
            sync_state_path(vault_path),
            state.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        )

    def enable_sync(
        self,
        vault: Union[str, Path],
        provider_name: str,
        credentials: dict[str, str],
        auto_sync: bool = False,
        sync_interval: int = 15,
        conflict_resolution: ConflictResolution = ConflictResolution.MANUAL,
    ) -> SyncConfiguration:
        """Authenticate with a provider and write the sync sidecar.

        Raises:
            ValueError: Unknown provider or incomplete credentials.
            CloudProviderError: The provider rejected the credentials.
        """
        vault_path = self.resolve_vault_path(vault)
        provider = self._provider_factory(provider_name)
        provider.authenticate(credentials)

        sync_config = SyncConfiguration(
            enabled=True,
            provider=provider_name,
            vault_id=generate_vault_id(vault_path),
            auto_sync=auto_sync,
            sync_interval=sync_interval,
            conflict_resolution=ConflictResolution(conflict_resolution),
            credentials=dict(credentials),
        )
        self._save_sync_configuration(vault_path, sync_config)
        logger.info(
            "Sync enabled for %s via %s (%s)",
            vault_path, provider_name, sync_config.vault_id,
        )
        return sync_config

    def disable_sync(self, vault: Union[str, Path]) -> None:
        """Remove the sync sidecar and its state. Remote data is left alone."""
        vault_path = self.resolve_vault_path(vault)
        sync_config_path(vault_path).unlink(missing_ok=True)
        sync_state_path(vault_path).unlink(missing_ok=True)
        logger.info("Sync disabled for %s", vault_path)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_vault(self, vault: Union[str, Path]) -> SyncResult:
        """Bring the local vault and its remote copy into agreement.

        Returns:
            SyncResult. Provider and I/O failures come back as
            ``success=False`` with ``error`` set.

        Raises:
            SyncConflictError: Divergent copies under the ``manual`` policy.
        """
        vault_path = self.resolve_vault_path(vault)
        sync_config = self.get_sync_configuration(vault_path)
        if not sync_config.enabled:
            return SyncResult(
                success=False,
                action=SyncAction.NO_CHANGE,
                error="Sync not enabled for this vault",
            )

        try:
            provider = self._provider_factory(sync_config.provider)
            provider.authenticate(sync_config.credentials)

            if not vault_path.exists():
                try:
                    return self._download(vault_path, provider, sync_config)
                except RemoteVaultNotFoundError:
                    return self._record_failure(
                        vault_path,
                        "Vault not found locally or remotely: nothing to sync",
                    )

            if not provider.exists(sync_config.vault_id):
                return self._upload(vault_path, provider, sync_config)

            return self._reconcile(vault_path, provider, sync_config)
        except SyncConflictError:
            raise
        except (VaultError, OSError, ValueError) as exc:
            logger.warning("Sync failed for %s: %s", vault_path, exc)
            return self._record_failure(vault_path, str(exc))

    def resolve_conflicts(
        self,
        vault: Union[str, Path],
        strategy: Union[ResolutionStrategy, str],
    ) -> SyncResult:
        """Force a direction: ``local`` uploads, ``remote`` downloads.

        ``merge`` currently uploads the local copy; per-secret merging
        would need tombstones to tell a delete from a never-existing key.
        """
        strategy = ResolutionStrategy(strategy)
        vault_path = self.resolve_vault_path(vault)
        sync_config = self.get_sync_configuration(vault_path)
        if not sync_config.enabled:
            return SyncResult(
                success=False,
                action=SyncAction.NO_CHANGE,
                error="Sync not enabled for this vault",
            )

        try:
            provider = self._provider_factory(sync_config.provider)
            provider.authenticate(sync_config.credentials)
            return self._apply_strategy(vault_path, provider, sync_config, strategy)
        except (VaultError, OSError, ValueError) as exc:
            logger.warning("Conflict resolution failed for %s: %s", vault_path, exc)
            return self._record_failure(vault_path, str(exc))

    def _apply_strategy(
        self,
        vault_path: Path,
        provider: CloudProvider,
        sync_config: SyncConfiguration,
        strategy: ResolutionStrategy,
    ) -> SyncResult:
        if strategy is ResolutionStrategy.LOCAL:
            return self._upload(vault_path, provider, sync_config)
        if strategy is ResolutionStrategy.REMOTE:
            return self._download(vault_path, provider, sync_config)
        return self._merge(vault_path, provider, sync_config)

    def _reconcile(
        self,
        vault_path: Path,
        provider: CloudProvider,
        sync_config: SyncConfiguration,
    ) -> SyncResult:
        local_meta = self.local_metadata(vault_path)
        remote_meta = provider.get_metadata(sync_config.vault_id)
        local_time = truncate_ms(local_meta.last_modified)
        remote_time = truncate_ms(remote_meta.last_modified)

        if local_time > remote_time:
            return self._upload(vault_path, provider, sync_config)
        if remote_time > local_time:
            return self._download(vault_path, provider, sync_config)
        if local_meta.checksum == remote_meta.checksum:
            self._record_success(
                vault_path, SyncAction.NO_CHANGE, local_meta.last_modified
            )
            return SyncResult(success=True, action=SyncAction.NO_CHANGE)

        conflict = Conflict(
            type=ConflictType.CONTENT,
            local_data=local_meta,
            remote_data=remote_meta,
            timestamp=utcnow(),
        )
        policy = sync_config.conflict_resolution
        if policy is ConflictResolution.MANUAL:
            state = self._load_state(vault_path)
            state.pending_conflict = conflict
            self._save_state(vault_path, state)
            logger.warning(
                "Sync conflict for %s (local %s, remote %s)",
                vault_path, local_meta.checksum[:12], remote_meta.checksum[:12],
            )
            raise SyncConflictError(sync_config.provider, conflict)

        strategy = {
            ConflictResolution.LOCAL_WINS: ResolutionStrategy.LOCAL,
            ConflictResolution.REMOTE_WINS: ResolutionStrategy.REMOTE,
            ConflictResolution.MERGE: ResolutionStrategy.MERGE,
        }[policy]
        logger.info("Auto-resolving conflict for %s: %s", vault_path, policy.value)
        result = self._apply_strategy(vault_path, provider, sync_config, strategy)
        return result.model_copy(update={"conflict_details": conflict})

    def _upload(
        self,
        vault_path: Path,
        provider: CloudProvider,
        sync_config: SyncConfiguration,
    ) -> SyncResult:
        data = vault_path.read_bytes()
        metadata = self.local_metadata(vault_path, data)
        version_id = provider.upload(sync_config.vault_id, data, metadata)
        self._record_success(
            vault_path, SyncAction.UPLOAD, metadata.last_modified
        )
        logger.info("Uploaded %s to %s (%s)", vault_path, provider.name, version_id)
        return SyncResult(
            success=True,
            action=SyncAction.UPLOAD,
            local_version=metadata.checksum,
            remote_version=version_id,
        )

    def _download(
        self,
        vault_path: Path,
        provider: CloudProvider,
        sync_config: SyncConfiguration,
    ) -> SyncResult:
        data, metadata = provider.download(sync_config.vault_id)
        try:
            SealedVault.model_validate_json(data)
        except ValidationError as exc:
            raise ValueError(
                f"Remote copy of {sync_config.vault_id} is not a sealed vault"
            ) from exc

        checksum = hashlib.sha256(data).hexdigest()
        atomic_write(vault_path, data, mode=0o600)
        set_file_mtime(vault_path, metadata.last_modified)
        self._record_success(
            vault_path, SyncAction.DOWNLOAD, metadata.last_modified
        )
        logger.info("Downloaded %s from %s", vault_path, provider.name)
        return SyncResult(
            success=True,
            action=SyncAction.DOWNLOAD,
            local_version=checksum,
            remote_version=metadata.version,
        )

    def _merge(
        self,
        vault_path: Path,
        provider: CloudProvider,
        sync_config: SyncConfiguration,
    ) -> SyncResult:
        # TODO: per-secret merge once deletions leave tombstones.
        return self._upload(vault_path, provider, sync_config)

    def _record_success(
        self, vault_path: Path, action: SyncAction, synced_mtime: datetime
    ) -> None:
        """Persist a successful sync; the remote change already happened.

        ``last_sync`` never precedes the vault mtime both sides now agree
        on, so a downloaded file stamped ahead of this clock is not pending.
        """
        state = self._load_state(vault_path)
        state.last_sync = max(utcnow(), synced_mtime)
        state.last_action = action
        state.last_error = None
        state.pending_conflict = None
        state.sync_count += 1
        try:
            self._save_state(vault_path, state)
        except OSError as exc:
            logger.warning("Could not persist sync state: %s", exc)

    def _record_failure(self, vault_path: Path, error: str) -> SyncResult:
        if sync_config_path(vault_path).exists():
            state = self._load_state(vault_path)
            state.last_error = error
            try:
                self._save_state(vault_path, state)
            except OSError as exc:
                logger.warning("Could not persist sync state: %s", exc)
        return SyncResult(success=False, action=SyncAction.NO_CHANGE, error=error)

    @staticmethod
    def local_metadata(
        vault_path: Path, data: Optional[bytes] = None
    ) -> RemoteMetadata:
        """Checksum and mtime of the local sealed vault."""
        if data is None:
            data = vault_path.read_bytes()
        return RemoteMetadata(
            version="1.0",
            last_modified=file_mtime(vault_path),
            checksum=hashlib.sha256(data).hexdigest(),
            size=len(data),
            description="SafeKey Vault",
        )

    @staticmethod
    def _is_pending(vault_path: Path, state: SyncState) -> bool:
        """Whether the vault changed (or vanished) since the last successful sync."""
        if state.last_sync is None or not vault_path.exists():
            return True
        return file_mtime(vault_path) > truncate_ms(state.last_sync)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_sync_status(self, vault: Union[str, Path]) -> SyncStatus:
        """Report sync health without modifying any file."""
        try:
            vault_path = self.resolve_vault_path(vault)
            sync_config = self.get_sync_configuration(vault_path)
        except (VaultError, OSError, ValueError) as exc:
            return SyncStatus(
                is_configured=False,
                status=SyncStatusKind.ERROR,
                provider="unknown",
                error=str(exc),
            )

        if not sync_config.enabled:
            return SyncStatus(
                is_configured=False,
                status=SyncStatusKind.DISCONNECTED,
                provider="none",
            )

        state = self._load_state(vault_path)
        try:
            provider = self._provider_factory(sync_config.provider)
            provider.authenticate(sync_config.credentials)
            reachable = provider.is_configured()
        except (VaultError, OSError, ValueError) as exc:
            return SyncStatus(
                is_configured=False,
                last_sync=state.last_sync,
                status=SyncStatusKind.ERROR,
                provider=sync_config.provider,
                error=str(exc),
            )

        if not reachable:
            return SyncStatus(
                is_configured=False,
                last_sync=state.last_sync,
                status=SyncStatusKind.ERROR,
                provider=sync_config.provider,
                error="Provider not configured",
            )

        if state.pending_conflict is not None:
            status = SyncStatusKind.CONFLICT
        elif state.last_error:
            status = SyncStatusKind.ERROR
        elif self._is_pending(vault_path, state):
            status = SyncStatusKind.PENDING
        else:
            status = SyncStatusKind.SYNCED

        return SyncStatus(
            is_configured=True,
            last_sync=state.last_sync,
            status=status,
            provider=sync_config.provider,
            error=state.last_error,
            conflict_count=1 if state.pending_conflict is not None else 0,
        )

    def list_remote_versions(self, vault: Union[str, Path]) -> list[VaultVersion]:
        """Remote version history for a sync-enabled vault.

        Raises:
            ValueError: Sync is not enabled for the vault.
            CloudProviderError: The provider failed.
        """
        vault_path = self.resolve_vault_path(vault)
        sync_config = self.get_sync_configuration(vault_path)
        if not sync_config.enabled:
            raise ValueError(f"Sync not enabled for {vault_path}")
        provider = self._provider_factory(sync_config.provider)
        provider.authenticate(sync_config.credentials)
        return provider.list_versions(sync_config.vault_id)
