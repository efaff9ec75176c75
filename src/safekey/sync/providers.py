"""
Cloud providers -- where sealed vaults travel.

Every backend implements the same CloudProvider contract, so the sync
engine never cares where the blob lands. Providers only ever see the
sealed (encrypted) vault bytes plus a RemoteMetadata record.

Local: A plain directory. For USB drives, NAS mounts, synced folders.
GitHub Gist: A private gist holding the blob (base64) and its metadata.

Network-facing failures are split into retryable kinds (NetworkError,
AuthenticationError) and terminal ones (RemoteVaultNotFoundError,
ProviderNotConfiguredError) so callers can pick a retry policy.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import shutil
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import requests
from pydantic import ValidationError

from .._io import atomic_write
from ..errors import (
    AuthenticationError,
    CloudProviderError,
    NetworkError,
    ProviderNotConfiguredError,
    RemoteVaultNotFoundError,
)
from .models import RemoteMetadata, VaultVersion

logger = logging.getLogger("safekey.sync.providers")

_VAULT_ID_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


class CloudProvider(ABC):
    """Abstract remote storage backend for sealed vaults."""

    name: str = ""
    display_name: str = ""
    requires_auth: bool = True

    @abstractmethod
    def authenticate(self, credentials: dict[str, str]) -> None:
        """Validate and store credentials.

        Raises:
            AuthenticationError: If the backend rejects them.
        """

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the provider is authenticated AND currently reachable."""

    @abstractmethod
    def upload(self, vault_id: str, data: bytes, metadata: RemoteMetadata) -> str:
        """Store (or overwrite) a sealed vault.

        Returns:
            Identifier of the new remote version.
        """

    @abstractmethod
    def download(self, vault_id: str) -> tuple[bytes, RemoteMetadata]:
        """Fetch a sealed vault and its metadata.

        Raises:
            RemoteVaultNotFoundError: Nothing stored under ``vault_id``.
        """

    @abstractmethod
    def exists(self, vault_id: str) -> bool:
        """Check whether a vault is stored under ``vault_id``."""

    @abstractmethod
    def get_metadata(self, vault_id: str) -> RemoteMetadata:
        """Metadata for the stored vault, without fetching the blob."""

    @abstractmethod
    def list_versions(self, vault_id: str) -> list[VaultVersion]:
        """Known versions of the stored vault, newest first."""

    @abstractmethod
    def delete(self, vault_id: str) -> None:
        """Remove the stored vault."""


class BaseCloudProvider(CloudProvider):
    """Shared authenticate/connectivity-check flow for concrete providers.

    Subclasses implement three hooks: _validate_credentials,
    _perform_authentication and _test_connection.
    """

    def __init__(self) -> None:
        self._configured = False
        self._credentials: dict[str, str] = {}

    def authenticate(self, credentials: dict[str, str]) -> None:
        self._validate_credentials(credentials)
        self._credentials = dict(credentials)
        try:
            self._perform_authentication()
        except Exception:
            self._configured = False
            raise
        self._configured = True
        logger.debug("Authenticated with %s", self.name)

    def is_configured(self) -> bool:
        if not self._configured:
            return False
        try:
            self._test_connection()
        except (CloudProviderError, OSError) as exc:
            logger.warning("%s connectivity check failed: %s", self.name, exc)
            self._configured = False
            return False
        return True

    def _ensure_configured(self) -> None:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name)

    @staticmethod
    def calculate_checksum(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def create_metadata(
        self, data: bytes, author: Optional[str] = None
    ) -> RemoteMetadata:
        return RemoteMetadata(
            version="1.0",
            last_modified=datetime.now(timezone.utc),
            checksum=self.calculate_checksum(data),
            size=len(data),
            author=author,
            description="SafeKey Vault",
        )

    @abstractmethod
    def _validate_credentials(self, credentials: dict[str, str]) -> None:
        """Raise ValueError if required credential fields are missing."""

    @abstractmethod
    def _perform_authentication(self) -> None:
        """Contact the backend and verify the stored credentials."""

    @abstractmethod
    def _test_connection(self) -> None:
        """Raise if the backend is unreachable right now."""


# ---------------------------------------------------------------------------
# Local directory
# ---------------------------------------------------------------------------


class LocalDirectoryProvider(BaseCloudProvider):
    """Stores vaults in a directory tree.

    Layout::

        <path>/<vault_id>/vault.json          sealed blob
        <path>/<vault_id>/metadata.json       RemoteMetadata
        <path>/<vault_id>/versions/<id>.json  previous blobs (bounded)
    """

    name = "local"
    display_name = "Local Directory"
    requires_auth = False

    MAX_VERSIONS = 10

    def __init__(self) -> None:
        super().__init__()
        self.root: Optional[Path] = None

    def _validate_credentials(self, credentials: dict[str, str]) -> None:
        if not credentials.get("path"):
            raise ValueError("Local provider requires a 'path' credential")

    def _perform_authentication(self) -> None:
        root = Path(self._credentials["path"]).expanduser()
        if not root.is_dir():
            raise AuthenticationError(self.name, f"{root} is not a directory")
        self.root = root

    def _test_connection(self) -> None:
        if self.root is None or not self.root.is_dir():
            raise NetworkError(self.name, f"{self.root} is not reachable")

    @contextmanager
    def _io_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except OSError as exc:
            raise NetworkError(self.name, f"{action} failed: {exc}") from exc

    def _vault_dir(self, vault_id: str) -> Path:
        if not _VAULT_ID_RE.match(vault_id):
            raise ValueError(f"Invalid vault id: {vault_id!r}")
        return self.root / vault_id

    def upload(self, vault_id: str, data: bytes, metadata: RemoteMetadata) -> str:
        self._ensure_configured()
        vault_dir = self._vault_dir(vault_id)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        version_id = f"{stamp}-{metadata.checksum[:8]}"
        stored = metadata.model_copy(update={"version": version_id})
        meta_json = stored.model_dump_json(by_alias=True, exclude_none=True, indent=2)

        with self._io_errors("Upload"):
            versions_dir = vault_dir / "versions"
            atomic_write(vault_dir / "vault.json", data)
            atomic_write(vault_dir / "metadata.json", meta_json)
            atomic_write(versions_dir / f"{version_id}.json", data)
            atomic_write(versions_dir / f"{version_id}.meta.json", meta_json)
            self._prune_versions(versions_dir)

        logger.info("Vault %s stored in %s (%s)", vault_id, self.root, version_id)
        return version_id

    def _prune_versions(self, versions_dir: Path) -> None:
        blobs = sorted(
            p for p in versions_dir.glob("*.json")
            if not p.name.endswith(".meta.json")
        )
        for old in blobs[: max(0, len(blobs) - self.MAX_VERSIONS)]:
            old.unlink(missing_ok=True)
            old.with_name(old.stem + ".meta.json").unlink(missing_ok=True)

    def _read_metadata(self, path: Path, vault_id: str) -> RemoteMetadata:
        try:
            return RemoteMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise CloudProviderError(
                self.name, f"Corrupt metadata for vault {vault_id}: {exc}"
            ) from exc

    def download(self, vault_id: str) -> tuple[bytes, RemoteMetadata]:
        self._ensure_configured()
        vault_dir = self._vault_dir(vault_id)
        blob = vault_dir / "vault.json"
        if not blob.exists():
            raise RemoteVaultNotFoundError(self.name, vault_id)
        with self._io_errors("Download"):
            data = blob.read_bytes()
            metadata = self._read_metadata(vault_dir / "metadata.json", vault_id)
        return data, metadata

    def exists(self, vault_id: str) -> bool:
        self._ensure_configured()
        return (self._vault_dir(vault_id) / "vault.json").exists()

    def get_metadata(self, vault_id: str) -> RemoteMetadata:
        self._ensure_configured()
        meta_file = self._vault_dir(vault_id) / "metadata.json"
        if not meta_file.exists():
            raise RemoteVaultNotFoundError(self.name, vault_id)
        with self._io_errors("Metadata read"):
            return self._read_metadata(meta_file, vault_id)

    def list_versions(self, vault_id: str) -> list[VaultVersion]:
        self._ensure_configured()
        versions_dir = self._vault_dir(vault_id) / "versions"
        if not versions_dir.exists():
            return []

        versions = []
        with self._io_errors("Version listing"):
            for meta_file in sorted(versions_dir.glob("*.meta.json"), reverse=True):
                meta = self._read_metadata(meta_file, vault_id)
                versions.append(
                    VaultVersion(
                        id=meta.version,
                        timestamp=meta.last_modified,
                        size=meta.size,
                        checksum=meta.checksum,
                        author=meta.author,
                    )
                )
        return versions

    def delete(self, vault_id: str) -> None:
        self._ensure_configured()
        vault_dir = self._vault_dir(vault_id)
        if not vault_dir.exists():
            raise RemoteVaultNotFoundError(self.name, vault_id)
        with self._io_errors("Delete"):
            shutil.rmtree(vault_dir)
        logger.info("Vault %s deleted from %s", vault_id, self.root)


# ---------------------------------------------------------------------------
# GitHub Gist
# ---------------------------------------------------------------------------


class GitHubGistProvider(BaseCloudProvider):
    """Stores each vault as a private GitHub gist.

    The gist holds ``vault.json`` (base64 of the sealed blob) and
    ``metadata.json``. Gists are found by their description.
    """

    name = "github-gist"
    display_name = "GitHub Gist"
    requires_auth = True

    API_BASE = "https://api.github.com"
    GIST_PREFIX = "safekey-vault-"
    VAULT_FILE = "vault.json"
    METADATA_FILE = "metadata.json"
    TIMEOUT = 30

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        super().__init__()
        self._session = session or requests.Session()

    def _validate_credentials(self, credentials: dict[str, str]) -> None:
        if not credentials.get("token"):
            raise ValueError("GitHub token is required")

    def _perform_authentication(self) -> None:
        self._request("GET", "/user")

    def _test_connection(self) -> None:
        self._request("GET", "/user")

    def _request(
        self, method: str, path: str, payload: Optional[dict] = None
    ) -> requests.Response:
        """Make an authenticated GitHub API call.

        404 responses are returned to the caller; other failures raise.
        """
        headers = {
            "Authorization": f"token {self._credentials.get('token', '')}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "SafeKey",
        }
        try:
            resp = self._session.request(
                method,
                f"{self.API_BASE}{path}",
                headers=headers,
                json=payload,
                timeout=self.TIMEOUT,
            )
        except requests.RequestException as exc:
            raise NetworkError(self.name, f"{method} {path}: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError(
                self.name, f"{method} {path}: {resp.status_code}"
            )
        if resp.status_code >= 500:
            raise NetworkError(
                self.name, f"{method} {path}: {resp.status_code} {resp.text}"
            )
        if resp.status_code >= 400 and resp.status_code != 404:
            raise CloudProviderError(
                self.name,
                f"GitHub API {method} {path}: {resp.status_code} {resp.text}",
            )
        return resp

    def _gist_description(self, vault_id: str) -> str:
        return f"SafeKey Vault: {self.GIST_PREFIX}{vault_id}"

    def _find_gist(self, vault_id: str) -> Optional[dict[str, Any]]:
        """Locate the gist for ``vault_id`` and fetch it with file contents."""
        marker = f"{self.GIST_PREFIX}{vault_id}"
        resp = self._request("GET", "/gists?per_page=100")
        if resp.status_code == 404:
            return None
        for gist in resp.json():
            if marker in (gist.get("description") or ""):
                full = self._request("GET", f"/gists/{gist['id']}")
                if full.status_code == 404:
                    return None
                return full.json()
        return None

    def _require_gist(self, vault_id: str) -> dict[str, Any]:
        gist = self._find_gist(vault_id)
        if gist is None:
            raise RemoteVaultNotFoundError(self.name, vault_id)
        return gist

    def _file_content(self, gist: dict[str, Any], filename: str) -> str:
        entry = (gist.get("files") or {}).get(filename)
        if entry is None:
            raise CloudProviderError(
                self.name, f"Invalid vault structure in gist: missing {filename}"
            )
        if entry.get("truncated") or entry.get("content") is None:
            try:
                resp = self._session.get(entry["raw_url"], timeout=self.TIMEOUT)
            except requests.RequestException as exc:
                raise NetworkError(self.name, f"Raw download failed: {exc}") from exc
            if not resp.ok:
                raise NetworkError(
                    self.name, f"Raw download failed: {resp.status_code}"
                )
            return resp.text
        return entry["content"]

    def _parse_metadata(self, gist: dict[str, Any]) -> RemoteMetadata:
        content = self._file_content(gist, self.METADATA_FILE)
        try:
            return RemoteMetadata.model_validate_json(content)
        except ValidationError as exc:
            raise CloudProviderError(
                self.name, f"Invalid metadata in gist {gist.get('id')}: {exc}"
            ) from exc

    def upload(self, vault_id: str, data: bytes, metadata: RemoteMetadata) -> str:
        self._ensure_configured()
        payload = {
            "description": self._gist_description(vault_id),
            "public": False,
            "files": {
                self.VAULT_FILE: {"content": base64.b64encode(data).decode("ascii")},
                self.METADATA_FILE: {
                    "content": metadata.model_dump_json(
                        by_alias=True, exclude_none=True, indent=2
                    )
                },
            },
        }

        existing = self._find_gist(vault_id)
        if existing:
            resp = self._request("PATCH", f"/gists/{existing['id']}", payload)
        else:
            resp = self._request("POST", "/gists", payload)
        if resp.status_code == 404:
            raise RemoteVaultNotFoundError(self.name, vault_id)

        gist = resp.json()
        history = gist.get("history") or []
        version = history[0]["version"] if history else gist["id"]
        logger.info("Vault %s uploaded to gist %s", vault_id, gist["id"])
        return version

    def download(self, vault_id: str) -> tuple[bytes, RemoteMetadata]:
        self._ensure_configured()
        gist = self._require_gist(vault_id)
        try:
            data = base64.b64decode(
                self._file_content(gist, self.VAULT_FILE), validate=True
            )
        except binascii.Error as exc:
            raise CloudProviderError(
                self.name, f"Invalid vault encoding in gist {gist['id']}"
            ) from exc
        return data, self._parse_metadata(gist)

    def exists(self, vault_id: str) -> bool:
        self._ensure_configured()
        return self._find_gist(vault_id) is not None

    def get_metadata(self, vault_id: str) -> RemoteMetadata:
        self._ensure_configured()
        return self._parse_metadata(self._require_gist(vault_id))

    def list_versions(self, vault_id: str) -> list[VaultVersion]:
        self._ensure_configured()
        gist = self._find_gist(vault_id)
        if gist is None:
            return []

        vault_file = (gist.get("files") or {}).get(self.VAULT_FILE) or {}
        versions = []
        for index, entry in enumerate(gist.get("history") or []):
            versions.append(
                VaultVersion(
                    id=entry["version"],
                    timestamp=entry["committed_at"],
                    size=vault_file.get("size", 0) if index == 0 else 0,
                    author=(entry.get("user") or {}).get("login"),
                )
            )
        return versions

    def delete(self, vault_id: str) -> None:
        self._ensure_configured()
        gist = self._require_gist(vault_id)
        self._request("DELETE", f"/gists/{gist['id']}")
        logger.info("Gist %s for vault %s deleted", gist["id"], vault_id)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, Callable[[], CloudProvider]] = {
    LocalDirectoryProvider.name: LocalDirectoryProvider,
    GitHubGistProvider.name: GitHubGistProvider,
}

_PROVIDER_CREDENTIALS: dict[str, list[str]] = {
    LocalDirectoryProvider.name: ["path"],
    GitHubGistProvider.name: ["token"],
}


def register_provider(
    name: str,
    factory: Callable[[], CloudProvider],
    credentials: Optional[list[str]] = None,
) -> None:
    """Register (or replace) a provider factory under ``name``."""
    _PROVIDERS[name] = factory
    _PROVIDER_CREDENTIALS[name] = list(credentials or [])


def get_provider(name: str) -> CloudProvider:
    """Instantiate the provider registered under ``name``.

    Raises:
        ValueError: If no such provider is registered.
    """
    factory = _PROVIDERS.get(name)
    if factory is None:
        raise ValueError(f"Cloud provider '{name}' not found")
    return factory()


def has_provider(name: str) -> bool:
    return name in _PROVIDERS


def list_providers() -> list[str]:
    return list(_PROVIDERS)


def provider_info() -> list[dict[str, Any]]:
    """Describe registered providers for display."""
    info = []
    for name in _PROVIDERS:
        provider = get_provider(name)
        info.append({
            "name": name,
            "display_name": provider.display_name,
            "requires_auth": provider.requires_auth,
            "credentials": _PROVIDER_CREDENTIALS.get(name, []),
        })
    return info
