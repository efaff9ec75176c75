"""
SafeKey configuration -- profiles and security preferences.

Lives in ``$SAFEKEY_HOME/config.yaml`` (default ``~/.safekey``).
A profile is a named vault path, so ``safekey --vault work`` can resolve
to a file without the user typing it.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from ._io import atomic_write

logger = logging.getLogger("safekey.config")

DEFAULT_HOME = "~/.safekey"
DEFAULT_VAULT_PATH = Path("~/.safekey-vault.json")
DEFAULT_PROFILE = "default"


def default_home() -> Path:
    """Resolve the SafeKey home directory (``SAFEKEY_HOME`` wins)."""
    return Path(os.environ.get("SAFEKEY_HOME", DEFAULT_HOME)).expanduser()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProfileConfig(BaseModel):
    """A named vault location."""

    name: str
    vault_path: Path
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    last_used: datetime = Field(default_factory=_now)


class SecuritySettings(BaseModel):
    """User-tunable security preferences."""

    # Ask for the master password twice when creating a vault.
    require_password_confirmation: bool = True


def _default_profiles() -> dict[str, ProfileConfig]:
    return {
        DEFAULT_PROFILE: ProfileConfig(
            name=DEFAULT_PROFILE,
            vault_path=DEFAULT_VAULT_PATH,
            description="Default SafeKey vault",
        )
    }


class SafeKeySettings(BaseModel):
    """Complete persisted configuration."""

    default_vault_path: Path = DEFAULT_VAULT_PATH
    current_profile: str = DEFAULT_PROFILE
    profiles: dict[str, ProfileConfig] = Field(default_factory=_default_profiles)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


class Config:
    """Load, query and persist SafeKey settings."""

    def __init__(self, home: Optional[Path] = None):
        """Initialize the config store.

        Args:
            home: SafeKey home directory. Defaults to ``default_home()``.
        """
        self.home = Path(home).expanduser() if home else default_home()
        self.config_file = self.home / "config.yaml"
        self.settings = self._load()

    def _load(self) -> SafeKeySettings:
        if self.config_file.exists():
            try:
                data = yaml.safe_load(
                    self.config_file.read_text(encoding="utf-8")
                ) or {}
                settings = SafeKeySettings(**data)
                if DEFAULT_PROFILE not in settings.profiles:
                    settings.profiles.update(_default_profiles())
                return settings
            except (yaml.YAMLError, ValueError, TypeError) as exc:
                logger.warning("Failed to load config %s: %s", self.config_file, exc)
        return SafeKeySettings()

    def save(self) -> None:
        """Persist settings to ``config.yaml``."""
        data = self.settings.model_dump(mode="json")
        atomic_write(
            self.config_file, yaml.dump(data, default_flow_style=False)
        )
        logger.debug("Config saved to %s", self.config_file)

    def is_first_run(self) -> bool:
        return not self.config_file.exists()

    def get_profile(self, name: str) -> Optional[ProfileConfig]:
        return self.settings.profiles.get(name)

    def get_current_profile(self) -> ProfileConfig:
        """Return the active profile, falling back to the default one."""
        profile = self.settings.profiles.get(self.settings.current_profile)
        if profile is None:
            logger.warning(
                "Current profile %r missing, using default",
                self.settings.current_profile,
            )
            profile = self.settings.profiles[DEFAULT_PROFILE]
        return profile

    def set_current_profile(self, name: str) -> None:
        profile = self.settings.profiles.get(name)
        if profile is None:
            raise ValueError(f"Profile '{name}' does not exist")
        profile.last_used = _now()
        self.settings.current_profile = name
        self.save()

    def create_profile(
        self, name: str, vault_path: Path, description: Optional[str] = None
    ) -> ProfileConfig:
        if name in self.settings.profiles:
            raise ValueError(f"Profile '{name}' already exists")
        profile = ProfileConfig(
            name=name, vault_path=Path(vault_path), description=description
        )
        self.settings.profiles[name] = profile
        self.save()
        logger.info("Created profile %s -> %s", name, vault_path)
        return profile

    def delete_profile(self, name: str) -> None:
        if name == DEFAULT_PROFILE:
            raise ValueError("Cannot delete the default profile")
        if name not in self.settings.profiles:
            raise ValueError(f"Profile '{name}' does not exist")
        del self.settings.profiles[name]
        if self.settings.current_profile == name:
            self.settings.current_profile = DEFAULT_PROFILE
        self.save()

    def list_profiles(self) -> list[ProfileConfig]:
        return list(self.settings.profiles.values())

    def update_security(self, **changes: Any) -> SecuritySettings:
        """Merge changes into the security settings (validated) and save."""
        merged = self.settings.security.model_dump()
        merged.update(changes)
        self.settings.security = SecuritySettings(**merged)
        self.save()
        return self.settings.security

    def reset(self) -> None:
        """Restore defaults and remove the config file."""
        self.settings = SafeKeySettings()
        self.config_file.unlink(missing_ok=True)
