"""Shared test fixtures for safekey."""

from __future__ import annotations

from pathlib import Path

import pytest

TEST_PASSWORD = "correct-horse"


@pytest.fixture
def master_password() -> str:
    """Master password used by every vault the fixtures create."""
    return TEST_PASSWORD


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point SAFEKEY_HOME at a temp dir so no test touches ~/.safekey."""
    home = tmp_path / ".safekey"
    monkeypatch.setenv("SAFEKEY_HOME", str(home))
    monkeypatch.delenv("SAFEKEY_PASSWORD", raising=False)
    return home


@pytest.fixture
def vault_path(tmp_path: Path) -> Path:
    """Path for a not-yet-created vault file."""
    return tmp_path / "vaults" / "test-vault.json"


@pytest.fixture
def unlocked_vault(vault_path: Path):
    """A freshly initialized vault, locked again after the test."""
    from safekey.vault import Vault

    vault = Vault(vault_path)
    vault.initialize(TEST_PASSWORD)
    yield vault
    vault.clear_master_key()


@pytest.fixture
def remote_dir(tmp_path: Path) -> Path:
    """Directory acting as the remote store for the local provider."""
    remote = tmp_path / "remote"
    remote.mkdir()
    return remote
