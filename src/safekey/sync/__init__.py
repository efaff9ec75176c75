"""
SafeKey Sync -- keep a sealed vault in step across devices.

The vault never travels naked: only the encrypted blob and a checksum
record leave the machine. Providers are pluggable (local directory,
GitHub Gist); the engine decides direction and flags conflicts.
"""

from .engine import SyncManager
from .providers import CloudProvider, get_provider, list_providers, register_provider

__all__ = [
    "CloudProvider",
    "SyncManager",
    "get_provider",
    "list_providers",
    "register_provider",
]
