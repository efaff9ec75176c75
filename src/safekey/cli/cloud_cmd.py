"""Cloud commands: providers, enable, disable, sync, status, resolve, versions."""

from __future__ import annotations

import sys

import click
from rich.panel import Panel
from rich.table import Table

from ..errors import SyncConflictError
from ..sync.engine import SyncManager
from ..sync.models import (
    ConflictResolution,
    ResolutionStrategy,
    SyncResult,
    SyncStatusKind,
)
from ..sync.providers import provider_info
from ._common import console, handle_errors, vault_option

_STATUS_STYLE = {
    SyncStatusKind.SYNCED: "[bold green]SYNCED[/]",
    SyncStatusKind.PENDING: "[bold yellow]PENDING[/]",
    SyncStatusKind.CONFLICT: "[bold red]CONFLICT[/]",
    SyncStatusKind.ERROR: "[bold red]ERROR[/]",
    SyncStatusKind.DISCONNECTED: "[dim]DISCONNECTED[/]",
}


def _parse_credentials(pairs: tuple[str, ...]) -> dict[str, str]:
    creds = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(
                f"expected KEY=VALUE, got {pair!r}", param_hint="--credential"
            )
        creds[key.strip()] = value
    return creds


def _print_result(result: SyncResult) -> None:
    if result.success:
        console.print(f"[green]Sync ok:[/] {result.action.value}")
        if result.conflict_details:
            console.print("  [yellow]Conflict auto-resolved by policy[/]")
    else:
        console.print(f"[red]Sync failed:[/] {result.error}")
        sys.exit(1)


def register_cloud_commands(main: click.Group) -> None:
    """Register the cloud sync command group."""

    @main.group()
    def cloud():
        """Sync sealed vaults with a remote provider.

        Only the encrypted vault file ever leaves this machine.
        """

    @cloud.command("providers")
    def cloud_providers():
        """List available providers."""
        table = Table(title="Cloud Providers")
        table.add_column("Name", style="cyan")
        table.add_column("Display name")
        table.add_column("Credentials")
        for info in provider_info():
            table.add_row(
                info["name"], info["display_name"], ", ".join(info["credentials"])
            )
        console.print(table)

    @cloud.command("enable")
    @click.argument("provider")
    @click.option(
        "--credential", "-c", multiple=True, metavar="KEY=VALUE",
        help="Provider credential; repeat for several.",
    )
    @click.option("--auto-sync", is_flag=True)
    @click.option("--interval", default=15, show_default=True, help="Minutes.")
    @click.option(
        "--conflicts",
        type=click.Choice([c.value for c in ConflictResolution]),
        default=ConflictResolution.MANUAL.value,
        show_default=True,
    )
    @vault_option
    @handle_errors
    def cloud_enable(provider, credential, auto_sync, interval, conflicts, vault_ref):
        """Enable sync for a vault."""
        sync_config = SyncManager().enable_sync(
            vault_ref,
            provider,
            _parse_credentials(credential),
            auto_sync=auto_sync,
            sync_interval=interval,
            conflict_resolution=ConflictResolution(conflicts),
        )
        console.print(
            f"[green]Sync enabled[/] via [cyan]{provider}[/] "
            f"(remote id {sync_config.vault_id})"
        )

    @cloud.command("disable")
    @vault_option
    @handle_errors
    def cloud_disable(vault_ref):
        """Disable sync for a vault (remote copy is kept)."""
        SyncManager().disable_sync(vault_ref)
        console.print("[green]Sync disabled[/]")

    @cloud.command("sync")
    @vault_option
    @handle_errors
    def cloud_sync(vault_ref):
        """Reconcile the local vault with its remote copy."""
        try:
            result = SyncManager().sync_vault(vault_ref)
        except SyncConflictError as exc:
            conflict = exc.conflict
            console.print(
                Panel(
                    f"Local checksum:  {conflict.local_data.checksum}\n"
                    f"Remote checksum: {conflict.remote_data.checksum}\n\n"
                    "Run [cyan]safekey cloud resolve local|remote[/] to choose.",
                    title="Sync conflict",
                    border_style="red",
                )
            )
            sys.exit(2)
        _print_result(result)

    @cloud.command("resolve")
    @click.argument(
        "strategy", type=click.Choice([s.value for s in ResolutionStrategy])
    )
    @vault_option
    @handle_errors
    def cloud_resolve(strategy, vault_ref):
        """Resolve a conflict by keeping the local or remote copy."""
        _print_result(SyncManager().resolve_conflicts(vault_ref, strategy))

    @cloud.command("status")
    @vault_option
    def cloud_status(vault_ref):
        """Show sync status for a vault."""
        status = SyncManager().get_sync_status(vault_ref)
        console.print(
            Panel(
                f"Provider: [cyan]{status.provider}[/]\n"
                f"Status: {_STATUS_STYLE[status.status]}\n"
                f"Last sync: {status.last_sync or '[dim]never[/]'}\n"
                f"Conflicts: {status.conflict_count}"
                + (f"\nError: [red]{status.error}[/]" if status.error else ""),
                title="SafeKey Sync",
                border_style="magenta",
            )
        )

    @cloud.command("versions")
    @vault_option
    @handle_errors
    def cloud_versions(vault_ref):
        """List remote versions of a vault."""
        versions = SyncManager().list_remote_versions(vault_ref)
        if not versions:
            console.print("[dim]No remote versions.[/]")
            return
        table = Table(title="Remote Versions")
        table.add_column("Version", style="cyan")
        table.add_column("Timestamp")
        table.add_column("Size", justify="right")
        table.add_column("Author")
        for v in versions:
            table.add_row(v.id, v.timestamp.isoformat(), str(v.size), v.author or "")
        console.print(table)
