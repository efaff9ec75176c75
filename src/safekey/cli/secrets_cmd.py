"""Vault commands: init, add, get, update, remove, list, export, import."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.table import Table

from ..config import Config
from ..vault import Vault
from ._common import (
    ask_password,
    console,
    handle_errors,
    open_vault,
    password_option,
    resolve_vault,
    vault_option,
)


def register_secrets_commands(main: click.Group) -> None:
    """Register the secret CRUD commands on the main group."""

    @main.command("init")
    @vault_option
    @password_option
    @click.option("--force", is_flag=True, help="Overwrite an existing vault.")
    @handle_errors
    def init(vault_ref, password, force):
        """Create a new encrypted vault."""
        path = resolve_vault(vault_ref)
        if path.exists() and not force:
            console.print(
                f"[yellow]Vault already exists at {path}.[/] Use --force to overwrite."
            )
            sys.exit(1)

        with Vault(path) as vault:
            confirm = Config().settings.security.require_password_confirmation
            vault.initialize(ask_password(password, confirm=confirm))
        console.print(f"[green]Vault created:[/] {path}")

    @main.command("add")
    @click.argument("key")
    @click.argument("value")
    @click.option("--description", "-d", default=None)
    @vault_option
    @password_option
    @handle_errors
    def add(key, value, description, vault_ref, password):
        """Add a new secret."""
        with open_vault(vault_ref, password) as vault:
            vault.add_secret(key, value, description)
        console.print(f"[green]Added[/] {key}")

    @main.command("get")
    @click.argument("key")
    @vault_option
    @password_option
    @handle_errors
    def get(key, vault_ref, password):
        """Print a secret's value."""
        with open_vault(vault_ref, password) as vault:
            secret = vault.get_secret(key)
        click.echo(secret.value)

    @main.command("update")
    @click.argument("key")
    @click.argument("value")
    @click.option("--description", "-d", default=None)
    @vault_option
    @password_option
    @handle_errors
    def update(key, value, description, vault_ref, password):
        """Change a secret's value."""
        with open_vault(vault_ref, password) as vault:
            vault.update_secret(key, value, description)
            version = vault.get_secret(key).version
        console.print(f"[green]Updated[/] {key} (v{version})")

    @main.command("remove")
    @click.argument("key")
    @vault_option
    @password_option
    @handle_errors
    def remove(key, vault_ref, password):
        """Delete a secret permanently."""
        with open_vault(vault_ref, password) as vault:
            vault.remove_secret(key)
        console.print(f"[green]Removed[/] {key}")

    @main.command("list")
    @vault_option
    @password_option
    @handle_errors
    def list_cmd(vault_ref, password):
        """List secrets (values are never shown)."""
        with open_vault(vault_ref, password) as vault:
            secrets = vault.get_all_secrets()

        if not secrets:
            console.print("[dim]Vault is empty.[/]")
            return

        table = Table(title="Secrets")
        table.add_column("Key", style="cyan")
        table.add_column("Description")
        table.add_column("Version", justify="right")
        table.add_column("Updated")
        for s in sorted(secrets, key=lambda s: s.key):
            table.add_row(
                s.key,
                s.description or "",
                str(s.version),
                s.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    @main.command("export")
    @click.option(
        "--format", "fmt", type=click.Choice(["json", "env"]), default="json",
    )
    @click.option("--output", "-o", type=click.Path(dir_okay=False), default=None)
    @vault_option
    @password_option
    @handle_errors
    def export(fmt, output, vault_ref, password):
        """Export secrets as PLAINTEXT."""
        with open_vault(vault_ref, password) as vault:
            text = vault.export_secrets(fmt)

        if output:
            Path(output).write_text(text + "\n", encoding="utf-8")
            console.print(f"[yellow]Plaintext secrets written to {output}[/]")
        else:
            click.echo(text)

    @main.command("import")
    @click.argument("source", type=click.File("r", encoding="utf-8"))
    @click.option(
        "--format", "fmt", type=click.Choice(["json", "env"]), default="json",
    )
    @click.option("--overwrite", is_flag=True, help="Replace existing keys.")
    @vault_option
    @password_option
    @handle_errors
    def import_cmd(source, fmt, overwrite, vault_ref, password):
        """Import secrets from a json or env file."""
        data = source.read()
        with open_vault(vault_ref, password) as vault:
            count = vault.import_secrets(data, fmt, overwrite)
        console.print(f"[green]Imported {count} secret(s)[/]")
