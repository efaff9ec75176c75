"""
SafeKey CLI -- the vault command line.

The main Click group is defined here; each command group lives in its
own module and is attached via a register function.

Entry point: safekey.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="safekey")
@click.option("--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose):
    """SafeKey -- local-first encrypted secrets vault."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(name)s: %(message)s"
        )


from .cloud_cmd import register_cloud_commands  # noqa: E402
from .secrets_cmd import register_secrets_commands  # noqa: E402

register_secrets_commands(main)
register_cloud_commands(main)
