#!/usr/bin/python3

from pathlib import Path

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from rollout.backend import ApeRollout
from rollout.types import RoleAddress


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@click.option(
    "--params-filepath",
    "-p",
    help="Rollout params file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--enable",
    "-e",
    help="Run a stage regardless of its flag in the params file",
    multiple=True,
)
@click.option(
    "--disable",
    "-d",
    help="Skip (or attach) a stage regardless of its flag in the params file",
    multiple=True,
)
@click.option(
    "--attach",
    "-a",
    help="Attach a known address to a role, e.g. merchant=0x8c87...",
    type=RoleAddress(),
    multiple=True,
)
@click.option("--verify/--no-verify", default=True, help="Verify deployed contracts")
@click.option("--autosign", default=False, is_flag=True, help="Sign without confirmation")
def cli(network, account, params_filepath, enable, disable, attach, verify, autosign):
    """Run a rollout described by a params file."""
    rollout = ApeRollout.from_yaml(
        filepath=params_filepath,
        account=account,
        verify=verify,
        autosign=autosign,
        enable=enable,
        disable=disable,
        attach=dict(attach),
    )
    raise SystemExit(rollout.run())


if __name__ == "__main__":
    cli()
