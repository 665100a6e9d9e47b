"""Click commands for running the agent and inspecting manifests."""

from __future__ import annotations

import asyncio
from typing import IO

import click

from workagent.errors import DecodeError


@click.group()
def cli() -> None:
    """Distribute Work manifests from a hub cluster onto this spoke cluster."""


@cli.command()
@click.option("--cluster-namespace", default=None, help="Hub namespace holding this cluster's Work objects.")
@click.option("--hub-kubeconfig", default=None, type=click.Path(dir_okay=False), help="Kubeconfig for the hub.")
@click.option("--spoke-kubeconfig", default=None, type=click.Path(dir_okay=False), help="Kubeconfig for the spoke.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
)
def run(
    cluster_namespace: str | None,
    hub_kubeconfig: str | None,
    spoke_kubeconfig: str | None,
    log_level: str | None,
) -> None:
    """Run the agent.  Options override the WORKAGENT_* environment."""
    from workagent.app import main
    from workagent.config import _validate_namespace, load_config

    try:
        config = load_config()
        if cluster_namespace is not None:
            config.cluster.cluster_namespace = _validate_namespace(cluster_namespace)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if hub_kubeconfig is not None:
        config.cluster.hub_kubeconfig = hub_kubeconfig
    if spoke_kubeconfig is not None:
        config.cluster.spoke_kubeconfig = spoke_kubeconfig
    if log_level is not None:
        config.log.level = log_level.lower()

    asyncio.run(main(config))


@cli.command("manifest-hash")
@click.argument("manifest", type=click.File("rb"))
def manifest_hash(manifest: IO[bytes]) -> None:
    """Print the content hash the agent stamps on MANIFEST (JSON, '-' for stdin)."""
    from workagent.controllers.apply import compute_manifest_hash
    from workagent.controllers.resolver import decode_manifest

    try:
        obj = decode_manifest(manifest.read())
    except DecodeError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(compute_manifest_hash(obj))


@cli.command()
def version() -> None:
    """Print the workagent version."""
    from workagent import __version__

    click.echo(__version__)
