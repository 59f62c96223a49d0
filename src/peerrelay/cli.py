"""CLI entry point for the relay server."""

from pathlib import Path

import click

from peerrelay import __version__
from peerrelay.config import load_config
from peerrelay.errors import ConfigError
from peerrelay.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """peerrelay - Signaling relay for peer-to-peer sessions."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e))
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.option("--host", "-h", default=None, help="Address to bind (overrides config).")
@click.option("--port", "-p", type=int, default=None, help="Port to bind (overrides config).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the relay server."""
    import asyncio

    from peerrelay.server import RelayServer

    config = ctx.obj["config"]
    if host is not None:
        config.bind_address = host
    if port is not None:
        config.port = port

    async def _serve():
        server = RelayServer(config)
        await server.start()
        click.echo(f"Relay listening on {config.bind_address}:{server.get_port()}{config.path}")
        click.echo("Press Ctrl+C to stop")
        await server.run_forever()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@main.command("id")
@click.option("--count", "-n", type=int, default=1, help="Number of IDs to print.")
def generate(count: int) -> None:
    """Print freshly generated peer IDs."""
    from peerrelay.ids import generate_id

    for _ in range(count):
        click.echo(generate_id())


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"peerrelay version {__version__}")
