"""embedcache CLI entry point.

Provides command-line interface for operating the embedding cache:
initializing and rotating the alias, health checks and ad-hoc embedding.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Optional

import typer
from typing_extensions import Annotated

from embedcache.config import EmbedCacheConfig, get_config
from embedcache.exceptions import EmbedCacheError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from embedcache.manager import EmbeddingCacheManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create CLI app
app = typer.Typer(
    name="embedcache",
    help="embedcache - resilient cache-aside layer for text embeddings",
    add_completion=False,
)

ModeOption = Annotated[str, typer.Option("--mode", "-m", help="Operational mode (lite|standard)")]
ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")]


def _load_config(mode: str, config: str, verbose: bool) -> EmbedCacheConfig:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    from embedcache.modes import list_modes

    try:
        cfg = get_config(config or None)
    except EmbedCacheError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)

    if mode:
        cfg.mode = mode
    if cfg.mode not in list_modes():
        typer.echo(f"❌ Invalid mode: {cfg.mode}", err=True)
        typer.echo(f"   Valid modes: {', '.join(list_modes())}", err=True)
        raise typer.Exit(code=1)
    return cfg


def _run(
    cfg: EmbedCacheConfig,
    action: Callable[[EmbeddingCacheManager], Awaitable[Any]],
    initialize: bool = True,
) -> Any:
    """Run ``action`` against a freshly built manager, closing it afterwards."""
    from embedcache.manager import EmbeddingCacheManager

    async def runner() -> Any:
        manager = await EmbeddingCacheManager.create(cfg, initialize=initialize)
        try:
            return await action(manager)
        finally:
            await manager.aclose()

    try:
        return asyncio.run(runner())
    except EmbedCacheError as e:
        typer.echo(f"❌ {e.__class__.__name__}: {e}", err=True)
        logger.debug("Command failed", exc_info=True)
        raise typer.Exit(code=1)


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command()
def init(
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Create the first partition and bind the alias if it does not exist."""
    cfg = _load_config(mode, config, verbose)

    async def action(manager: EmbeddingCacheManager) -> str | None:
        return await manager.ensure_initialized()

    created = _run(cfg, action, initialize=False)
    if created:
        typer.echo(f"✅ Alias {cfg.elasticsearch.alias} bound to new partition {created}")
    else:
        typer.echo(f"✅ Alias {cfg.elasticsearch.alias} already exists")


@app.command()
def rotate(
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Roll the alias over to this month's partition and apply retention.

    Run rotation from a single place (cron job or one application
    instance); concurrent rotations are not coordinated.
    """
    cfg = _load_config(mode, config, verbose)

    async def action(manager: EmbeddingCacheManager) -> Any:
        return await manager.rotate()

    result = _run(cfg, action)
    _echo_json(result.to_dict())


@app.command()
def health(
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Probe the document store, generation API and circuit breaker."""
    from embedcache.health import HealthStatus

    cfg = _load_config(mode, config, verbose)

    async def action(manager: EmbeddingCacheManager) -> Any:
        return await manager.perform_health_check()

    result = _run(cfg, action)
    _echo_json(result.to_dict())
    if result.status == HealthStatus.DOWN:
        raise typer.Exit(code=1)


@app.command()
def embed(
    text: Annotated[str, typer.Argument(help="Text to embed")],
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Get the embedding for TEXT, generating and caching it on a miss."""
    cfg = _load_config(mode, config, verbose)

    async def action(manager: EmbeddingCacheManager) -> list[float]:
        return await manager.get_embedding(text)

    embedding = _run(cfg, action)
    _echo_json({"dimensions": len(embedding), "embedding": embedding})


@app.command()
def metrics(
    texts: Annotated[Optional[list[str]], typer.Argument(help="Texts to embed concurrently")] = None,
    prometheus: Annotated[
        bool, typer.Option("--prometheus", help="Print the Prometheus exposition format")
    ] = False,
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Embed TEXTS concurrently and report the resulting metrics."""
    cfg = _load_config(mode, config, verbose)

    async def action(manager: EmbeddingCacheManager) -> Any:
        if texts:
            async with manager.create_async_service() as service:
                await service.get_embeddings_batch(list(texts))
        if prometheus:
            return manager.metrics.export().decode()
        return manager.get_metrics_summary().to_dict()

    output = _run(cfg, action)
    if prometheus:
        typer.echo(output)
    else:
        _echo_json(output)


@app.command()
def serve(
    mode: ModeOption = "",
    config: ConfigOption = "",
    verbose: VerboseOption = False,
) -> None:
    """Run the cache with scheduled rotation and health checks until interrupted."""
    cfg = _load_config(mode, config, verbose)

    from embedcache.main import run

    try:
        run(config=cfg)
    except EmbedCacheError as e:
        typer.echo(f"❌ Failed to start: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show embedcache version information."""
    try:
        import importlib.metadata

        ver = importlib.metadata.version("embedcache")
        typer.echo(f"embedcache version: {ver}")
    except importlib.metadata.PackageNotFoundError:
        typer.echo("embedcache version: unknown")


@app.command()
def modes() -> None:
    """List available operational modes."""
    from embedcache.modes import get_mode, list_modes

    typer.echo("Available operational modes:")
    typer.echo("")

    cfg = EmbedCacheConfig()
    for mode_name in list_modes():
        mode_instance = get_mode(mode_name, cfg)
        typer.echo(f"  {mode_name}:")
        typer.echo(f"    Description: {mode_instance.mode_config.description}")
        typer.echo(f"    Store Backend: {mode_instance.mode_config.store_backend}")
        typer.echo(f"    Persistent: {'Yes' if mode_instance.mode_config.persistent else 'No'}")
        typer.echo(f"    External Services: {'Required' if mode_instance.requires_external_services else 'None'}")
        typer.echo("")


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
