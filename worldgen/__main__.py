#!/usr/bin/env python3
"""
worldgen CLI
Generate, extend and check chapter-based adventure worlds.
"""
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

import click

from worldgen.core.content_store import ContentStore, ContentStoreError
from worldgen.core.integrity import content_summary
from worldgen.core.llm_client import get_api_key
from worldgen.core.world_generator import GenerationCallbacks, WorldGenerator
from worldgen.models.config import WorldGenerationConfig
from worldgen.models.report import GenerationReport

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> Path:
    """Configure logging to both console and file.

    Returns:
        Path to the log file
    """
    logs_dir = Path("logs") / "worldgen"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = logs_dir / f"worldgen_{timestamp}.log"

    # File handler - always verbose
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)

    # Console handler - progress goes through click.echo, so only problems here
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.ERROR)
    console_formatter = logging.Formatter('%(levelname)s: %(message)s')
    console_handler.setFormatter(console_formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger("litellm").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return log_file


def _console_callbacks() -> GenerationCallbacks:
    return GenerationCallbacks(
        on_progress=lambda fraction, message: click.echo(f"[{fraction:6.1%}] {message}"),
        on_error=lambda message: click.secho(f"  ! {message}", fg="yellow", err=True),
    )


def _print_report(report: GenerationReport):
    click.echo("")
    click.echo(f"State: {report.state}")
    if report.output_path:
        click.echo(f"Output: {report.output_path}")
    if report.counts:
        click.echo("Counts: " + ", ".join(f"{kind}={count}" for kind, count in sorted(report.counts.items())))
    if report.tokens_used:
        click.echo(f"Tokens used: {report.tokens_used}")

    click.echo(f"Errors: {len(report.errors)}, warnings: {len(report.warnings)}")
    for entry in report.errors:
        click.secho(f"  {entry}", fg="red")
    for entry in report.warnings:
        click.secho(f"  {entry}", fg="yellow")


def _require_credential(provider: str) -> str:
    credential = get_api_key(provider)
    if not credential and provider != "ollama":
        raise click.ClickException(
            f"No API key found for provider '{provider}'. Set WORLDGEN_API_KEY or the provider's key in .env"
        )
    return credential


@click.group()
def main():
    """Generate chapter-based adventure worlds with an LLM."""


@main.command()
@click.argument('config_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output-dir', type=click.Path(file_okay=False, path_type=Path),
              default=Path("worlds"), show_default=True, help='Directory worlds are written to')
@click.option('--debug', is_flag=True, help='Enable debug mode')
def generate(config_path: Path, output_dir: Path, debug: bool):
    """Generate a new world from a YAML run file."""
    log_file = setup_logging(debug=debug)
    logger.info("=" * 60)
    logger.info("worldgen generate")
    logger.info(f"Run file: {config_path}")
    logger.info(f"Output dir: {output_dir}")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 60)

    try:
        config = WorldGenerationConfig.from_yaml(config_path)
    except ValueError as e:
        raise click.ClickException(f"Invalid run file {config_path}: {e}")

    credential = _require_credential(config.provider.provider)
    generator = WorldGenerator(output_dir, callbacks=_console_callbacks(), interaction_log_dir=Path("logs") / "worldgen")

    try:
        report = asyncio.run(generator.start_generation(config, credential))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        raise click.Abort()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        raise

    _print_report(report)
    if not report.succeeded:
        sys.exit(1)


@main.command('next-chapter')
@click.argument('world_dir', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--debug', is_flag=True, help='Enable debug mode')
def next_chapter(world_dir: Path, debug: bool):
    """Generate the next chapter of a persisted world."""
    log_file = setup_logging(debug=debug)
    logger.info("=" * 60)
    logger.info("worldgen next-chapter")
    logger.info(f"World: {world_dir}")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 60)

    store = ContentStore(world_dir.parent)
    try:
        config = store.load_world(world_dir).config
    except ContentStoreError as e:
        raise click.ClickException(str(e))

    credential = _require_credential(config.provider.provider)
    generator = WorldGenerator(world_dir.parent, callbacks=_console_callbacks(), interaction_log_dir=Path("logs") / "worldgen")

    try:
        report = asyncio.run(generator.generate_next_chapter(credential, world_dir))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        raise click.Abort()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        raise

    _print_report(report)
    if not report.succeeded:
        sys.exit(1)


@main.command()
@click.argument('world_dir', type=click.Path(exists=True, file_okay=False, path_type=Path))
def check(world_dir: Path):
    """Check a persisted world for schema and integrity errors."""
    generator = WorldGenerator(world_dir.parent)
    try:
        report = generator.check_world(world_dir)
        chapters = generator.store.load_world(world_dir).chapters
    except ContentStoreError as e:
        raise click.ClickException(str(e))

    click.echo(content_summary(chapters, report.counts))
    _print_report(report)
    if report.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
