"""
Reco: Main entry point.

This module bootstraps the application:
1. Ensures the data directory exists
2. Loads configuration
3. Initializes logging

Usage:
    python -m src.main chat     # Interactive chat
    reco ask +34600111222 "¿Cómo renuevo mi TIE?"
"""

from __future__ import annotations

from pathlib import Path

from src.config import RecoConfig, load_config
from src.constants import DATA_DIR, PROJECT_VERSION
from src.utils.logging import get_logger, setup_logging

logger = get_logger("main")


def bootstrap(config_path: Path | None = None) -> RecoConfig:
    """Load configuration and set up logging. Called before any channel starts."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    config = load_config(config_path)
    setup_logging(
        level=config.logging.level,
        json_format=config.logging.format == "json",
    )

    logger.info(
        "reco_bootstrap",
        version=PROJECT_VERSION,
        data_dir=str(DATA_DIR),
        billing_mode=config.billing.mode,
    )
    return config


def main() -> None:
    """Main entry point: starts Reco via CLI."""
    from src.cli.commands import cli

    cli()


if __name__ == "__main__":
    main()
