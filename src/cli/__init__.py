"""Reco CLI: command-line interface."""

from src.cli.commands import cli

__all__ = ["cli"]
