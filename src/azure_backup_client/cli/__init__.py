"""Command line interface."""

from .main import CommandContext, build_parser, main

__all__ = ["CommandContext", "build_parser", "main"]
