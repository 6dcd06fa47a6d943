"""
Entry point for running azure_backup_client as a module.

This file enables:
- `python -m azure_backup_client`
- `uv run python -m azure_backup_client`
"""

from __future__ import annotations

import sys

from azure_backup_client.cli import main

if __name__ == "__main__":
    sys.exit(main())
