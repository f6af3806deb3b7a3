#!/usr/bin/env python3
"""Seedbox maintenance - policy-driven torrent retention for qBittorrent."""

__version__ = "0.1.0"
__license__ = "MIT"

from .config import Instance, Settings, load_config
from .supervisor import Supervisor, run

__all__ = ["Instance", "Settings", "Supervisor", "load_config", "run", "__version__"]
