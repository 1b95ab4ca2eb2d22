from __future__ import annotations

"""
escrowbook.version: resolved package version.

Order of precedence:
  1. ESCROWBOOK_VERSION from the environment (release pipelines, devnets);
  2. the installed distribution's metadata (`pip install escrowbook`);
  3. BASE_VERSION for a bare source checkout.
"""

import os
from importlib import metadata
from typing import Optional

BASE_VERSION = "0.1.0"
DIST_NAME = "escrowbook"


def _installed_version() -> Optional[str]:
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return None


def resolve_version() -> str:
    return os.getenv("ESCROWBOOK_VERSION") or _installed_version() or BASE_VERSION


__version__ = resolve_version()


def get_version() -> str:
    return __version__


__all__ = ["__version__", "get_version", "resolve_version", "BASE_VERSION"]
