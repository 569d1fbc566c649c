"""Plugin metadata helpers.

Plugins live under ``PLUGIN_DIR`` and describe themselves with header
lines near the top of their main file, for example::

    # Plugin Name: Contact Forms
    # Version: 1.2.0
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, Optional

BASE_DIR = Path(__file__).resolve().parent.parent
PLUGIN_DIR = Path(os.environ.get("PLUGIN_DIR", BASE_DIR / "plugins"))

# Only the start of the file is inspected for headers
HEADER_BYTES = 8192

PLUGIN_HEADERS = {
    "Name": "Plugin Name",
    "Version": "Version",
    "Description": "Description",
    "Author": "Author",
}


def _plugin_file(plugin_path: str, plugin_dir: Path) -> Optional[Path]:
    """Return the absolute plugin file for *plugin_path* if it is inside *plugin_dir*."""
    if not plugin_path or not isinstance(plugin_path, str):
        return None
    root = Path(plugin_dir).resolve()
    candidate = (root / plugin_path).resolve()
    if root != candidate and root not in candidate.parents:
        return None
    if not candidate.is_file():
        return None
    return candidate


def get_plugin_data(plugin_path: str, plugin_dir: Optional[Path] = None) -> Optional[Dict[str, str]]:
    """Parse the header block of a plugin file.

    Returns ``None`` when the file does not exist.  Missing headers map to
    empty strings.
    """
    plugin_file = _plugin_file(plugin_path, Path(plugin_dir or PLUGIN_DIR))
    if plugin_file is None:
        return None
    with open(plugin_file, "r", encoding="utf-8", errors="replace") as fh:
        head = fh.read(HEADER_BYTES)
    data = {}
    for field, label in PLUGIN_HEADERS.items():
        match = re.search(
            r"^[ \t/*#@]*" + re.escape(label) + r":(.*)$", head, flags=re.MULTILINE | re.IGNORECASE
        )
        data[field] = match.group(1).strip() if match else ""
    return data


def get_plugin_name(plugin_path: str, plugin_dir: Optional[Path] = None) -> Optional[str]:
    """Return the human readable plugin name or ``None`` when unresolvable."""
    data = get_plugin_data(plugin_path, plugin_dir)
    if not data or not data.get("Name"):
        return None
    return data["Name"]


def list_plugins(plugin_dir: Optional[Path] = None) -> Dict[str, Dict[str, str]]:
    """Return plugin data keyed by path relative to *plugin_dir*."""
    root = Path(plugin_dir or PLUGIN_DIR)
    if not root.is_dir():
        return {}
    plugins = {}
    for path in sorted(root.rglob("*.py")):
        relative = path.relative_to(root).as_posix()
        data = get_plugin_data(relative, root)
        if data and data.get("Name"):
            plugins[relative] = data
    return plugins


__all__ = ["PLUGIN_DIR", "get_plugin_data", "get_plugin_name", "list_plugins"]
