"""Backup file format for the module's user database.

A backup is a JSON document::

    {
      "format": "waveshare-fingerprint-templates",
      "version": 1,
      "users": [
        {"user_id": 1, "privilege": 3, "eigenvalues": "0a1b..."},
        ...
      ]
    }

Eigenvalues are stored hex-encoded, exactly as returned by the module's
get-user-properties command, so they can be written back unchanged with
set-user-properties.
"""

from __future__ import annotations

import json
from pathlib import Path

from .user import UserTemplate

TEMPLATES_FORMAT = "waveshare-fingerprint-templates"
TEMPLATES_VERSION = 1


def export_templates(users: list[UserTemplate], path: str | Path) -> Path:
    """Write a template backup to a JSON file.

    Args:
        users: Users to store, in the order given.
        path: Output file path.

    Returns:
        The path written to.
    """
    path = Path(path)
    document = {
        "format": TEMPLATES_FORMAT,
        "version": TEMPLATES_VERSION,
        "users": [user.to_dict() for user in users],
    }
    path.write_text(json.dumps(document, indent=2))
    return path


def import_templates(path: str | Path) -> list[UserTemplate]:
    """Read users from a template backup file.

    Args:
        path: Path to the JSON backup.

    Returns:
        The stored users.

    Raises:
        ValueError: If the file is not a template backup or an entry is
            invalid.
    """
    path = Path(path)
    try:
        document = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Not a JSON file: {path}: {e}") from e

    if not isinstance(document, dict) or document.get("format") != TEMPLATES_FORMAT:
        raise ValueError(
            f"Invalid backup format in {path} (expected {TEMPLATES_FORMAT!r})"
        )
    version = document.get("version")
    if version != TEMPLATES_VERSION:
        raise ValueError(f"Unsupported backup version: {version!r}")

    return [UserTemplate.from_dict(entry) for entry in document.get("users", [])]
