"""Credential file management for usagehub."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

logger = logging.getLogger(__name__)

# Provider CLI credential locations
PROVIDER_CREDENTIAL_PATHS: dict[str, str] = {
    "claude": "~/.claude/.credentials.json",
    "codex": "~/.codex/auth.json",
}

UNSAFE_PERMISSION_BITS = stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH


def _expand_path(path: str) -> Path:
    """Expand user path and return Path object."""
    return Path(path).expanduser()


def provider_credential_path(provider_id: str) -> Path | None:
    """Get the provider CLI's own credential file location."""
    if provider_id == "codex" and (codex_home := os.environ.get("CODEX_HOME")):
        return Path(codex_home).expanduser() / "auth.json"
    if provider_id in PROVIDER_CREDENTIAL_PATHS:
        return _expand_path(PROVIDER_CREDENTIAL_PATHS[provider_id])
    return None


def write_credential(path: Path, content: bytes) -> None:
    """Securely write credential to file with 0o600 permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file first, then rename for atomicity
    temp_path = path.with_suffix(".tmp")
    temp_path.write_bytes(content)
    temp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600
    temp_path.replace(path)


def check_credential_permissions(path: Path) -> bool:
    """True when the file is missing or only readable by its owner."""
    if not path.exists():
        return True
    return not (path.stat().st_mode & UNSAFE_PERMISSION_BITS)


def read_credential(path: Path) -> bytes | None:
    """Read a credential file, refusing ones that group or others can access."""
    try:
        mode = path.stat().st_mode
    except FileNotFoundError:
        return None

    if mode & UNSAFE_PERMISSION_BITS:
        logger.warning(
            "Ignoring %s: permissions %o are too open (expected 600)",
            path,
            stat.S_IMODE(mode),
        )
        return None

    return path.read_bytes()
