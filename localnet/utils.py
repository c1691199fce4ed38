"""Filesystem and subprocess helpers."""

import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Sequence

import structlog

from .core.exceptions import InvalidNetworkName, RuntimeFailure

logger = structlog.get_logger()

NETWORK_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,62}$")


def validate_network_name(name: str) -> str:
    """Network names double as directory and compose project names."""
    if not NETWORK_NAME_PATTERN.match(name or ""):
        raise InvalidNetworkName(name)
    return name


def run_command(args: Sequence[str], cwd: Optional[Path] = None,
                env: Optional[dict] = None) -> subprocess.CompletedProcess:
    """Run an external command and capture its output.

    Raises:
        RuntimeFailure: If the executable is missing or exits non-zero
    """
    logger.debug("running_command", command=" ".join(args))
    try:
        result = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd else None,
            env=env,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise RuntimeFailure(f"Failed to run '{args[0]}'", command=args, stderr=str(e)) from e

    logger.debug("command_finished", command=args[0], returncode=result.returncode)
    if result.returncode != 0:
        raise RuntimeFailure(
            f"Command '{' '.join(args[:3])}' exited with {result.returncode}",
            command=args,
            returncode=result.returncode,
            stderr=result.stderr or result.stdout,
        )
    return result


def atomic_write(path: Path, content: str, mode: int = 0o644) -> Path:
    """Write a file so readers see either the old or the new content."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
    return path


def current_user() -> str:
    """UID:GID of the current user, for containers writing into host volumes."""
    return f"{os.getuid()}:{os.getgid()}"
