"""Re-running the current command under sudo when not already root."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from typing import Optional, Sequence

log = logging.getLogger(__name__)


def sudo_command(argv: Sequence[str], sudo_path: str) -> list[str]:
    """Build the sudo invocation that re-runs ``argv`` with the environment kept."""
    program = os.path.basename(argv[0]) if argv else ""
    prompt = f"{program} must be run as root. Please enter the password for %u to continue: "
    return [sudo_path, "-E", "-p", prompt, "--", *argv]


def auto_su(argv: Optional[Sequence[str]] = None) -> None:
    """Re-run ``argv`` (default: this process's arguments) as root and exit with its status.

    Returns without doing anything when already root or when sudo is not installed.
    """
    if os.getuid() == 0:
        return
    args = list(sys.argv if argv is None else argv)
    sudo_path = shutil.which("sudo")
    if sudo_path is None:
        return
    try:
        proc = subprocess.run(sudo_command(args, sudo_path))
    except OSError as exc:
        log.critical("%s", exc)
        sys.exit(1)
    sys.exit(proc.returncode if proc.returncode >= 0 else -1)