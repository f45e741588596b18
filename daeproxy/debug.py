"""Debug helpers."""

from __future__ import annotations

import logging
import os
from typing import Optional

log = logging.getLogger(__name__)


def report_memory(tag: str, status_path: Optional[str] = None) -> Optional[str]:
    """Log the peak resident memory (VmHWM) when debug logging is on, and return it."""
    if not log.isEnabledFor(logging.DEBUG):
        return None
    path = status_path or os.path.join("/proc", str(os.getpid()), "status")
    with open(path, encoding="utf-8", errors="replace") as fh:
        text = fh.read().strip()
    _, _, after = text.partition("VmHWM:")
    usage = after.partition("\n")[0].strip()
    log.debug("%s: memory usage: %s", tag, usage)
    return usage