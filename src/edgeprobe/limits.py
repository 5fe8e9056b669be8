"""Process resource limits for wide probe runs."""

import logging
import sys
from typing import Optional

from .constants import TARGET_OPEN_FILES

logger = logging.getLogger(__name__)


def raise_open_file_limit(target: int = TARGET_OPEN_FILES) -> Optional[int]:
    """Raise the soft RLIMIT_NOFILE towards ``target`` (Linux only, best effort).

    Returns the resulting soft limit, or None where the limit is not managed.
    """
    if not sys.platform.startswith("linux"):
        return None

    import resource

    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if soft == resource.RLIM_INFINITY or soft >= target:
        return soft

    desired = target if hard == resource.RLIM_INFINITY else min(target, hard)
    if desired <= soft:
        return soft
    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (desired, hard))
    except (ValueError, OSError) as exc:
        logger.warning("Could not raise open file limit to %d: %s", desired, exc)
        return soft
    logger.debug("Raised open file limit from %d to %d", soft, desired)
    return desired
