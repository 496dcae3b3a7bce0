"""System browser launcher for the interactive login."""

from __future__ import annotations

import contextlib
import io
import logging
import os
import sys
import webbrowser
from collections.abc import Iterator

logger = logging.getLogger(__name__)

STDOUT_FD = 1


@contextlib.contextmanager
def suppress_stdout() -> Iterator[None]:
    """Silence standard output for the duration of the block.

    Browsers started by ``webbrowser`` inherit file descriptor 1, and
    chromium based browsers print "Opening in existing browser session." on
    it. The token is written to stdout, so both the descriptor and
    ``sys.stdout`` are pointed at a sink and restored on exit, whatever
    happens inside the block.
    """
    sys.stdout.flush()
    saved_fd = os.dup(STDOUT_FD)
    devnull_fd = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull_fd, STDOUT_FD)
        with contextlib.redirect_stdout(io.StringIO()):
            yield
    finally:
        os.dup2(saved_fd, STDOUT_FD)
        os.close(saved_fd)
        os.close(devnull_fd)


def launch_browser(url: str) -> bool:
    """Open a URL in the user's default browser.

    Best effort: any failure is reported as False, never raised.

    Args:
        url: The URL to open.

    Returns:
        True if a browser was launched.
    """
    try:
        with suppress_stdout():
            opened = webbrowser.open(url)
    except (webbrowser.Error, OSError) as e:
        logger.warning(f"Unable to launch the browser: {e}")
        return False

    if not opened:
        logger.warning("No runnable browser found")
    return opened
