"""
Detached (daemon) mode.

The classic Unix double fork:

    parent ──fork──► child ──setsid──► new session leader
                                          │
                                        fork
                                          ▼
                                      grandchild  ← the daemon
                                      (not a session leader, so it can
                                       never re-acquire a terminal)

Afterwards the working directory is "/" and stdin/stdout/stderr point
at /dev/null, so anything relative (content root, log file, certificate
paths) must be resolved before calling daemonize().
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


def daemonize(pid_file: Optional[str | Path] = None) -> None:
    """
    Detach the current process from its terminal.

    Returns in the daemon process only; both intermediate parents exit.

    Raises:
        OSError: fork() or setsid() failed, or the pid file is unwritable.
    """
    if os.fork() > 0:
        os._exit(0)

    os.setsid()

    if os.fork() > 0:
        os._exit(0)

    os.chdir("/")
    os.umask(0o027)

    sys.stdout.flush()
    sys.stderr.flush()
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    os.close(devnull)

    if pid_file is not None:
        Path(pid_file).write_text(f"{os.getpid()}\n")

    logger.debug(f"Detached as pid {os.getpid()}")
