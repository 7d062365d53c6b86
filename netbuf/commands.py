"""External command execution shared by the kernel and xenstore wrappers."""

import logging
import subprocess
from typing import Sequence

from .exceptions import CommandError

logger = logging.getLogger(__name__)


def run_command(argv: Sequence[str], timeout: float = 30.0,
                check: bool = True) -> subprocess.CompletedProcess:
    """
    Run argv without a shell and capture its output.

    Args:
        argv: Program and arguments
        timeout: Seconds before the command is considered failed
        check: Raise CommandError on a non-zero exit status

    Returns:
        The completed process (stdout/stderr decoded as text)
    """
    logger.debug(f"Executing [{' '.join(argv)}]")
    try:
        result = subprocess.run(
            list(argv), capture_output=True, text=True, timeout=timeout
        )
    except OSError as e:
        raise CommandError(argv, stderr=str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(argv, stderr=f"timed out after {timeout}s") from e

    if check and result.returncode != 0:
        raise CommandError(argv, result.returncode, result.stderr)
    return result
