"""File I/O operations for materializing rendered output."""

from __future__ import annotations

import errno
import logging
import os
import tempfile
from pathlib import Path

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRNOS = frozenset({errno.EAGAIN, errno.EBUSY, errno.ETXTBSY, errno.EINTR})


def is_transient(exc: BaseException) -> bool:
    """True for OS errors worth retrying (file briefly locked or busy)."""
    return isinstance(exc, OSError) and exc.errno in TRANSIENT_ERRNOS


def ensure_parent(path: Path) -> None:
    """Ensure parent directories exist for the given path.

    Args:
        path: Path whose parent directories should be created
    """
    path.parent.mkdir(parents=True, exist_ok=True)


def read_existing(path: Path) -> bytes | None:
    """Return the current bytes of ``path``, or ``None`` when it does not exist."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


@retry(
    reraise=True,
    retry=retry_if_exception(is_transient),
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    before_sleep=before_sleep_log(logger, logging.WARNING),
)
def _replace(source: str, destination: Path) -> None:
    os.replace(source, destination)


def atomic_write_bytes(path: Path, data: bytes, mode: int = 0o644) -> None:
    """Write bytes to a file atomically using a temporary file.

    The temporary file lives in the destination directory so the final
    ``os.replace`` never crosses filesystems. Readers see either the old
    content or the new content, never a partial file.

    Args:
        path: Destination file path
        data: Content to write
        mode: File permissions (octal)
    """
    ensure_parent(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        _replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            try:
                os.remove(tmp_name)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {tmp_name}: {e}")


def atomic_write_text(path: Path, text: str, mode: int = 0o644) -> None:
    """UTF-8 text variant of :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)
