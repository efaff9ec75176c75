"""Crash-safe file writes shared by the vault store and the sync engine."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def atomic_write(
    path: Path, data: Union[bytes, str], mode: Optional[int] = None
) -> None:
    """Replace ``path`` with ``data`` so readers see old or new, never torn.

    Writes to a temp file in the same directory, fsyncs it, then renames
    it over the target.

    Args:
        path: Destination file.
        data: Bytes, or text encoded as UTF-8.
        mode: Optional permission bits for the new file.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def iso_timestamp(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Example: ``2024-05-01T12:00:00.123Z``.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_ms(moment: datetime) -> datetime:
    """Drop sub-millisecond precision (timestamps compare at ms granularity)."""
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000)


def file_mtime(path: Path) -> datetime:
    """Modification time of a file as an aware UTC datetime, ms precision."""
    ns = path.stat().st_mtime_ns
    return _EPOCH + timedelta(milliseconds=ns // 1_000_000)


def set_file_mtime(path: Path, moment: datetime) -> None:
    """Stamp a file's access/modification time with ``moment`` (ms precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    ms = (truncate_ms(moment) - _EPOCH) // timedelta(milliseconds=1)
    ns = ms * 1_000_000
    os.utime(path, ns=(ns, ns))
