from __future__ import annotations

import io
import zipfile
from collections.abc import Mapping
from pathlib import Path, PurePosixPath, PureWindowsPath

from .errors import ArchiveLayoutError, StagingIOFailure

COMPRESS_LEVEL = 9


def _check_flat_name(name: str) -> None:
    # PassKit unpacks by base name; nested entries are mis-read, not rejected.
    if (
        not name
        or name in (".", "..")
        or PurePosixPath(name).name != name
        or PureWindowsPath(name).name != name
    ):
        raise ArchiveLayoutError(f"Archive entry {name!r} is not a flat file name")


def archive_files(files: Mapping[str, bytes]) -> bytes:
    """
    Zip in-memory `files` (name -> content) with every entry at the root.
    """
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL) as zf:
        for name in sorted(files):
            _check_flat_name(name)
            zf.writestr(name, files[name])
    return buf.getvalue()


def build_archive(directory: Path) -> bytes:
    """
    Zip every file of `directory` into an in-memory archive.

    Raises ArchiveLayoutError if the directory holds a subdirectory.
    """
    buf = io.BytesIO()
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL) as zf:
            for p in entries:
                if p.is_dir():
                    raise ArchiveLayoutError(f"Staging directory contains a subdirectory: {p.name}")
                if not p.is_file():
                    continue
                _check_flat_name(p.name)
                zf.write(p, arcname=p.name)
    except OSError as e:
        raise StagingIOFailure(f"Cannot pack staging directory {directory}: {e}") from e
    return buf.getvalue()
