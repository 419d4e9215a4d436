from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path

from .errors import StagingIOFailure

MANIFEST_NAME = "manifest.json"
SIGNATURE_NAME = "signature"
RESERVED_NAMES = frozenset({MANIFEST_NAME, SIGNATURE_NAME})


def sha1_file(path: Path) -> str:
    # PassKit verifiers require SHA-1 manifest digests.
    h = hashlib.sha1()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def list_files(directory: Path) -> list[Path]:
    """
    Immediate regular files of `directory` in stable (name) order.
    Subdirectories are not descended into.
    """
    files = [p for p in directory.iterdir() if p.is_file()]
    files.sort(key=lambda p: p.name)
    return files


def build_manifest(directory: Path) -> dict[str, str]:
    """
    Map every file name in `directory` (except manifest.json and signature)
    to its hex SHA-1 digest.
    """
    try:
        files = list_files(directory)
        return {p.name: sha1_file(p) for p in files if p.name not in RESERVED_NAMES}
    except OSError as e:
        raise StagingIOFailure(f"Cannot hash staging directory {directory}: {e}") from e


def manifest_bytes(manifest: dict[str, str]) -> bytes:
    return (json.dumps(manifest, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def write_manifest(directory: Path, manifest: dict[str, str]) -> bytes:
    """
    Write manifest.json into `directory` and return the exact bytes written.
    """
    data = manifest_bytes(manifest)
    try:
        (directory / MANIFEST_NAME).write_bytes(data)
    except OSError as e:
        raise StagingIOFailure(f"Cannot write {MANIFEST_NAME}: {e}") from e
    return data


def manifest_problems(manifest: Mapping[str, str], files: Mapping[str, bytes]) -> list[str]:
    """
    Compare a parsed manifest against archive contents (name -> bytes).
    Returns one message per problem; an empty list means the manifest
    describes `files` exactly.
    """
    problems: list[str] = []
    for name in sorted(manifest):
        data = files.get(name)
        if data is None:
            problems.append(f"{name}: listed in manifest but missing")
        elif hashlib.sha1(data).hexdigest() != manifest[name]:
            problems.append(f"{name}: digest mismatch")
    for name in sorted(files):
        if name not in RESERVED_NAMES and name not in manifest:
            problems.append(f"{name}: not covered by manifest")
    return problems
