from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from wallet_server.wallet.errors import StagingIOFailure
from wallet_server.wallet.manifest import (
    MANIFEST_NAME,
    SIGNATURE_NAME,
    build_manifest,
    manifest_bytes,
    manifest_problems,
    sha1_file,
    write_manifest,
)


def _populate(d: Path) -> dict[str, bytes]:
    files = {
        "pass.json": b'{"serialNumber": "A"}',
        "icon.png": b"\x89PNG icon",
        "icon@2x.png": b"\x89PNG icon2x",
        "logo.png": b"",
        MANIFEST_NAME: b"{}",
        SIGNATURE_NAME: b"old signature",
    }
    d.mkdir(parents=True, exist_ok=True)
    for name, data in files.items():
        (d / name).write_bytes(data)
    return files


def test_keys_are_files_minus_reserved_names(tmp_path: Path) -> None:
    files = _populate(tmp_path / "stage")
    manifest = build_manifest(tmp_path / "stage")

    assert set(manifest) == set(files) - {MANIFEST_NAME, SIGNATURE_NAME}
    for name, digest in manifest.items():
        assert digest == hashlib.sha1(files[name]).hexdigest()


def test_idempotent_on_unchanged_directory(tmp_path: Path) -> None:
    _populate(tmp_path / "stage")
    assert build_manifest(tmp_path / "stage") == build_manifest(tmp_path / "stage")


def test_detects_content_change(tmp_path: Path) -> None:
    _populate(tmp_path / "stage")
    before = build_manifest(tmp_path / "stage")
    (tmp_path / "stage" / "logo.png").write_bytes(b"changed")
    after = build_manifest(tmp_path / "stage")
    assert before["logo.png"] != after["logo.png"]
    assert before["icon.png"] == after["icon.png"]


def test_subdirectories_are_not_descended(tmp_path: Path) -> None:
    _populate(tmp_path / "stage")
    (tmp_path / "stage" / "en.lproj").mkdir()
    (tmp_path / "stage" / "en.lproj" / "pass.strings").write_text("x", encoding="utf-8")

    manifest = build_manifest(tmp_path / "stage")
    assert "en.lproj" not in manifest
    assert not any("/" in k for k in manifest)


def test_missing_directory_is_staging_failure(tmp_path: Path) -> None:
    with pytest.raises(StagingIOFailure):
        build_manifest(tmp_path / "does-not-exist")


def test_sha1_file_streams_large_file(tmp_path: Path) -> None:
    p = tmp_path / "big.bin"
    data = b"a" * (3 * 1024 * 1024 + 17)
    p.write_bytes(data)
    assert sha1_file(p) == hashlib.sha1(data).hexdigest()


def test_write_manifest_returns_written_bytes(tmp_path: Path) -> None:
    _populate(tmp_path / "stage")
    manifest = build_manifest(tmp_path / "stage")
    data = write_manifest(tmp_path / "stage", manifest)

    assert (tmp_path / "stage" / MANIFEST_NAME).read_bytes() == data
    assert json.loads(data) == manifest
    # Writing the manifest does not change what it covers.
    assert build_manifest(tmp_path / "stage") == manifest


def test_manifest_bytes_order_independent() -> None:
    a = manifest_bytes({"b.png": "2", "a.png": "1"})
    b = manifest_bytes({"a.png": "1", "b.png": "2"})
    assert a == b
    assert a.index(b"a.png") < a.index(b"b.png")


def test_manifest_problems_flags_edits_gaps_and_extras() -> None:
    files = {"pass.json": b"{}", "icon.png": b"png"}
    manifest = {name: hashlib.sha1(data).hexdigest() for name, data in files.items()}
    assert manifest_problems(manifest, {**files, MANIFEST_NAME: b"x", SIGNATURE_NAME: b"y"}) == []

    edited = {**files, "pass.json": b'{"a": 1}'}
    assert manifest_problems(manifest, edited) == ["pass.json: digest mismatch"]

    assert manifest_problems(manifest, {"pass.json": b"{}"}) == ["icon.png: listed in manifest but missing"]
    assert manifest_problems(manifest, {**files, "extra.png": b""}) == ["extra.png: not covered by manifest"]
