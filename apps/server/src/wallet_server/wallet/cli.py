from __future__ import annotations

import argparse
import io
import json
import logging
import sys
import zipfile
from pathlib import Path

from .config import get_wallet_settings
from .errors import PassGenerationError
from .generator import PassGenerator, suggested_filename
from .manifest import MANIFEST_NAME, SIGNATURE_NAME, build_manifest, manifest_bytes, manifest_problems
from .signer import verify_with_openssl


def _cmd_manifest(args: argparse.Namespace) -> int:
    manifest = build_manifest(args.directory)
    sys.stdout.write(manifest_bytes(manifest).decode("utf-8"))
    return 0


def _cmd_build(args: argparse.Namespace) -> int:
    try:
        request = json.loads(args.request_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"cannot read request {args.request_json}: {e}", file=sys.stderr)
        return 2
    generator = PassGenerator.from_settings(get_wallet_settings())
    pkpass = generator.generate(request)

    out_path: Path | None = args.out
    if out_path is None:
        out_path = Path.cwd() / suggested_filename(str(request.get("serialNumber", "pass")))
    out_path.write_bytes(pkpass)
    print(out_path)
    return 0


def _read_pkpass(path: Path) -> tuple[bytes, bytes, dict[str, bytes]]:
    """
    Return (manifest.json bytes, signature bytes, other entries).
    Raises ValueError when the file is not a readable pass archive.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(path.read_bytes())) as zf:
            entries = {info.filename: zf.read(info) for info in zf.infolist() if not info.is_dir()}
    except (OSError, zipfile.BadZipFile) as e:
        raise ValueError(f"cannot open {path}: {e}") from e

    absent = [n for n in (MANIFEST_NAME, SIGNATURE_NAME) if n not in entries]
    if absent:
        raise ValueError(f"missing {', '.join(absent)}")
    return entries.pop(MANIFEST_NAME), entries.pop(SIGNATURE_NAME), entries


def _cmd_verify(args: argparse.Namespace) -> int:
    try:
        manifest_data, signature, files = _read_pkpass(args.pkpass)
        manifest = json.loads(manifest_data)
    except ValueError as e:
        print(f"invalid pass: {e}", file=sys.stderr)
        return 1
    if not isinstance(manifest, dict):
        print(f"invalid pass: {MANIFEST_NAME} is not an object", file=sys.stderr)
        return 1

    problems = manifest_problems(manifest, files)
    if problems:
        for p in problems:
            print(p, file=sys.stderr)
        return 1
    if not verify_with_openssl(manifest_data, signature, args.ca):
        print("signature verification FAILED", file=sys.stderr)
        return 1
    print("signature OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Legacy Card wallet pass tools.")
    sub = p.add_subparsers(dest="command", required=True)

    pm = sub.add_parser("manifest", help="Print the SHA-1 manifest of a directory.")
    pm.add_argument("directory", type=Path)
    pm.set_defaults(func=_cmd_manifest)

    pb = sub.add_parser("build", help="Generate a signed .pkpass from a request JSON file.")
    pb.add_argument("request_json", type=Path)
    pb.add_argument("--out", type=Path, default=None, help="Output path (default: ./LegacyCard-<serial>.pkpass).")
    pb.set_defaults(func=_cmd_build)

    pv = sub.add_parser("verify", help="Check manifest digests and verify the signature of a .pkpass with openssl.")
    pv.add_argument("pkpass", type=Path)
    pv.add_argument("--ca", type=Path, required=True, help="PEM file with the trust anchor(s).")
    pv.set_defaults(func=_cmd_verify)

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        return int(args.func(args))
    except PassGenerationError as e:
        print(f"{e.kind}: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
