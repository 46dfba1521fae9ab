"""
kuzcrypt: encrypt/decrypt files with Kuznyechik-CBC under a password.

Usage:
  kuzcrypt encrypt IN [OUT]      OUT defaults to IN.kuz
  kuzcrypt decrypt IN [OUT]      OUT defaults to IN without .kuz (or IN.dec), never
                                 an existing file: "NAME (restored N)" instead
  kuzcrypt gen FILE SIZE         write SIZE bytes of reproducible test data
  kuzcrypt hash FILE             print the SHA3-256 digest of FILE
  kuzcrypt gui                   open the desktop window

The password is prompted for unless --password is given.

Exit codes: 0=OK, 1=operation failed, 2=usage, 130=interrupted.
"""
from __future__ import annotations

import argparse
import getpass
import hashlib
import logging
import sys
import time
from pathlib import Path

from kuzcrypt import __version__
from kuzcrypt.codec import decrypt_file, encrypt_file
from kuzcrypt.errors import KuzcryptError

logger = logging.getLogger(__name__)

SUFFIX = ".kuz"
GEN_CHUNK = 8192


# ---------------- helpers ----------------

def generate_test_file(path, size: int) -> None:
    """Write `size` bytes from a 32-bit LCG seeded with 0xC0FFEE."""
    v = 0xC0FFEE
    written = 0
    with open(path, "wb") as f:
        while written < size:
            n = min(GEN_CHUNK, size - written)
            buf = bytearray(n)
            for i in range(n):
                v = (v * 1664525 + 1013904223) & 0xFFFFFFFF
                buf[i] = (v >> 16) & 0xFF
            f.write(buf)
            written += n


def sha3_256_file(path) -> str:
    h = hashlib.sha3_256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(GEN_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def _first_free(out_path: Path) -> Path:
    counter = 1
    base = out_path.stem
    suffix = out_path.suffix
    while out_path.exists():
        out_path = out_path.with_name(f"{base} (restored {counter}){suffix}")
        counter += 1
    return out_path


def default_decrypt_path(in_path: Path) -> Path:
    """IN without .kuz (or IN.dec), numbered so an existing file is never overwritten."""
    if in_path.suffix == SUFFIX:
        return _first_free(in_path.with_suffix(""))
    return _first_free(in_path.with_name(in_path.name + ".dec"))


def restored_path(out_dir, name: str) -> Path:
    """Where to write the decryption of `name` inside `out_dir` without overwriting anything."""
    out_path = Path(out_dir) / name
    if out_path.suffix == SUFFIX:
        out_path = out_path.with_suffix("")
    return _first_free(out_path)


def _read_password(args, confirm: bool) -> str:
    if args.password is not None:
        return args.password
    pw = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Repeat password: ") != pw:
        raise KuzcryptError("Passwords do not match")
    return pw


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kuzcrypt",
        description="File encryption with Kuznyechik (GOST R 34.12-2015) in CBC mode",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = ap.add_subparsers(dest="cmd", required=True)

    for name, help_text in (("encrypt", "Encrypt a file"), ("decrypt", "Decrypt a file")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("infile", type=Path)
        p.add_argument("outfile", type=Path, nargs="?", default=None)
        p.add_argument("--password", default=None, help="Password (unsafe on shared shells)")

    p_gen = sub.add_parser("gen", help="Generate a reproducible test file")
    p_gen.add_argument("file", type=Path)
    p_gen.add_argument("size", type=int)

    p_hash = sub.add_parser("hash", help="SHA3-256 of a file")
    p_hash.add_argument("file", type=Path)

    sub.add_parser("gui", help="Open the desktop window")
    return ap


# ---------------- commands ----------------

def _cmd_encrypt(args) -> int:
    out = args.outfile or args.infile.with_name(args.infile.name + SUFFIX)
    password = _read_password(args, confirm=True)
    t0 = time.perf_counter()
    encrypt_file(args.infile, out, password)
    print(f"Encrypted to: {out.resolve()}")
    print(f"Time: {(time.perf_counter() - t0) * 1000:.3f} ms")
    return 0


def _cmd_decrypt(args) -> int:
    out = args.outfile or default_decrypt_path(args.infile)
    password = _read_password(args, confirm=False)
    t0 = time.perf_counter()
    decrypt_file(args.infile, out, password)
    print(f"Decrypted to: {out.resolve()}")
    print(f"Time: {(time.perf_counter() - t0) * 1000:.3f} ms")
    return 0


def _cmd_gen(args) -> int:
    if args.size < 0:
        raise KuzcryptError("Size must be non-negative")
    generate_test_file(args.file, args.size)
    print(f"Generated: {args.file.resolve()} ({args.size} bytes)")
    return 0


def _cmd_hash(args) -> int:
    print(f"SHA3-256: {sha3_256_file(args.file)}")
    return 0


def _cmd_gui(args) -> int:
    from kuzcrypt.app import FileEncryptionApp

    FileEncryptionApp().mainloop()
    return 0


COMMANDS = {
    "encrypt": _cmd_encrypt,
    "decrypt": _cmd_decrypt,
    "gen": _cmd_gen,
    "hash": _cmd_hash,
    "gui": _cmd_gui,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return COMMANDS[args.cmd](args)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 130
    except (KuzcryptError, OSError) as e:
        logger.debug("Command %s failed", args.cmd, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
