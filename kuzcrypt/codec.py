"""
Password-based file encryption with Kuznyechik in CBC mode.

Container layout:
  [1]        salt_len (1..64)
  [salt_len] salt
  [1]        iv_len (1..64)
  [iv_len]   iv
  [...]      ciphertext, a positive multiple of 16 bytes, PKCS#7 padded

The key is derived with PBKDF2-HMAC(SHA-256) from the password and the salt.
There is no integrity tag: a wrong password is detected only through the
padding check on the last block, and bit flips elsewhere go unnoticed.
"""
from __future__ import annotations

import io
import logging
import os
import secrets
import time
from pathlib import Path

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.backends import default_backend

from kuzcrypt.engine import BLOCK_SIZE, KEY_SIZE, Kuznyechik
from kuzcrypt.errors import (
    FormatError,
    InvalidArgumentError,
    PaddingError,
    TruncatedCiphertextError,
)
from kuzcrypt.utils import wipe, xor_bytes

logger = logging.getLogger(__name__)

# -------------------- Crypto core --------------------
SALT_LEN = 16
IV_LEN = 16
MAX_FIELD_LEN = 64
KEY_LEN = KEY_SIZE
PBKDF2_ITER = 200_000
CHUNK_SIZE = 1024 * 1024  # 1 MiB

backend = default_backend()


def _password_bytes(password) -> bytes:
    if password is None or len(password) == 0:
        raise InvalidArgumentError("Password must be a non-empty string.")
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


def derive_key(password, salt: bytes) -> bytearray:
    """Stretch the password into a KEY_LEN-byte key. The caller owns (and wipes) the result."""
    logger.debug("Deriving key with PBKDF2-HMAC-SHA256 (%d iterations, %d-byte salt)",
                 PBKDF2_ITER, len(salt))
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=bytes(salt),
        iterations=PBKDF2_ITER,
        backend=backend,
    )
    return bytearray(kdf.derive(_password_bytes(password)))


def _new_engine(password, salt: bytes) -> Kuznyechik:
    key = derive_key(password, salt)
    try:
        return Kuznyechik(key)
    finally:
        wipe(key)


# -------------------- Padding --------------------

def pkcs7_pad(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    # always pads, a full block when data is already aligned
    pad_len = block_size - (len(data) % block_size)
    return bytes(data) + bytes((pad_len,)) * pad_len


def pkcs7_unpad(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    if not data or len(data) % block_size:
        raise FormatError("Padded data must be a positive multiple of the block size")
    pad_len = data[-1]
    if not 1 <= pad_len <= block_size:
        raise PaddingError("Invalid padding (wrong password or corrupted file)")
    if data[-pad_len:] != bytes((pad_len,)) * pad_len:
        raise PaddingError("Invalid padding (wrong password or corrupted file)")
    return bytes(data[:-pad_len])


# -------------------- Container --------------------

def _read_up_to(fin, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        part = fin.read(n - len(buf))
        if not part:
            break
        buf += part
    return bytes(buf)


def read_block(fin, size: int = BLOCK_SIZE) -> bytes:
    """Read exactly one block; b"" on a clean EOF at a block boundary."""
    block = _read_up_to(fin, size)
    if block and len(block) != size:
        raise TruncatedCiphertextError(
            f"Ciphertext ends mid-block ({len(block)} of {size} bytes)")
    return block


def write_header(fout, salt: bytes, iv: bytes) -> None:
    for name, value in (("salt", salt), ("IV", iv)):
        if not 1 <= len(value) <= MAX_FIELD_LEN:
            raise InvalidArgumentError(f"{name} must be 1..{MAX_FIELD_LEN} bytes")
        fout.write(bytes((len(value),)))
        fout.write(value)


def _read_field(fin, name: str) -> bytes:
    raw = fin.read(1)
    if not raw:
        raise FormatError(f"Missing {name} length")
    length = raw[0]
    if not 1 <= length <= MAX_FIELD_LEN:
        raise FormatError(f"Invalid {name} length: {length}")
    value = _read_up_to(fin, length)
    if len(value) != length:
        raise FormatError(f"Truncated {name}: expected {length} bytes, got {len(value)}")
    return value


def read_header(fin) -> tuple[bytes, bytes]:
    salt = _read_field(fin, "salt")
    iv = _read_field(fin, "IV")
    logger.debug("Header: %d-byte salt, %d-byte IV", len(salt), len(iv))
    return salt, iv


def _chaining_value(iv: bytes) -> bytes:
    # foreign containers may carry an IV of any length in 1..64
    return iv[:BLOCK_SIZE].ljust(BLOCK_SIZE, b"\x00")


def _report(progress_cb, processed: int, total) -> None:
    if progress_cb:
        progress_cb(min(1.0, processed / total) if total else 1.0)


# -------------------- Streams --------------------

def encrypt_stream(fin, fout, password, total: int | None = None, progress_cb=None) -> None:
    salt = secrets.token_bytes(SALT_LEN)
    iv = secrets.token_bytes(IV_LEN)
    engine = _new_engine(password, salt)

    write_header(fout, salt, iv)

    prev = iv
    carry = b""
    processed = 0
    while True:
        chunk = fin.read(CHUNK_SIZE)
        if not chunk:
            break
        processed += len(chunk)
        data = carry + chunk
        full = len(data) - len(data) % BLOCK_SIZE
        out = bytearray()
        for off in range(0, full, BLOCK_SIZE):
            prev = engine.encrypt_block(xor_bytes(data[off:off + BLOCK_SIZE], prev))
            out += prev
        fout.write(out)
        carry = data[full:]
        _report(progress_cb, processed, total)

    # 0..15 leftover bytes always become one final padded block
    fout.write(engine.encrypt_block(xor_bytes(pkcs7_pad(carry), prev)))
    _report(progress_cb, 1, None)


def _open_container(fin, password):
    # header, key and first block all come before any output is written
    salt, iv = read_header(fin)
    engine = _new_engine(password, salt)
    first = read_block(fin)
    if not first:
        raise TruncatedCiphertextError("Ciphertext is empty")
    return engine, _chaining_value(iv), first


def _decrypt_blocks(fin, fout, engine, prev, current, total, progress_cb) -> None:
    processed = 0
    out = bytearray()
    while True:
        nxt = read_block(fin)
        plain = xor_bytes(engine.decrypt_block(current), prev)
        processed += BLOCK_SIZE
        if not nxt:
            out += pkcs7_unpad(plain)
            break
        out += plain
        prev, current = current, nxt
        if len(out) >= CHUNK_SIZE:
            fout.write(out)
            out.clear()
            _report(progress_cb, processed, total)
    fout.write(out)
    _report(progress_cb, 1, None)


def decrypt_stream(fin, fout, password, total: int | None = None, progress_cb=None) -> None:
    engine, prev, first = _open_container(fin, password)
    _decrypt_blocks(fin, fout, engine, prev, first, total, progress_cb)


# -------------------- Files --------------------

def _check_paths(in_path, out_path) -> tuple[Path, Path]:
    if in_path is None or out_path is None:
        raise InvalidArgumentError("Input and output paths are required")
    in_path = Path(in_path)
    out_path = Path(out_path)
    if not in_path.is_file():
        raise InvalidArgumentError(f"Input file not found: {in_path}")
    if out_path.exists() and os.path.samefile(in_path, out_path):
        raise InvalidArgumentError("Output path must differ from input path")
    return in_path, out_path


def encrypt_file(in_path, out_path, password, progress_cb=None) -> Path:
    in_path, out_path = _check_paths(in_path, out_path)
    _password_bytes(password)

    file_size = in_path.stat().st_size
    logger.info("Encrypting %s -> %s (%d bytes)", in_path, out_path, file_size)
    start = time.perf_counter()
    with open(in_path, "rb") as fin, open(out_path, "wb") as fout:
        encrypt_stream(fin, fout, password, file_size, progress_cb)
    logger.info("Encrypted %s in %.3f s", out_path, time.perf_counter() - start)
    return out_path


def decrypt_file(in_path, out_path, password, progress_cb=None) -> Path:
    in_path, out_path = _check_paths(in_path, out_path)
    _password_bytes(password)

    file_size = in_path.stat().st_size
    logger.info("Decrypting %s -> %s (%d bytes)", in_path, out_path, file_size)
    start = time.perf_counter()
    try:
        with open(in_path, "rb") as fin:
            engine, prev, first = _open_container(fin, password)
            with open(out_path, "wb") as fout:
                _decrypt_blocks(fin, fout, engine, prev, first, file_size, progress_cb)
    except (FormatError, PaddingError) as e:
        logger.warning("Decryption of %s failed: %s", in_path, e)
        raise
    logger.info("Decrypted %s in %.3f s", out_path, time.perf_counter() - start)
    return out_path


def encrypt_bytes(data: bytes, password) -> bytes:
    fout = io.BytesIO()
    encrypt_stream(io.BytesIO(data), fout, password)
    return fout.getvalue()


def decrypt_bytes(blob: bytes, password) -> bytes:
    fout = io.BytesIO()
    decrypt_stream(io.BytesIO(blob), fout, password)
    return fout.getvalue()
