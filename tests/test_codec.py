import hashlib
import io
import os
import random

import pytest

from kuzcrypt import codec
from kuzcrypt.codec import (
    decrypt_bytes,
    decrypt_file,
    encrypt_bytes,
    encrypt_file,
    pkcs7_pad,
    pkcs7_unpad,
    read_block,
    read_header,
)
from kuzcrypt.engine import Kuznyechik
from kuzcrypt.errors import (
    FormatError,
    InvalidArgumentError,
    PaddingError,
    TruncatedCiphertextError,
)
from kuzcrypt.utils import xor_bytes

PASSWORD = "correct horse battery staple"
HEADER_LEN = 1 + 16 + 1 + 16


def split(blob):
    salt = blob[1:17]
    iv = blob[18:34]
    return salt, iv, blob[HEADER_LEN:]


# ---------------- round trips ----------------

@pytest.mark.parametrize("size", [0, 1, 15, 16, 17, 31, 32, 33, 1000, 4097])
def test_file_roundtrip(write_file, tmp_path, size):
    data = os.urandom(size)
    src = write_file("plain.bin", data)
    enc = tmp_path / "plain.bin.kuz"
    dec = tmp_path / "plain.out"

    assert encrypt_file(src, enc, PASSWORD) == enc
    assert decrypt_file(enc, dec, PASSWORD) == dec
    assert dec.read_bytes() == data


def test_random_lengths_roundtrip():
    rng = random.Random(2024)
    for _ in range(5):
        data = os.urandom(rng.randrange(1, 3000))
        assert decrypt_bytes(encrypt_bytes(data, PASSWORD), PASSWORD) == data


def test_one_mebibyte_roundtrip(write_file, tmp_path):
    data = os.urandom(1024 * 1024)
    src = write_file("big.bin", data)
    encrypt_file(src, tmp_path / "big.kuz", PASSWORD)
    decrypt_file(tmp_path / "big.kuz", tmp_path / "big.out", PASSWORD)
    restored = (tmp_path / "big.out").read_bytes()
    assert hashlib.sha3_256(restored).digest() == hashlib.sha3_256(data).digest()
    assert (tmp_path / "big.kuz").stat().st_size == HEADER_LEN + len(data) + 16


@pytest.mark.parametrize("chunk", [1, 5, 16, 17, 33])
def test_roundtrip_across_small_chunks(monkeypatch, chunk):
    monkeypatch.setattr(codec, "CHUNK_SIZE", chunk)
    data = os.urandom(211)
    blob = encrypt_bytes(data, PASSWORD)
    assert len(blob) == HEADER_LEN + 224
    assert decrypt_bytes(blob, PASSWORD) == data


def test_unicode_and_bytes_passwords_agree():
    blob = encrypt_bytes(b"payload", "пароль")
    assert decrypt_bytes(blob, "пароль".encode("utf-8")) == b"payload"
    assert decrypt_bytes(blob, bytearray("пароль".encode("utf-8"))) == b"payload"


@pytest.mark.real_kdf
def test_roundtrip_with_full_iteration_count():
    assert codec.PBKDF2_ITER >= 200_000
    assert decrypt_bytes(encrypt_bytes(b"slow but sure", PASSWORD), PASSWORD) == b"slow but sure"


@pytest.mark.real_kdf
def test_derive_key_is_pbkdf2_sha256():
    salt = bytes(range(16))
    expected = hashlib.pbkdf2_hmac("sha256", PASSWORD.encode(), salt, codec.PBKDF2_ITER, 32)
    assert codec.derive_key(PASSWORD, salt) == bytearray(expected)


# ---------------- container ----------------

def test_container_layout():
    blob = encrypt_bytes(b"", PASSWORD)
    assert blob[0] == 16
    assert blob[17] == 16
    assert len(blob) == HEADER_LEN + 16


@pytest.mark.parametrize("size, body", [(0, 16), (1, 16), (15, 16), (16, 32), (17, 32), (32, 48)])
def test_always_pads(size, body):
    _, _, ct = split(encrypt_bytes(b"a" * size, PASSWORD))
    assert len(ct) == body


def test_single_block_gets_extra_padding_block():
    _, _, ct = split(encrypt_bytes(b"0123456789abcdef", PASSWORD))
    assert len(ct) == 32


def test_salt_and_iv_are_fresh_each_time():
    a = encrypt_bytes(b"same input", PASSWORD)
    b = encrypt_bytes(b"same input", PASSWORD)
    salt_a, iv_a, ct_a = split(a)
    salt_b, iv_b, ct_b = split(b)
    assert salt_a != salt_b
    assert iv_a != iv_b
    assert ct_a != ct_b


def test_decrypts_reference_cbc_with_short_iv():
    # an IV shorter than a block is zero-extended into the chaining value
    salt = b"s" * 8
    iv = b"\x01\x02\x03\x04\x05\x06\x07\x08"
    plain = b"reference container"
    cipher = Kuznyechik(codec.derive_key(PASSWORD, salt))
    prev = iv + bytes(8)
    padded = pkcs7_pad(plain)
    body = b""
    for off in range(0, len(padded), 16):
        prev = cipher.encrypt_block(xor_bytes(padded[off:off + 16], prev))
        body += prev
    blob = bytes([len(salt)]) + salt + bytes([len(iv)]) + iv + body
    assert decrypt_bytes(blob, PASSWORD) == plain


# ---------------- wrong password / tampering ----------------

def test_tampered_pad_byte_raises_padding_error():
    blob = bytearray(encrypt_bytes(b"0123456789abcdef", PASSWORD))
    # flips the last pad byte from 0x10 to 0x11 through the previous block
    blob[HEADER_LEN + 15] ^= 0x01
    with pytest.raises(PaddingError):
        decrypt_bytes(bytes(blob), PASSWORD)


def test_wrong_password_raises_padding_error():
    blob = encrypt_bytes(b"x" * 40, PASSWORD)
    failures = 0
    for guess in ("Correct horse battery staple", "hunter2", "letmein"):
        try:
            decrypt_bytes(blob, guess)
        except PaddingError:
            failures += 1
    assert failures >= 2


def test_wrong_passwords_rarely_pass_padding():
    plain = b"attack at dawn, bring snacks"
    blob = encrypt_bytes(plain, PASSWORD)
    accepted = 0
    for i in range(200):
        try:
            result = decrypt_bytes(blob, f"guess-{i}")
        except PaddingError:
            continue
        accepted += 1
        assert result != plain
    # chance acceptance is about 1/256 per guess
    assert accepted <= 8


def test_iv_bit_flip_goes_unnoticed():
    # no integrity tag: flipping an IV bit flips the same bit of the first plaintext block
    blob = bytearray(encrypt_bytes(b"Pay 100 dollars", PASSWORD))
    blob[18] ^= ord("P") ^ ord("S")
    assert decrypt_bytes(bytes(blob), PASSWORD) == b"Say 100 dollars"


# ---------------- format errors ----------------

def test_truncated_ciphertext_mid_block():
    blob = encrypt_bytes(b"some data", PASSWORD)
    with pytest.raises(TruncatedCiphertextError):
        decrypt_bytes(blob[:-1], PASSWORD)


def test_extra_byte_after_ciphertext():
    blob = encrypt_bytes(b"some data", PASSWORD)
    with pytest.raises(FormatError):
        decrypt_bytes(blob + b"\x00", PASSWORD)


def test_empty_ciphertext():
    blob = encrypt_bytes(b"x", PASSWORD)
    with pytest.raises(TruncatedCiphertextError):
        decrypt_bytes(blob[:HEADER_LEN], PASSWORD)


@pytest.mark.parametrize("offset", [0, 17])
@pytest.mark.parametrize("bad_len", [0, 65, 255])
def test_header_length_out_of_range(offset, bad_len):
    blob = bytearray(encrypt_bytes(b"x", PASSWORD))
    blob[offset] = bad_len
    with pytest.raises(FormatError):
        decrypt_bytes(bytes(blob), PASSWORD)


def test_max_field_length_accepted_by_header_reader():
    raw = bytes([64]) + b"s" * 64 + bytes([1]) + b"i"
    salt, iv = read_header(io.BytesIO(raw))
    assert salt == b"s" * 64
    assert iv == b"i"


@pytest.mark.parametrize("raw", [b"", b"\x10", b"\x10" + b"s" * 5, b"\x10" + b"s" * 16, b"\x10" + b"s" * 16 + b"\x10abc"])
def test_truncated_header(raw):
    with pytest.raises(FormatError):
        decrypt_bytes(raw, PASSWORD)


def test_read_block_distinguishes_clean_eof():
    stream = io.BytesIO(b"a" * 16 + b"b" * 3)
    assert read_block(stream) == b"a" * 16
    with pytest.raises(TruncatedCiphertextError):
        read_block(stream)
    assert read_block(io.BytesIO(b"")) == b""


def test_format_errors_are_not_padding_errors():
    assert issubclass(TruncatedCiphertextError, FormatError)
    assert not issubclass(FormatError, PaddingError)


# ---------------- padding helpers ----------------

def test_pkcs7_pad():
    assert pkcs7_pad(b"") == b"\x10" * 16
    assert pkcs7_pad(b"abc") == b"abc" + b"\x0d" * 13
    assert pkcs7_pad(b"x" * 16) == b"x" * 16 + b"\x10" * 16


def test_pkcs7_unpad():
    assert pkcs7_unpad(b"abc" + b"\x0d" * 13) == b"abc"
    assert pkcs7_unpad(b"\x10" * 16) == b""
    assert pkcs7_unpad(b"x" * 15 + b"\x01") == b"x" * 15


@pytest.mark.parametrize("block", [
    b"x" * 15 + b"\x00",
    b"x" * 15 + b"\x11",
    b"x" * 15 + b"\xff",
    b"x" * 14 + b"\x01\x02",
    b"x" * 13 + b"\x03\x02\x03",
])
def test_pkcs7_unpad_rejects(block):
    with pytest.raises(PaddingError):
        pkcs7_unpad(block)


def test_pkcs7_unpad_rejects_bad_length():
    with pytest.raises(FormatError):
        pkcs7_unpad(b"")
    with pytest.raises(FormatError):
        pkcs7_unpad(b"\x01" * 17)


# ---------------- arguments and key hygiene ----------------

@pytest.mark.parametrize("password", [None, "", b""])
def test_missing_password(write_file, tmp_path, password):
    src = write_file("p.txt", b"data")
    with pytest.raises(InvalidArgumentError):
        encrypt_file(src, tmp_path / "p.kuz", password)
    assert not (tmp_path / "p.kuz").exists()


def test_missing_input_file(tmp_path):
    with pytest.raises(InvalidArgumentError):
        encrypt_file(tmp_path / "nope", tmp_path / "out", PASSWORD)
    with pytest.raises(InvalidArgumentError):
        decrypt_file(tmp_path / "nope", tmp_path / "out", PASSWORD)


def test_input_must_be_regular_file(tmp_path):
    with pytest.raises(InvalidArgumentError):
        encrypt_file(tmp_path, tmp_path / "out", PASSWORD)


@pytest.mark.parametrize("which", ["in", "out"])
def test_none_paths(write_file, which):
    src = write_file("a.txt", b"a")
    args = (None, src) if which == "in" else (src, None)
    with pytest.raises(InvalidArgumentError):
        encrypt_file(*args, PASSWORD)


def test_output_must_differ_from_input(write_file):
    src = write_file("same.txt", b"keep me")
    with pytest.raises(InvalidArgumentError):
        encrypt_file(src, src, PASSWORD)
    assert src.read_bytes() == b"keep me"


@pytest.fixture
def captured_keys(monkeypatch):
    keys = []
    real = codec.derive_key

    def spy(password, salt):
        key = real(password, salt)
        keys.append(key)
        return key

    monkeypatch.setattr(codec, "derive_key", spy)
    return keys


def test_keys_wiped_after_success(write_file, tmp_path, captured_keys):
    src = write_file("k.txt", b"key hygiene")
    encrypt_file(src, tmp_path / "k.kuz", PASSWORD)
    decrypt_file(tmp_path / "k.kuz", tmp_path / "k.out", PASSWORD)
    assert len(captured_keys) == 2
    assert all(k == bytearray(32) for k in captured_keys)


def test_keys_wiped_after_failure(captured_keys):
    blob = bytearray(encrypt_bytes(b"0123456789abcdef", PASSWORD))
    blob[HEADER_LEN + 15] ^= 0x01
    with pytest.raises(PaddingError):
        decrypt_bytes(bytes(blob), PASSWORD)
    assert len(captured_keys) == 2
    assert all(k == bytearray(32) for k in captured_keys)


def test_progress_callback(write_file, tmp_path, monkeypatch):
    monkeypatch.setattr(codec, "CHUNK_SIZE", 64)
    src = write_file("prog.bin", os.urandom(500))
    seen = []
    encrypt_file(src, tmp_path / "prog.kuz", PASSWORD, progress_cb=seen.append)
    assert seen == sorted(seen)
    assert seen[-1] == 1.0
    assert len(seen) > 2

    seen.clear()
    decrypt_file(tmp_path / "prog.kuz", tmp_path / "prog.out", PASSWORD, progress_cb=seen.append)
    assert seen == sorted(seen)
    assert seen[-1] == 1.0
    assert (tmp_path / "prog.out").read_bytes() == src.read_bytes()


class BrokenSink:
    def write(self, data):
        raise OSError("No space left on device")


def test_keys_wiped_after_encrypt_failure(captured_keys):
    with pytest.raises(OSError):
        codec.encrypt_stream(io.BytesIO(b"never stored"), BrokenSink(), PASSWORD)
    assert captured_keys == [bytearray(32)]


# ---------------- existing output on failure ----------------

@pytest.mark.parametrize("blob", [
    b"\x00garbage",
    b"\x10" + b"s" * 5,
    b"\x10" + b"s" * 16 + b"\x10" + b"i" * 16,
])
def test_bad_container_leaves_existing_output_alone(write_file, tmp_path, blob):
    enc = write_file("notes.kuz", blob)
    out = write_file("notes", b"precious original")
    with pytest.raises(FormatError):
        decrypt_file(enc, out, PASSWORD)
    assert out.read_bytes() == b"precious original"


def test_bad_container_creates_no_output(write_file, tmp_path):
    enc = write_file("junk.kuz", b"\x41" * 10)
    with pytest.raises(FormatError):
        decrypt_file(enc, tmp_path / "junk", PASSWORD)
    assert not (tmp_path / "junk").exists()
