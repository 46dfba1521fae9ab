"""
Kuznyechik block cipher (GOST R 34.12-2015): 128-bit block, 256-bit key, 10 rounds.

Byte-level primitives (substitution, the R step and the 16-step linear round,
GF(2^8) multiplication, key schedule) are kept as plain functions working on
16-byte strings. The Kuznyechik class works on 128-bit integers and uses
per-position lookup tables built from those primitives at import time: one
table set fuses substitution with the linear round for encryption, the other
fuses the inverse linear round with inverse substitution for decryption.

Byte 0 of a block is the most significant byte (a15 in the standard's notation).
"""
from __future__ import annotations

from kuzcrypt.errors import InvalidBlockSizeError, InvalidKeySizeError
from kuzcrypt.utils import wipe, xor_bytes

BLOCK_SIZE = 16
KEY_SIZE = 32
ROUNDS = 10

# x^8 + x^7 + x^6 + x + 1
GF_POLY = 0x1C3

# Feedback coefficients of the R step, by byte position
L_COEFFS = (148, 32, 133, 16, 194, 192, 1, 251, 1, 192, 194, 16, 133, 32, 148, 1)

S = bytes.fromhex(
    "fceedd11cf6e3116fbc4fada23c5044d"
    "e977f0db932e99ba1736f1bb14cd5fc1"
    "f918655ae25cef21811c3c428b018e4f"
    "058402aee36a8fa0060bed987fd4d31f"
    "eb342c51eac848abf22a68a2fd3acecc"
    "b5700e56080c7612bf7213479cb75d87"
    "15a19629107b9ac7f391786f9d9eb2b1"
    "3275193dff358a7e6d54c680c3bd0d57"
    "dff524a93ea843c9d779d6f67c22b903"
    "e00fecde7a94b0bcdce828504e330a4a"
    "a79760731e0062441ab83882649f2641"
    "ad454692275e552f8ca3a57d69d5953b"
    "0758b34086ac1df730376be488d9e789"
    "e11b83494c3ff8fe8d53aa90cad88561"
    "207167a42d2b095bcb9b25d0bee56c52"
    "59a674d2e6f4b4c0d166afc2394b63b6"
)


def _invert_table(table: bytes) -> bytes:
    inv = bytearray(256)
    for i, v in enumerate(table):
        inv[v] = i
    return bytes(inv)


S_INV = _invert_table(S)


# -------------------- GF(2^8) and the linear layer --------------------

def gf_mul(a: int, b: int) -> int:
    """Multiply two field elements modulo GF_POLY."""
    res = 0
    while b:
        if b & 1:
            res ^= a
        b >>= 1
        a <<= 1
        if a & 0x100:
            a ^= GF_POLY
    return res


# _MUL[i][x] == gf_mul(L_COEFFS[i], x)
_MUL = tuple(bytes(gf_mul(c, x) for x in range(256)) for c in L_COEFFS)


def _feedback(block) -> int:
    acc = 0
    for table, b in zip(_MUL, block):
        acc ^= table[b]
    return acc


def substitute(block) -> bytes:
    return bytes(block).translate(S)


def inverse_substitute(block) -> bytes:
    return bytes(block).translate(S_INV)


def r_step(block) -> bytes:
    """Shift right by one byte, inserting the weighted sum of all 16 bytes at position 0."""
    return bytes((_feedback(block),)) + bytes(block[:BLOCK_SIZE - 1])


def inverse_r_step(block) -> bytes:
    # coefficient of the shifted-out byte is 1, so it is the feedback byte
    # minus the weighted sum of the 15 bytes that stayed
    tail = bytes(block[1:])
    return tail + bytes((block[0] ^ _feedback(tail),))


def linear_round(block) -> bytes:
    for _ in range(BLOCK_SIZE):
        block = r_step(block)
    return bytes(block)


def inverse_linear_round(block) -> bytes:
    for _ in range(BLOCK_SIZE):
        block = inverse_r_step(block)
    return bytes(block)


# -------------------- Lookup tables --------------------

_SHIFTS = tuple(range(8 * (BLOCK_SIZE - 1), -1, -8))


def _to_int(block) -> int:
    return int.from_bytes(block, "big")


def _to_block(x: int) -> bytes:
    return x.to_bytes(BLOCK_SIZE, "big")


def _position_tables(transform) -> tuple:
    """tables[pos][b] == transform(block holding b at pos, zeros elsewhere), as an int.

    Only valid for transforms that are linear over GF(2): each table is
    filled from its eight single-bit entries.
    """
    tables = []
    for pos in range(BLOCK_SIZE):
        table = [0] * 256
        for bit in range(8):
            unit = bytearray(BLOCK_SIZE)
            unit[pos] = 1 << bit
            table[1 << bit] = _to_int(transform(unit))
        for b in range(3, 256):
            low = b & -b
            if b != low:
                table[b] = table[b ^ low] ^ table[low]
        tables.append(tuple(table))
    return tuple(tables)


def _lookup(tables, x: int) -> int:
    y = 0
    for table, shift in zip(tables, _SHIFTS):
        y ^= table[(x >> shift) & 0xFF]
    return y


_L_INV_TABLES = _position_tables(inverse_linear_round)
# linear_round(substitute(block)) and inverse_linear_round(inverse_substitute(block))
_ENC_TABLES = tuple(
    tuple(table[S[b]] for b in range(256)) for table in _position_tables(linear_round)
)
_DEC_TABLES = tuple(
    tuple(table[S_INV[b]] for b in range(256)) for table in _L_INV_TABLES
)


# -------------------- Key schedule --------------------

def round_constants() -> tuple:
    """C_1..C_32: the linear round of i placed in the least significant byte."""
    return tuple(linear_round(bytes(BLOCK_SIZE - 1) + bytes((i,))) for i in range(1, 33))


_CONSTANTS = tuple(_to_int(c) for c in round_constants())


def expand_key(key) -> tuple:
    """Derive the ten round keys from a 32-byte master key.

    The two halves of the key are the first two round keys; each group of
    eight Feistel steps over (A, B) yields the next pair.
    """
    if key is None or len(key) != KEY_SIZE:
        raise InvalidKeySizeError(f"Key must be {KEY_SIZE} bytes")
    # memoryview slices so no copy of the master key is left behind
    with memoryview(key) as view:
        a = _to_int(view[:BLOCK_SIZE])
        b = _to_int(view[BLOCK_SIZE:])
    round_keys = [a, b]
    for step, const in enumerate(_CONSTANTS):
        a, b = _lookup(_ENC_TABLES, a ^ const) ^ b, a
        if step % 8 == 7:
            round_keys += [a, b]
    return tuple(_to_block(k) for k in round_keys)


# -------------------- Engine --------------------

class Kuznyechik:
    """Single-block transform under a fixed key schedule.

    The constructor takes ownership of the key: a writable buffer passed in
    (bytearray, memoryview) is zeroed before the constructor returns, even
    when it raises.
    """

    block_size = BLOCK_SIZE
    key_size = KEY_SIZE

    def __init__(self, key):
        try:
            round_keys = expand_key(key)
        finally:
            wipe(key)
        self._enc_keys = tuple(_to_int(k) for k in round_keys)
        # decryption applies the inverse linear round to the round keys of rounds 2..9
        self._dec_keys = tuple(_lookup(_L_INV_TABLES, k) for k in self._enc_keys[1:ROUNDS - 1])

    @property
    def round_keys(self) -> tuple:
        return tuple(_to_block(k) for k in self._enc_keys)

    @staticmethod
    def _check(block) -> int:
        if block is None or len(block) != BLOCK_SIZE:
            raise InvalidBlockSizeError(f"Block must be {BLOCK_SIZE} bytes")
        return _to_int(block)

    def encrypt_block(self, block) -> bytes:
        x = self._check(block)
        keys = self._enc_keys
        for k in keys[:-1]:
            x = _lookup(_ENC_TABLES, x ^ k)
        return _to_block(x ^ keys[-1])

    def decrypt_block(self, block) -> bytes:
        keys = self._enc_keys
        x = _lookup(_L_INV_TABLES, self._check(block) ^ keys[-1])
        for k in reversed(self._dec_keys):
            x = _lookup(_DEC_TABLES, x) ^ k
        return xor_bytes(inverse_substitute(_to_block(x)), _to_block(keys[0]))
