"""Kuznyechik-CBC password file encryption."""
__version__ = "1.0.0"

from kuzcrypt.codec import decrypt_bytes, decrypt_file, encrypt_bytes, encrypt_file
from kuzcrypt.engine import BLOCK_SIZE, KEY_SIZE, Kuznyechik
from kuzcrypt.errors import (
    FormatError,
    InvalidArgumentError,
    InvalidBlockSizeError,
    InvalidKeySizeError,
    KuzcryptError,
    PaddingError,
    TruncatedCiphertextError,
)
