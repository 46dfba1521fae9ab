class KuzcryptError(Exception):
    """Base class for every error raised on purpose by kuzcrypt."""


class InvalidArgumentError(KuzcryptError, ValueError):
    """Missing path or password, unusable input file, bad engine arguments."""


class InvalidKeySizeError(InvalidArgumentError):
    pass


class InvalidBlockSizeError(InvalidArgumentError):
    pass


class FormatError(KuzcryptError):
    """Malformed container (bad length byte, truncated header or body)."""


class TruncatedCiphertextError(FormatError):
    """Ciphertext is empty or ends in the middle of a block."""


class PaddingError(KuzcryptError):
    """Final block failed PKCS#7 validation (wrong password or corrupted data)."""
