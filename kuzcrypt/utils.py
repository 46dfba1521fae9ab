# Overwrite a writable buffer with zeros; bytes and str are immutable and left alone
def wipe(buf) -> None:
    if isinstance(buf, (bytearray, memoryview)) and not memoryview(buf).readonly:
        with memoryview(buf).cast("B") as view:
            view[:] = bytes(view.nbytes)


# Xor two equal-length blocks, returning a new immutable block
def xor_bytes(a: bytes, b: bytes) -> bytes:
    n = len(a)
    return (int.from_bytes(a, "big") ^ int.from_bytes(b, "big")).to_bytes(n, "big")
