import pytest

from kuzcrypt import codec


@pytest.fixture(autouse=True)
def fast_kdf(request, monkeypatch):
    # the full iteration count makes tests that decrypt many times too slow
    if "real_kdf" not in request.keywords:
        monkeypatch.setattr(codec, "PBKDF2_ITER", 1000)


@pytest.fixture
def write_file(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write
