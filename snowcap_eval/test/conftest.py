import pytest

from snowcap_eval.test.fakes import make_checkout


@pytest.fixture
def checkout(tmp_path):
    return make_checkout(tmp_path / "snowcap")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("FAKE_FAIL", "SPEEDUP", "SNOWCAP_ROOT", "THREADS_PP", "THREADS_SM", "PRECOMPUTED_DATA"):
        monkeypatch.delenv(var, raising=False)
