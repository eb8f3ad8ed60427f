import pytest

from relic.vault.kdf import KeyCache

# Use low iterations for faster tests
TEST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's Relic environment out of the tests."""
    for name in (
        "RELIC_MASTER_KEY",
        "RELIC_ARTIFACT",
        "RELIC_EDITOR",
        "RELIC_ARTIFACT_FILE",
        "RELIC_KEY_FILE",
        "RELIC_KDF_ITERATIONS",
        "EDITOR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def iterations():
    return TEST_ITERATIONS


@pytest.fixture
def master_key():
    return "test-master-key-12345"


@pytest.fixture
def key_cache():
    return KeyCache()
