import pytest

_ENV_VARS = (
    "CIRCONUS_API_TOKEN",
    "CIRCONUS_API_APP",
    "CIRCONUS_API_URL",
    "CIRCONUS_API_ACCOUNT_ID",
    "CIRCONUS_API_TIMEOUT",
    "CIRCONUS_API_MAX_RETRIES",
)


@pytest.fixture(autouse=True)
def clear_circonus_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
