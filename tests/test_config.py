import logging
import ssl
import sys

import httpx
import pytest

from circonus_api import APIConfig, CirconusClient, ConfigurationError, normalize_api_url, parse_duration
from circonus_api.config import PACKAGE_LOGGER_NAME, resolve_logger, resolve_tls_verify
from circonus_api.http import HttpClient, TransportPolicy

API_URL = "http://api.example.test/v2"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("foo.example.com", "https://foo.example.com/v2"),
        ("foo.example.com/path/", "https://foo.example.com/path"),
        ("foo.example.com/path", "https://foo.example.com/path"),
        ("https://api.circonus.com/v2/", "https://api.circonus.com/v2"),
        ("http://127.0.0.1:8080/v2", "http://127.0.0.1:8080/v2"),
    ],
)
def test_normalize_api_url(raw: str, expected: str) -> None:
    assert normalize_api_url(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "http://foo.example.com\\path",
        "ftp://foo.example.com/v2",
        "https://foo.example.com:99999/v2",
    ],
)
def test_normalize_api_url_rejects_invalid_urls(raw: str) -> None:
    with pytest.raises(ConfigurationError, match="parsing Circonus API URL"):
        normalize_api_url(raw)


@pytest.mark.parametrize(
    ("first", "second"),
    [
        ("https://api.example.com/v2", "https://api.example.com/v2/"),
        ("api.example.com", "https://api.example.com/v2"),
        ("api.example.com/v2/", "https://api.example.com/v2"),
    ],
)
def test_equivalent_urls_resolve_to_the_same_base(first: str, second: str) -> None:
    assert (
        CirconusClient(token_key="test-key", url=first).url
        == CirconusClient(token_key="test-key", url=second).url
    )


def test_invalid_url_fails_client_construction() -> None:
    with pytest.raises(ConfigurationError):
        CirconusClient(token_key="test-key", url="http://foo.example.com\\path")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1s", 1.0),
        ("500ms", 0.5),
        ("1m30s", 90.0),
        ("1.5h", 5400.0),
        ("250us", 0.00025),
        ("0", 0.0),
        (2, 2.0),
        (0.25, 0.25),
    ],
)
def test_parse_duration(raw, expected) -> None:
    assert parse_duration(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "1", "abc", "1x", "-1s", "s1", -1, True])
def test_parse_duration_rejects_invalid_values(raw) -> None:
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_defaults_are_applied() -> None:
    client = CirconusClient(token_key="test-key")

    assert client.url == "https://api.circonus.com/v2"
    assert client._config.token_app == "circonus-apiclient-python"
    assert client._config.min_retry_delay == 1.0
    assert client._config.max_retry_delay == 15.0
    assert client._config.max_retries == 4
    assert not client.use_exponential_backoff


def test_retry_settings_are_parsed() -> None:
    config = APIConfig(
        token_key="test-key",
        min_retry_delay="2s",
        max_retry_delay="1m",
        max_retries=6,
    )
    client = CirconusClient(config=config)

    assert client._config.min_retry_delay == 2.0
    assert client._config.max_retry_delay == 60.0
    assert client._config.max_retries == 6


def test_invalid_retry_settings_are_logged_and_defaults_kept(
    caplog: pytest.LogCaptureFixture,
) -> None:
    config = APIConfig(
        token_key="test-key",
        min_retry_delay="soon",
        max_retry_delay="later",
        max_retries=-3,
    )

    with caplog.at_level(logging.ERROR, logger=PACKAGE_LOGGER_NAME):
        client = CirconusClient(config=config)

    assert client._config.min_retry_delay == 1.0
    assert client._config.max_retry_delay == 15.0
    assert client._config.max_retries == 4
    messages = [record.getMessage() for record in caplog.records]
    assert any("min retry delay (soon)" in message for message in messages)
    assert any("max retry delay (later)" in message for message in messages)
    assert any("max retries (-3)" in message for message in messages)


def test_disable_retries_zeroes_transport_retries() -> None:
    client = CirconusClient(token_key="test-key", max_retries=9, disable_retries=True)

    assert client._config.max_retries == 0
    assert client._config.disable_retries


def test_supplied_logger_is_used() -> None:
    logger = logging.getLogger("tests.circonus")
    client = CirconusClient(token_key="test-key", logger=logger, debug=True)

    assert client._config.logger is logger


def test_debug_without_logger_gets_its_own_stdout_logger() -> None:
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    level_before = package_logger.level
    handlers_before = list(package_logger.handlers)

    first = resolve_logger(None, debug=True)
    second = resolve_logger(None, debug=True)

    assert first is not second
    assert first.name.startswith(f"{PACKAGE_LOGGER_NAME}.debug.")
    assert first.level == logging.DEBUG
    assert not first.propagate
    assert [handler.stream for handler in first.handlers] == [sys.stdout]
    assert package_logger.level == level_before
    assert package_logger.handlers == handlers_before


def test_debug_client_does_not_make_other_clients_verbose(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    monkeypatch.setattr("circonus_api.http.time.sleep", lambda *_: None)
    attempts = 0
    level_before = logging.getLogger(PACKAGE_LOGGER_NAME).level

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts % 2:
            return httpx.Response(500, content=b"temporary", request=request)
        return httpx.Response(200, content=b"ok", request=request)

    transport = httpx.MockTransport(handler)
    noisy = CirconusClient(token_key="test-key", url=API_URL, debug=True, transport=transport)
    quiet = CirconusClient(token_key="test-key", url=API_URL, transport=transport)

    assert noisy.get("/") == b"ok"
    assert "attempt 1/5 failed" in capsys.readouterr().out

    assert quiet.get("/") == b"ok"
    assert capsys.readouterr().out == ""
    assert logging.getLogger(PACKAGE_LOGGER_NAME).level == level_before


def test_logger_without_debug_is_silent_by_default() -> None:
    logger = resolve_logger(None, debug=False)

    assert logger.name == PACKAGE_LOGGER_NAME
    assert any(isinstance(handler, logging.NullHandler) for handler in logger.handlers)


def test_plain_http_skips_tls_configuration() -> None:
    context = ssl.create_default_context()

    assert resolve_tls_verify("http://api.example.test/v2", context, None) is True


def test_custom_tls_context_takes_precedence() -> None:
    context = ssl.create_default_context()

    assert resolve_tls_verify("https://api.example.test/v2", context, "/unused/ca.pem") is context


def test_ca_cert_is_deprecated_and_enforces_tls12() -> None:
    certifi = pytest.importorskip("certifi")

    with pytest.warns(DeprecationWarning, match="ca_cert is deprecated"):
        context = resolve_tls_verify("https://api.example.test/v2", None, certifi.where())

    assert isinstance(context, ssl.SSLContext)
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


def test_no_tls_settings_use_default_verification() -> None:
    assert resolve_tls_verify("https://api.example.test/v2", None, None) is True


def test_https_scheme_is_matched_case_insensitively() -> None:
    context = ssl.create_default_context()

    assert resolve_tls_verify("HTTPS://api.example.test/v2", context, None) is context


def test_uppercase_https_url_keeps_the_custom_tls_context() -> None:
    context = ssl.create_default_context()
    client = CirconusClient(token_key="test-key", url="HTTPS://api.example.test/v2", tls_context=context)

    assert resolve_tls_verify(client.url, client._config.tls_context, None) is context


def test_http_client_parses_duration_strings_in_its_config() -> None:
    config = APIConfig(
        token_key="test-key",
        url=API_URL,
        min_retry_delay="500ms",
        max_retry_delay="1m",
    )

    policy = HttpClient(config).transport_policy()

    assert policy == TransportPolicy(max_retries=4, min_wait=0.5, max_wait=60.0)
