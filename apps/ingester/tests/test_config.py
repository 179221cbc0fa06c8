import logging

import pytest

from ingester.config import DEFAULT_FETCH_INTERVAL_SECONDS, get_settings, parse_duration


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "INGEST_SOURCE_URL",
        "INGEST_SOURCE_NAME",
        "INGEST_DATABASE_NAME",
        "INGEST_COLLECTION",
        "INGEST_FETCH_INTERVAL",
        "INGEST_FETCH_TIMEOUT_SECONDS",
        "INGEST_SERVER_PORT",
        "INGEST_SHUTDOWN_GRACE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.source_url == "https://jsonplaceholder.typicode.com/posts"
    assert settings.source_name == "placeholder_api"
    assert settings.database_name == "logs"
    assert settings.collection == "posts"
    assert settings.fetch_interval_seconds == 300.0
    assert settings.fetch_timeout_seconds == 30.0
    assert settings.server_port == 8080
    assert settings.shutdown_grace_seconds == 10.0


def test_settings_read_explicit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INGEST_SOURCE_NAME", "custom_source")
    monkeypatch.setenv("INGEST_COLLECTION", "articles")
    monkeypatch.setenv("INGEST_FETCH_INTERVAL", "1m30s")
    monkeypatch.setenv("INGEST_SERVER_PORT", "9090")

    settings = get_settings()

    assert settings.source_name == "custom_source"
    assert settings.collection == "articles"
    assert settings.fetch_interval_seconds == 90.0
    assert settings.server_port == 9090


def test_unparsable_fetch_interval_falls_back_to_default_with_warning(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("INGEST_FETCH_INTERVAL", "every now and then")

    with caplog.at_level(logging.WARNING, logger="ingester.config"):
        assert get_settings().fetch_interval_seconds == DEFAULT_FETCH_INTERVAL_SECONDS

    assert "invalid duration" in caplog.text
    assert "every now and then" in caplog.text


def test_negative_fetch_interval_falls_back_to_default_with_warning(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("INGEST_FETCH_INTERVAL", "-5m")

    with caplog.at_level(logging.WARNING, logger="ingester.config"):
        assert get_settings().fetch_interval_seconds == DEFAULT_FETCH_INTERVAL_SECONDS

    assert "must be positive" in caplog.text


def test_sub_millisecond_fetch_interval_is_parsed_not_defaulted(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INGEST_FETCH_INTERVAL", "1500us")

    assert get_settings().fetch_interval_seconds == 0.01


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("45", 45.0),
        ("30s", 30.0),
        ("5m", 300.0),
        ("1h30m", 5400.0),
        ("250ms", 0.25),
        ("1500us", 0.0015),
        ("1500\u00b5s", 0.0015),
        ("2ns", 2e-9),
        ("1.5h", 5400.0),
        ("+30s", 30.0),
        ("-1m30s", -90.0),
    ],
)
def test_parse_duration_accepts_go_style_units(raw: str, expected: float) -> None:
    assert parse_duration(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "5 minutes", "m5", "10x", "-", "5s-3s"])
def test_parse_duration_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(raw)
