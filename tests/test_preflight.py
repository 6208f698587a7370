from __future__ import annotations

import pytest

from catfish import preflight
from catfish.preflight import Report, check_letta, check_server, check_voice


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "LETTA_API_KEY",
        "LETTA_AGENT_ID",
        "LETTA_BASE_URL",
        "GROQ_API_KEY",
        "GROQ_BASE_URL",
        "RECORDING_SAMPLE_RATE",
        "RECORDING_CHANNELS",
        "PORT",
        "AUTH_MIN_TOKEN_LENGTH",
        "MAX_REQUEST_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(preflight, "_load_environment", lambda: None)


def test_missing_letta_settings_fail() -> None:
    report = Report()
    check_letta(report)

    assert report.has_failures
    assert any("LETTA_API_KEY" in msg for msg in report.failures)
    assert any("LETTA_AGENT_ID" in msg for msg in report.failures)


def test_configured_letta_passes_and_masks_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LETTA_API_KEY", "sk-let-0123456789abcdef")
    monkeypatch.setenv("LETTA_AGENT_ID", "agent-42")
    report = Report()

    check_letta(report)

    assert not report.has_failures
    assert not any("0123456789" in msg for msg in report.passed)


def test_voice_is_optional_but_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    report = Report()
    check_voice(report)
    assert not report.has_failures
    assert any("GROQ_API_KEY" in msg for msg in report.warnings)

    monkeypatch.setenv("RECORDING_SAMPLE_RATE", "loud")
    bad = Report()
    check_voice(bad)
    assert any("RECORDING_SAMPLE_RATE" in msg for msg in bad.failures)


def test_server_port_bounds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "70000")
    report = Report()

    check_server(report)

    assert any("PORT" in msg for msg in report.failures)


def test_main_exit_code(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    assert preflight.main([]) == 1

    monkeypatch.setenv("LETTA_API_KEY", "sk-let-0123456789abcdef")
    monkeypatch.setenv("LETTA_AGENT_ID", "agent-42")
    assert preflight.main([]) == 0
    assert "Summary:" in capsys.readouterr().out
