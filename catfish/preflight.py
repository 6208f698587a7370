"""Preflight checks for the assistant server configuration.

Run this before starting the server to catch common misconfiguration:
  catfish-preflight

Optional network checks:
  catfish-preflight --check-http
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx
from dotenv import load_dotenv

from catfish.config import mask_secret


@dataclass
class Report:
    passed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        self.passed.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.failures.append(message)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def _load_environment() -> None:
    """Load local env files in precedence order without overwriting existing vars."""
    root = Path.cwd()
    for env_file in (root / ".env.local", root / ".env"):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def _is_valid_http_url(value: str) -> bool:
    """Return True when value is an absolute HTTP(S) URL."""
    parsed = urlparse((value or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _env_int(name: str, default: int, report: Report, *, minimum: int = 1) -> int:
    """Parse int env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        report.fail(f"{name} must be an integer. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def check_letta(report: Report) -> None:
    """Validate Letta Cloud credentials and agent selection."""
    api_key = (os.getenv("LETTA_API_KEY") or "").strip()
    if not api_key:
        report.fail("LETTA_API_KEY is required.")
    else:
        if not api_key.startswith("sk-let-"):
            report.warn("LETTA_API_KEY does not start with 'sk-let-'; verify key value.")
        report.ok(f"LETTA_API_KEY detected ({mask_secret(api_key)}).")

    agent_id = (os.getenv("LETTA_AGENT_ID") or "").strip()
    if not agent_id:
        report.fail("LETTA_AGENT_ID is required. Create an agent and export its id.")
    else:
        report.ok(f"LETTA_AGENT_ID={agent_id}")

    base_url = (os.getenv("LETTA_BASE_URL") or "https://api.letta.com").strip()
    if not _is_valid_http_url(base_url):
        report.fail(f"LETTA_BASE_URL is not a valid HTTP(S) URL: {base_url!r}")


def check_voice(report: Report) -> None:
    """Validate speech-to-text settings; missing keys only disable voice input."""
    groq_key = (os.getenv("GROQ_API_KEY") or "").strip()
    if not groq_key:
        report.warn("GROQ_API_KEY is not set; audio will not be transcribed.")
    else:
        if not groq_key.startswith("gsk_"):
            report.warn("GROQ_API_KEY does not start with 'gsk_'; verify key value.")
        report.ok(f"GROQ_API_KEY detected ({mask_secret(groq_key)}).")

    base_url = (os.getenv("GROQ_BASE_URL") or "https://api.groq.com/openai/v1").strip()
    if not _is_valid_http_url(base_url):
        report.fail(f"GROQ_BASE_URL is not a valid HTTP(S) URL: {base_url!r}")

    sample_rate = _env_int("RECORDING_SAMPLE_RATE", 16_000, report, minimum=8_000)
    if sample_rate != 16_000:
        report.warn("RECORDING_SAMPLE_RATE differs from 16000 Hz; Whisper resamples internally.")
    _env_int("RECORDING_CHANNELS", 1, report)


def check_server(report: Report) -> None:
    """Validate server knobs."""
    port = _env_int("PORT", 3001, report)
    if port > 65_535:
        report.fail(f"PORT must be <= 65535. Got: {port}")
    _env_int("AUTH_MIN_TOKEN_LENGTH", 10, report)
    max_bytes = _env_int("MAX_REQUEST_BYTES", 10 * 1024 * 1024, report, minimum=1024)
    if max_bytes < 1024 * 1024:
        report.warn("MAX_REQUEST_BYTES is below 1 MiB; screenshots may be rejected.")
    report.ok("Server settings parsed successfully.")


def check_http_health(report: Report, *, timeout_seconds: float) -> None:
    """Probe the Letta agents API with the configured key."""
    api_key = (os.getenv("LETTA_API_KEY") or "").strip()
    base_url = (os.getenv("LETTA_BASE_URL") or "https://api.letta.com").strip().rstrip("/")
    if not api_key:
        report.warn("Skipping Letta HTTP check: LETTA_API_KEY is not set.")
        return
    url = f"{base_url}/v1/agents/"
    try:
        with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
            response = client.get(url, headers={"Authorization": f"Bearer {api_key}"})
    except httpx.HTTPError as exc:
        report.fail(f"{url} not reachable ({exc}).")
        return
    if response.status_code >= 400:
        report.fail(f"{url} responded with HTTP {response.status_code}.")
        return
    report.ok(f"{url} reachable (HTTP {response.status_code}).")


def print_report(report: Report) -> None:
    """Render a human-readable summary report to stdout."""
    for message in report.passed:
        print(f"[PASS] {message}")
    for message in report.warnings:
        print(f"[WARN] {message}")
    for message in report.failures:
        print(f"[FAIL] {message}")
    print(
        f"\nSummary: {len(report.passed)} passed, {len(report.warnings)} warnings, {len(report.failures)} failures."
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Catfish server preflight checks")
    parser.add_argument(
        "--check-http",
        action="store_true",
        help="Probe the Letta API with the configured key.",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        default=3.0,
        help="Timeout (seconds) for preflight HTTP probes (default: 3.0).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run preflight suite and return process exit code."""
    args = parse_args(argv)
    _load_environment()
    report = Report()

    check_letta(report)
    check_voice(report)
    check_server(report)
    if args.check_http:
        check_http_health(report, timeout_seconds=max(args.http_timeout, 0.1))

    print_report(report)
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
