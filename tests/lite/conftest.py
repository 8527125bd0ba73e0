from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from icsfeed_lite.lite_models import ExpansionWindow

FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures" / "ics"


@pytest.fixture
def year_2024_window() -> ExpansionWindow:
    """Window covering all of 2024 (UTC), used by most expansion tests."""
    return ExpansionWindow(
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        end=datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
    )


@pytest.fixture
def build_ics() -> Callable[..., str]:
    """Return a helper that wraps VEVENT bodies in a VCALENDAR.

    Each positional argument is the body of one VEVENT (lines separated by
    newlines, without BEGIN/END). Keyword ``calendar_props`` adds lines to
    the calendar header.
    """

    def _build(*vevents: str, calendar_props: str = "") -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//icsfeed tests//EN"]
        if calendar_props:
            lines.extend(calendar_props.strip().splitlines())
        for body in vevents:
            lines.append("BEGIN:VEVENT")
            lines.extend(line.strip() for line in body.strip().splitlines())
            lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        return "\r\n".join(lines) + "\r\n"

    return _build


@pytest.fixture
def load_fixture() -> Callable[[str], str]:
    """Return a helper that reads an ICS fixture file by name."""

    def _load(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")

    return _load


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure ICSFEED_* environment variables do not leak between tests.

    Some tests set ICSFEED_TEST_TIME to freeze the clock or ICSFEED_DEBUG to
    force debug logging.
    """
    for name in ("ICSFEED_TEST_TIME", "ICSFEED_DEBUG", "ICSFEED_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield
