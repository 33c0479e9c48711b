from __future__ import annotations

"""
Pytest configuration for the Vimshottari suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (instants in tests always carry an offset).
- Shared fixtures: the reference Venus/0.5 timeline and a Flask test client.
"""

import os
from datetime import datetime, timezone

import pytest
from hypothesis import settings, HealthCheck

from vimshottari.core.builder import build_timeline
from vimshottari.core.sequence import Ruler


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # lazy expansion makes first examples slower
        max_examples=60,
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=120,
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

T0 = datetime(1990, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def venus_timeline():
    """Venus ruler, half its period left at birth (10 of 20 years)."""
    return build_timeline(T0, Ruler.VENUS, 0.5)


@pytest.fixture
def client():
    from vimshottari.main import create_app
    app = create_app()
    app.testing = True
    return app.test_client()
