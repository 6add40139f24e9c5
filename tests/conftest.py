"""Pytest configuration for test isolation.

The CLI and ``load_settings`` read the settings file location and credentials
from the environment (``SMS_NOTIFIER_CONFIG``, ``SMS_NOTIFIER_PUSHBULLET_API_KEY``,
``DATABASE_URL``...). A developer's real ``.env`` or settings file must never
leak into a test, so an autouse fixture clears those variables and points the
settings file at the test's own temporary directory.

``db.client`` keeps one process-wide engine bound to a single URL; it is
disposed after every test so each test can bootstrap its own SQLite file.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
for _p in (_ROOT, _ROOT / "packages", _ROOT / "libs" / "db" / "src"):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

from db.client import dispose_engine  # noqa: E402

_ENV_VARS = (
    "SMS_NOTIFIER_CONFIG",
    "SMS_NOTIFIER_PUSHBULLET_API_KEY",
    "SMS_NOTIFIER_DATABASE_URL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SMS_NOTIFIER_CONFIG", os.fspath(tmp_path / "settings" / "config.json"))
    # Keep find_dotenv(usecwd=True) from discovering a developer .env.
    monkeypatch.chdir(tmp_path)
    yield
    dispose_engine()
