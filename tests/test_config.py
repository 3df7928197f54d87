# tests/test_config.py

from __future__ import annotations

import pytest

from taskbot.config import Settings


def test_console_user_defaults_to_local(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TASKBOT_CONSOLE_USER", raising=False)
    assert Settings.from_env().console_user == "local"

    monkeypatch.setenv("TASKBOT_CONSOLE_USER", "  ")
    assert Settings.from_env().console_user == "local"

    monkeypatch.setenv("TASKBOT_CONSOLE_USER", "dana")
    assert Settings.from_env().console_user == "dana"
