from __future__ import annotations

from datetime import timedelta

from typer.testing import CliRunner

from activity_timeline.cli import app
from activity_timeline.config import MonitorSettings, WindowKeying
from activity_timeline.normalization import (
    UNKNOWN_SUBJECT_KEY,
    coerce_subject_key,
    normalize_app_name,
    window_subject_key,
)


def test_from_options_normalizes_values():
    settings = MonitorSettings.from_options(
        poll_seconds=0.0,
        max_records=0,
        window_keying="per-application",
        sources={"processes", "screen"},
    )

    assert settings.poll_interval == timedelta(seconds=0.1)
    assert settings.max_records is None
    assert settings.window_keying is WindowKeying.PER_APPLICATION
    assert settings.enable_processes and settings.enable_screen
    assert not settings.enable_windows and not settings.enable_activation


def test_subject_keys():
    assert window_subject_key("Code", "main.py") == "Code-main.py"
    assert window_subject_key("Code", "main.py", WindowKeying.PER_APPLICATION) == "Code"
    assert coerce_subject_key("") == UNKNOWN_SUBJECT_KEY
    assert coerce_subject_key(None) == UNKNOWN_SUBJECT_KEY
    assert normalize_app_name("Code.exe") == "Code"
    assert normalize_app_name(None) == "Unknown"


def test_cli_rejects_unknown_source():
    result = CliRunner().invoke(app, ["monitor", "--source", "printer", "--duration", "1"])
    assert result.exit_code == 2
