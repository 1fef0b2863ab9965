import sys
from pathlib import Path

import render_bootstrap


def test_select_app_script_defaults_to_app(monkeypatch):
    monkeypatch.delenv("AMC_APP_SCRIPT", raising=False)
    assert render_bootstrap._select_app_script() == "app.py"
    monkeypatch.setenv("AMC_APP_SCRIPT", "other.py")
    assert render_bootstrap._select_app_script() == "other.py"


def test_preferred_storage_dir_uses_configured_path(monkeypatch, tmp_path):
    monkeypatch.setenv("AMC_DATA_DIR", str(tmp_path / "amc"))
    assert render_bootstrap._preferred_storage_dir() == tmp_path / "amc"


def test_build_command_runs_streamlit_headless():
    command = render_bootstrap.build_command(Path("/srv/app.py"), "9000")
    assert command[:5] == [sys.executable, "-m", "streamlit", "run", "/srv/app.py"]
    assert command[command.index("--server.port") + 1] == "9000"
    assert command[-2:] == ["--server.headless", "true"]


def test_main_launches_streamlit(monkeypatch, tmp_path):
    calls = []
    monkeypatch.delenv("AMC_APP_SCRIPT", raising=False)
    monkeypatch.setenv("AMC_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("PORT", "8600")
    monkeypatch.setattr(render_bootstrap.subprocess, "run", lambda cmd, **kwargs: calls.append((cmd, kwargs)))

    render_bootstrap.main()

    assert (tmp_path / "data").is_dir()
    command, kwargs = calls[0]
    assert command[4].endswith("app.py")
    assert "8600" in command
    assert kwargs["check"] is True
