from pathlib import Path
from unittest.mock import patch, MagicMock
from recwatch.infrastructure.notifier import Notifier

def _which(available):
    return lambda name: f"/usr/local/bin/{name}" if name in available else None

def test_terminal_notifier_preferred(tmp_path):
    out = tmp_path / "2024-01-01_00-00-00.mp4"
    with patch("shutil.which", side_effect=_which({"terminal-notifier"})), \
         patch("subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
        assert Notifier(platform="darwin").send("Done", "clip.mov was converted.", open_path=out)

    cmd = mock_run.call_args[0][0]
    assert cmd[:5] == ["terminal-notifier", "-title", "Done", "-message", "clip.mov was converted."]
    assert cmd[cmd.index("-open") + 1] == out.as_uri()

def test_osascript_fallback_on_macos():
    with patch("shutil.which", side_effect=_which(set())), \
         patch("subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
        Notifier(platform="darwin").send("Failed", 'bad "name".mov')

    cmd = mock_run.call_args[0][0]
    assert cmd[0] == "osascript"
    assert 'display notification "bad \\"name\\".mov" with title "Failed"' in cmd[2]

def test_notify_send_on_linux():
    with patch("shutil.which", side_effect=_which({"notify-send"})), \
         patch("subprocess.run", return_value=MagicMock(returncode=0)) as mock_run:
        Notifier(platform="linux").send("Done", "ok")
    assert mock_run.call_args[0][0] == ["notify-send", "Done", "ok"]

def test_no_notifier_available():
    with patch("shutil.which", return_value=None), patch("subprocess.run") as mock_run:
        assert Notifier(platform="linux").send("Done", "ok") is False
    assert not mock_run.called

def test_failures_are_logged_not_raised(caplog):
    with patch("shutil.which", side_effect=_which({"notify-send"})), \
         patch("subprocess.run", side_effect=OSError("dbus down")):
        assert Notifier(platform="linux").send("Done", "ok") is False
    assert "dbus down" in caplog.text

    with patch("shutil.which", side_effect=_which({"notify-send"})), \
         patch("subprocess.run", return_value=MagicMock(returncode=2)):
        assert Notifier(platform="linux").send("Done", "ok") is False
