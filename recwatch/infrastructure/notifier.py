import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional


class Notifier:
    """Desktop notifications: terminal-notifier, then osascript, then notify-send.

    Delivery problems are logged and never raised.
    """

    def __init__(self, platform: str = sys.platform):
        self.platform = platform
        self.logger = logging.getLogger(__name__)

    def _build_command(self, title: str, message: str, open_path: Optional[Path]) -> Optional[List[str]]:
        if shutil.which("terminal-notifier"):
            cmd = ["terminal-notifier", "-title", title, "-message", message, "-sound", "default"]
            if open_path is not None:
                cmd.extend(["-open", Path(open_path).absolute().as_uri()])
            return cmd
        if self.platform == "darwin":
            script = (
                f'display notification "{escape_applescript(message)}" '
                f'with title "{escape_applescript(title)}" sound name "default"'
            )
            return ["osascript", "-e", f'tell application "System Events" to {script}']
        if shutil.which("notify-send"):
            return ["notify-send", title, message]
        return None

    def send(self, title: str, message: str, open_path: Optional[Path] = None) -> bool:
        cmd = self._build_command(title, message, open_path)
        if cmd is None:
            self.logger.debug(f"No notifier available for: {title}")
            return False
        try:
            res = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            self.logger.warning(f"Failed to send notification via {cmd[0]}: {e}")
            return False
        if res.returncode != 0:
            self.logger.warning(f"Failed to send notification via {cmd[0]} (code {res.returncode})")
            return False
        return True


def escape_applescript(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
