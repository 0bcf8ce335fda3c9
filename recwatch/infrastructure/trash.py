import shutil
import subprocess
import sys
from pathlib import Path
from typing import List

from recwatch.infrastructure.notifier import escape_applescript


class TrashError(Exception):
    """Raised when a file could not be moved to the platform trash."""


class TrashService:
    """Moves files to the user-recoverable trash with the platform's own tooling."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    def _build_command(self, abs_path: Path) -> List[str]:
        if self.platform == "darwin":
            script = f'tell application "Finder" to move POSIX file "{escape_applescript(str(abs_path))}" to trash'
            return ["osascript", "-e", script]
        if self.platform.startswith("linux"):
            if shutil.which("gio") is None:
                raise TrashError("gio command not found")
            return ["gio", "trash", str(abs_path)]
        if self.platform == "win32":
            quoted = str(abs_path).replace("'", "''")
            ps_cmd = (
                "Add-Type -AssemblyName Microsoft.VisualBasic; "
                f"[Microsoft.VisualBasic.FileIO.FileSystem]::DeleteFile('{quoted}', "
                "[Microsoft.VisualBasic.FileIO.UIOption]::OnlyErrorDialogs, "
                "[Microsoft.VisualBasic.FileIO.RecycleOption]::SendToRecycleBin)"
            )
            return ["powershell", "-Command", ps_cmd]
        raise TrashError(f"Unsupported platform: {self.platform}")

    def move_to_trash(self, path: Path):
        abs_path = Path(path).absolute()
        cmd = self._build_command(abs_path)
        try:
            res = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TrashError(f"{cmd[0]} could not be started: {e}") from e
        if res.returncode != 0:
            detail = (res.stderr or res.stdout or "").strip()
            raise TrashError(f"{cmd[0]} exited with code {res.returncode}: {detail}")
