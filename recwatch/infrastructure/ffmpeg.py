import os
import subprocess
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from recwatch.domain.models import TranscodeJob, TranscodeResult, JobStatus
from recwatch.config.models import AppConfig

OUTPUT_STAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
DIAGNOSTIC_TAIL_LINES = 20


def diagnostic_tail(output: str, lines: int = DIAGNOSTIC_TAIL_LINES) -> str:
    """Last few lines of ffmpeg's combined output, enough to show the error."""
    return "\n".join(output.strip().splitlines()[-lines:])


class FFmpegAdapter:
    """Wrapper around ffmpeg for 1080p H.264 conversion."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def output_path_for(self, input_path: Path, output_dir: Path) -> Path:
        """Output name is the input's modification time; wall-clock now if stat fails."""
        try:
            stamp_time = datetime.fromtimestamp(input_path.stat().st_mtime)
        except OSError:
            stamp_time = datetime.now()
        name = stamp_time.strftime(OUTPUT_STAMP_FORMAT) + self.config.encoder.output_extension
        return output_dir / name

    def _video_filter(self) -> str:
        enc = self.config.encoder
        vf = f"scale={enc.width}:{enc.height}:force_original_aspect_ratio=decrease"
        if self.config.general.pad:
            vf += f",pad={enc.width}:{enc.height}:(ow-iw)/2:(oh-ih)/2"
        return vf

    def _build_command(self, input_path: Path, dest_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments writing to dest_path."""
        general = self.config.general
        enc = self.config.encoder
        cmd = [
            general.ffmpeg_bin,
            "-hide_banner",
            "-n",  # Never overwrite; a stale .tmp is a failure, not a prompt
            "-i", str(input_path),
            "-vcodec", enc.video_codec,
            "-preset", general.preset,
            "-crf", str(general.crf),
            "-vf", self._video_filter(),
            "-movflags", "+faststart",
        ]
        if general.fps > 0:
            cmd.extend(["-r", str(general.fps)])

        if general.mute:
            cmd.append("-an")
        else:
            cmd.extend([
                "-acodec", enc.audio_codec,
                "-b:a", enc.audio_bitrate,
                "-ac", str(enc.audio_channels),
            ])

        # Force mp4 format since .tmp extension doesn't indicate format
        cmd.extend(["-f", "mp4", str(dest_path)])
        return cmd

    @staticmethod
    def _tmp_path(output_path: Path) -> Path:
        # Unique per job: sources with equal mtimes share an output name
        return output_path.with_name(f"{output_path.stem}.{uuid.uuid4().hex[:8]}.tmp")

    def _cleanup_tmp(self, tmp_path: Path):
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to remove partial output {tmp_path}: {e}")

    def transcode(self, job: TranscodeJob) -> TranscodeResult:
        """Runs ffmpeg for one job and waits for it. Updates the job in place."""
        filename = job.input_path.name
        debug = self.config.general.debug
        start_time = time.monotonic()

        output_path = self.output_path_for(job.input_path, job.output_dir)
        tmp_path = self._tmp_path(output_path)

        if output_path.exists():
            return self._fail(job, f"Output already exists: {output_path}")

        cmd = self._build_command(job.input_path, tmp_path)
        if debug:
            self.logger.info(f"FFMPEG_START: {filename} -> {output_path.name}")
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                errors="replace",
            )
        except OSError as e:
            self._cleanup_tmp(tmp_path)
            return self._fail(job, f"Failed to launch {self.config.general.ffmpeg_bin}: {e}")

        job.duration_seconds = time.monotonic() - start_time

        if process.returncode != 0:
            self._cleanup_tmp(tmp_path)
            message = f"ffmpeg exited with code {process.returncode}"
            tail = diagnostic_tail(process.stdout or "")
            if tail:
                message = f"{message}\n{tail}"
            # Job outcome carries the tail; the complete output goes to the debug log
            self.logger.debug(f"FFMPEG_OUTPUT: {filename}\n{process.stdout or ''}")
            if debug:
                self.logger.info(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={job.duration_seconds:.2f}s")
            return self._fail(job, message)

        if not tmp_path.exists():
            return self._fail(job, f"ffmpeg exited with code 0 but wrote no output: {tmp_path}")

        try:
            self._move_into_place(tmp_path, output_path)
        except FileExistsError:
            self._cleanup_tmp(tmp_path)
            return self._fail(job, f"Output already exists: {output_path}")
        except OSError as e:
            self._cleanup_tmp(tmp_path)
            return self._fail(job, f"Failed to move output into place: {output_path}: {e}")

        job.status = JobStatus.COMPLETED
        job.output_path = output_path
        if debug:
            self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={job.duration_seconds:.2f}s")
        return TranscodeResult(status=JobStatus.COMPLETED, output_path=output_path)

    def _move_into_place(self, tmp_path: Path, output_path: Path):
        """Gives the finished file its final name. Raises FileExistsError rather than replace an output."""
        try:
            os.link(tmp_path, output_path)
        except FileExistsError:
            raise
        except OSError:
            # No hard links here (exFAT, some network shares)
            if output_path.exists():
                raise FileExistsError(f"Output already exists: {output_path}")
            tmp_path.rename(output_path)
            return
        self._cleanup_tmp(tmp_path)

    def _fail(self, job: TranscodeJob, message: str) -> TranscodeResult:
        job.status = JobStatus.FAILED
        job.error_message = message
        return TranscodeResult(status=JobStatus.FAILED, diagnostic=message)

    def version(self) -> Optional[str]:
        """First line of `ffmpeg -version`, or None when the binary is unusable."""
        try:
            res = subprocess.run(
                [self.config.general.ffmpeg_bin, "-version"],
                capture_output=True,
                text=True,
            )
        except OSError:
            return None
        if res.returncode != 0 or not res.stdout:
            return None
        return res.stdout.splitlines()[0]
