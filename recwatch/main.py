import signal
import typer
from pathlib import Path
from typing import Optional, List, Dict, Any

from recwatch.config.loader import load_config
from recwatch.config.models import AppConfig
from recwatch.config.output_dirs import ensure_output_dir, output_base_dir, resolve_output_dir
from recwatch.infrastructure.logging import setup_logging
from recwatch.infrastructure.event_bus import EventBus
from recwatch.infrastructure.file_scanner import FileScanner
from recwatch.infrastructure.ffmpeg import FFmpegAdapter
from recwatch.infrastructure.notifier import Notifier
from recwatch.infrastructure.trash import TrashService
from recwatch.infrastructure.watcher import WatchSource, WatchTargetError
from recwatch.pipeline.orchestrator import Orchestrator
from recwatch.pipeline.sources import BatchSource
from recwatch.ui.reporter import OutcomeReporter
from recwatch.domain.events import RequestShutdown

app = typer.Typer(help="recwatch - convert videos to 1080p H.264 MP4, in one go or by watching a folder")


def parse_keywords(keywords_arg: Optional[str]) -> List[str]:
    if keywords_arg is None:
        return []
    return [part.strip() for part in keywords_arg.split(",") if part.strip()]


def _fail(message: str):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _install_stop_signal(bus: EventBus):
    """SIGTERM drains like Ctrl+C: stop intake, finish queued jobs."""
    try:
        signal.signal(signal.SIGTERM, lambda _signum, _frame: bus.publish(RequestShutdown()))
    except ValueError:
        # Not on the main thread (embedded use); rely on Ctrl+C only
        pass


@app.command()
def convert(
    paths: Optional[List[str]] = typer.Argument(
        None,
        help="Files, directories or glob patterns to convert; with --watch, the directory to watch"
    ),
    watch: bool = typer.Option(False, "--watch", "-w", help="Watch a directory and convert new recordings"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    dest: Optional[Path] = typer.Option(None, "--dest", "-d", help="Output directory (default ./out)"),
    concurrent: Optional[int] = typer.Option(None, "--concurrent", "-j", help="Number of parallel conversions"),
    crf: Optional[int] = typer.Option(None, "--crf", help="x264 CRF quality (lower = better)"),
    preset: Optional[str] = typer.Option(None, "--preset", help="x264 preset (e.g. faster, medium)"),
    fps: Optional[int] = typer.Option(None, "--fps", help="Frame-rate cap (0 disables)"),
    mute: bool = typer.Option(False, "--mute", help="Drop the audio track"),
    keywords: Optional[str] = typer.Option(None, "--keywords", help="Comma-separated keywords; batch mode converts only matching paths"),
    no_pad: bool = typer.Option(False, "--no-pad", help="Do not letterbox to exactly 1920x1080"),
    no_trash: bool = typer.Option(False, "--no-trash", help="Keep source files instead of moving them to the trash"),
    batch_stamp: Optional[bool] = typer.Option(None, "--batch-stamp/--no-batch-stamp", help="Write into a dated subdirectory of the output directory"),
    notify: Optional[bool] = typer.Option(None, "--notify/--no-notify", help="Desktop notification per finished file (watch mode)"),
    ffmpeg_bin: Optional[str] = typer.Option(None, "--ffmpeg-bin", help="Path to the ffmpeg binary"),
    settle_delay: Optional[float] = typer.Option(None, "--settle-delay", help="Seconds to wait before converting a new file (watch mode)"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert videos in batch, or watch a directory and convert new files as they appear."""
    try:
        try:
            config = load_config(config_path)
            overrides: Dict[str, Any] = {
                "dest": str(dest) if dest is not None else None,
                "threads": concurrent,
                "crf": crf,
                "preset": preset,
                "fps": fps,
                "batch_stamp": batch_stamp,
                "notify": notify,
                "ffmpeg_bin": ffmpeg_bin,
                "log_path": str(log_path) if log_path is not None else None,
            }
            # Apply CLI overrides (validated on assignment)
            for key, value in overrides.items():
                if value is not None:
                    setattr(config.general, key, value)
            if keywords is not None:
                config.general.keywords = parse_keywords(keywords)
            if mute: config.general.mute = True
            if no_pad: config.general.pad = False
            if no_trash: config.general.trash = False
            if debug: config.general.debug = True
            if settle_delay is not None: config.watch.settle_delay_s = settle_delay
        except (FileNotFoundError, ValueError) as exc:
            _fail(str(exc))

        base_dir = output_base_dir(config.general)
        try:
            log_path_value = Path(config.general.log_path) if config.general.log_path else None
            logger = setup_logging(base_dir, debug=config.general.debug, log_path=log_path_value)
        except OSError as exc:
            _fail(f"Cannot create output directory {base_dir}: {exc}")

        general = config.general
        logger.info(
            f"Config: concurrency={general.threads}, crf={general.crf}, preset={general.preset}, "
            f"fps={general.fps}, mute={general.mute}, pad={general.pad}, trash={general.trash}, "
            f"batch_stamp={general.batch_stamp}, debug={general.debug}"
        )

        bus = EventBus()
        ffmpeg = FFmpegAdapter(config)
        version = ffmpeg.version()
        if version:
            logger.info(f"Using {version}")
        else:
            logger.warning(f"'{general.ffmpeg_bin}' is not usable; conversions will fail")

        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            ffmpeg_adapter=ffmpeg,
            trash_service=TrashService() if general.trash else None,
        )
        OutcomeReporter(bus, Notifier(), notify=general.notify and watch)
        _install_stop_signal(bus)

        if watch:
            _run_watch(config, paths or [], orchestrator, bus, logger)
        else:
            _run_batch(config, paths or [], orchestrator, bus, logger)

    except KeyboardInterrupt:
        # Orchestrator already drained queued jobs
        typer.secho("\n✓ Conversion stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        with open("error.log", "a") as f:
            import traceback
            traceback.print_exc(file=f)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _run_watch(config: AppConfig, paths: List[str], orchestrator: Orchestrator, bus: EventBus, logger):
    target = Path(paths[0] if paths else ".").expanduser().absolute()
    if len(paths) > 1:
        logger.warning(f"Watch mode uses only the first path; ignoring {len(paths) - 1} more")

    if resolve_output_dir(config.general).resolve() == target.resolve():
        _fail("Output directory must differ from the watched directory")

    source = WatchSource(
        target,
        settle_delay_s=config.watch.settle_delay_s,
        settle_checks=config.watch.settle_checks,
        accept=orchestrator.classifier.is_eligible,
        event_bus=bus,
        poll_interval_s=config.watch.poll_interval_s,
    )
    try:
        source.start()
    except WatchTargetError as exc:
        _fail(str(exc))

    logger.info(f"Output: {output_base_dir(config.general)} (stamped per day: {config.general.batch_stamp})")
    logger.info("Press Ctrl+C to stop")
    try:
        orchestrator.run(source)
    except WatchTargetError as exc:
        _fail(str(exc))
    finally:
        source.stop()


def _run_batch(config: AppConfig, paths: List[str], orchestrator: Orchestrator, bus: EventBus, logger):
    general = config.general
    scanner = FileScanner(general.extensions, exclude_dirs=[output_base_dir(general)])
    source = BatchSource(paths, scanner, keywords=general.keywords, event_bus=bus)

    if not source.paths:
        if general.keywords:
            logger.info("No files match the given keywords.")
        else:
            logger.info("No files to convert.")
        return

    try:
        output_dir = ensure_output_dir(general)
    except OSError as exc:
        _fail(f"Cannot create output directory: {exc}")

    logger.info(f"Output: {output_dir}")
    orchestrator.run(source, output_dir=output_dir)


if __name__ == "__main__":
    app()
