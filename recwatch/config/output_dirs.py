from datetime import datetime
from pathlib import Path
from typing import Optional
from .models import GeneralConfig

BATCH_STAMP_FORMAT = "%Y%m%d"


def output_base_dir(config: GeneralConfig) -> Path:
    return Path(config.dest).expanduser().resolve()


def resolve_output_dir(config: GeneralConfig, now: Optional[datetime] = None) -> Path:
    """Directory jobs write into: dest, optionally suffixed with the day stamp."""
    base = output_base_dir(config)
    if not config.batch_stamp:
        return base
    return base / (now or datetime.now()).strftime(BATCH_STAMP_FORMAT)


def ensure_output_dir(config: GeneralConfig, now: Optional[datetime] = None) -> Path:
    output_dir = resolve_output_dir(config, now)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir
