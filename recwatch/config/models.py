import os
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

X264_PRESETS = (
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow", "placebo",
)

DEFAULT_EXTENSIONS = [".mov", ".mp4", ".m4v", ".avi", ".mkv"]


def default_concurrency() -> int:
    """Available CPUs minus one, never below one."""
    return max(1, (os.cpu_count() or 1) - 1)


class GeneralConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    dest: str = "out"
    threads: int = Field(default_factory=default_concurrency, gt=0)
    crf: int = Field(default=22, ge=0, le=51)
    preset: str = "faster"
    fps: int = Field(default=30, ge=0)  # 0 disables the frame-rate cap
    mute: bool = False
    pad: bool = True
    keywords: List[str] = Field(default_factory=list)
    trash: bool = True
    batch_stamp: bool = True
    notify: bool = True
    ffmpeg_bin: str = "ffmpeg"
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: str) -> str:
        if v not in X264_PRESETS:
            raise ValueError(f"Unknown preset '{v}'. Use one of: {', '.join(X264_PRESETS)}")
        return v

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("extensions must not be empty")
        return normalized

    @field_validator("keywords")
    @classmethod
    def strip_keywords(cls, v: List[str]) -> List[str]:
        return [k.strip() for k in v if k and k.strip()]


class EncoderConfig(BaseModel):
    """Fixed parts of the ffmpeg argument template."""
    video_codec: str = "libx264"
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    audio_channels: int = Field(default=2, ge=1)
    output_extension: str = ".mp4"


class WatchConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    settle_delay_s: float = Field(default=2.0, ge=0.0)
    settle_checks: int = Field(default=3, ge=1)  # size-stability looks before emitting anyway
    poll_interval_s: float = Field(default=0.5, gt=0.0)


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
