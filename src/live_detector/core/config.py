"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CameraSettings(BaseSettings):
    """Capture source and frame geometry settings."""

    model_config = SettingsConfigDict(env_prefix="CAMERA_")

    source: Literal["opencv", "tello"] = "opencv"
    device: int | str = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    aspect_ratio: Literal["4:3", "16:9"] = "4:3"
    rotation_degrees: int = 0
    lens_facing: Literal["back", "front"] = "back"

    @field_validator("device", mode="before")
    @classmethod
    def _device_index(cls, value: object) -> object:
        # "0" from the environment means a local device index, not a URL
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return value

    @field_validator("rotation_degrees")
    @classmethod
    def _cardinal_rotation(cls, value: int) -> int:
        if value not in (0, 90, 180, 270):
            raise ValueError("rotation_degrees must be one of 0, 90, 180, 270")
        return value

    @property
    def mirror(self) -> bool:
        """Front-facing lenses produce mirrored analysis frames."""
        return self.lens_facing == "front"


class DetectorSettings(BaseSettings):
    """Object detection model settings."""

    model_config = SettingsConfigDict(env_prefix="DETECTOR_", protected_namespaces=())

    model_path: str = "data/models/efficientdet_lite0.tflite"
    labels_path: str | None = None
    use_gpu: bool = False
    score_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_results: int = Field(default=10, gt=0)

    @field_validator("labels_path", mode="before")
    @classmethod
    def _optional_labels(cls, value: object) -> object:
        # An empty DETECTOR_LABELS_PATH turns the labels file off
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TelloSettings(BaseSettings):
    """Tello drone connection settings."""

    model_config = SettingsConfigDict(env_prefix="TELLO_")

    ip: str = "192.168.10.1"
    connect_timeout: float = 10.0


class UISettings(BaseSettings):
    """Display and overlay settings."""

    model_config = SettingsConfigDict(env_prefix="")

    display_width: int = Field(default=960, alias="DISPLAY_WIDTH")
    display_height: int = Field(default=720, alias="DISPLAY_HEIGHT")
    show_labels: bool = Field(default=True, alias="SHOW_LABELS")
    show_inference_time: bool = Field(default=True, alias="SHOW_INFERENCE_TIME")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = "INFO"
    file: str | None = None


class Settings(BaseSettings):
    """Root settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    camera: CameraSettings = Field(default_factory=CameraSettings)
    detector: DetectorSettings = Field(default_factory=DetectorSettings)
    tello: TelloSettings = Field(default_factory=TelloSettings)
    ui: UISettings = Field(default_factory=UISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings instance."""
    return Settings()
