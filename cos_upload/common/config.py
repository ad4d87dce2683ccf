from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote, urlsplit

from cos_upload.infra.storage.client import ConfigError

ENV_FILE = Path(".env")

MiB = 1024 * 1024
GiB = 1024 * MiB

DEFAULT_MULTIPART_THRESHOLD_BYTES = 5 * MiB
DEFAULT_PART_SIZE_BYTES = 5 * MiB
# Remote limits for a single non-final part.
MIN_PART_SIZE_BYTES = 1 * MiB
MAX_PART_SIZE_BYTES = 5 * GiB

ADDRESSING_STYLES: tuple[str, ...] = ("virtual", "path")
LOG_FORMATS: tuple[str, ...] = ("json", "plain")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _as_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    SECRET_ID: str | None = None
    SECRET_KEY: str | None = None
    REGION: str | None = None
    BUCKET: str | None = None
    ENDPOINT_URL: str | None = None
    ADDRESSING_STYLE: str = "virtual"
    MULTIPART_THRESHOLD_BYTES: int = DEFAULT_MULTIPART_THRESHOLD_BYTES
    PART_SIZE_BYTES: int = DEFAULT_PART_SIZE_BYTES
    MAX_CONCURRENCY: int = 4
    CONNECT_TIMEOUT: float = 10.0
    READ_TIMEOUT: float = 60.0
    MAX_ATTEMPTS: int = 3
    ENABLE_METRICS: bool = True
    LOG_FORMAT: str = "json"

    def __repr__(self) -> str:
        shown = ", ".join(
            f"{f.name}={'***' if f.name == 'SECRET_KEY' and self.SECRET_KEY else getattr(self, f.name)!r}"
            for f in fields(self)
        )
        return f"Settings({shown})"

    @classmethod
    def new(
        cls,
        secret_id: str,
        secret_key: str,
        region: str,
        bucket: str,
        **overrides: object,
    ) -> "Settings":
        """Build settings by hand instead of from the environment."""
        base = cls(
            SECRET_ID=secret_id,
            SECRET_KEY=secret_key,
            REGION=region,
            BUCKET=bucket,
        )
        return replace(base, **overrides) if overrides else base

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            SECRET_ID=os.environ.get("TENCENT_SECRET_ID"),
            SECRET_KEY=os.environ.get("TENCENT_SECRET_KEY"),
            REGION=os.environ.get("TENCENT_COS_REGION"),
            BUCKET=os.environ.get("TENCENT_COS_BUCKET"),
            ENDPOINT_URL=os.environ.get("COS_ENDPOINT_URL") or None,
            ADDRESSING_STYLE=os.environ.get(
                "COS_ADDRESSING_STYLE", cls.ADDRESSING_STYLE
            )
            .strip()
            .lower(),
            MULTIPART_THRESHOLD_BYTES=_as_int(
                "COS_MULTIPART_THRESHOLD_BYTES", cls.MULTIPART_THRESHOLD_BYTES
            ),
            PART_SIZE_BYTES=_as_int("COS_PART_SIZE_BYTES", cls.PART_SIZE_BYTES),
            MAX_CONCURRENCY=_as_int("COS_MAX_CONCURRENCY", cls.MAX_CONCURRENCY),
            CONNECT_TIMEOUT=_as_float("COS_CONNECT_TIMEOUT", cls.CONNECT_TIMEOUT),
            READ_TIMEOUT=_as_float("COS_READ_TIMEOUT", cls.READ_TIMEOUT),
            MAX_ATTEMPTS=_as_int("COS_MAX_ATTEMPTS", cls.MAX_ATTEMPTS),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).strip().lower(),
        )

    def validate(self) -> "Settings":
        """Reject settings that cannot produce a working client.

        Raises:
            ConfigError: On missing credentials, region or bucket, or on
                tuning values outside what the remote accepts.
        """
        missing = [
            env
            for env, value in (
                ("TENCENT_SECRET_ID", self.SECRET_ID),
                ("TENCENT_SECRET_KEY", self.SECRET_KEY),
                ("TENCENT_COS_REGION", self.REGION),
                ("TENCENT_COS_BUCKET", self.BUCKET),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")
        if self.ADDRESSING_STYLE not in ADDRESSING_STYLES:
            raise ConfigError(
                f"COS_ADDRESSING_STYLE must be one of {ADDRESSING_STYLES}, "
                f"got {self.ADDRESSING_STYLE!r}"
            )
        if self.ENDPOINT_URL and not urlsplit(self.ENDPOINT_URL).netloc:
            raise ConfigError(f"COS_ENDPOINT_URL is not a URL: {self.ENDPOINT_URL!r}")
        if not MIN_PART_SIZE_BYTES <= self.PART_SIZE_BYTES <= MAX_PART_SIZE_BYTES:
            raise ConfigError(
                f"COS_PART_SIZE_BYTES must be between {MIN_PART_SIZE_BYTES} "
                f"and {MAX_PART_SIZE_BYTES}"
            )
        if self.MULTIPART_THRESHOLD_BYTES < 0:
            raise ConfigError("COS_MULTIPART_THRESHOLD_BYTES must not be negative")
        if self.MAX_CONCURRENCY < 1:
            raise ConfigError("COS_MAX_CONCURRENCY must be at least 1")
        if self.MAX_ATTEMPTS < 1:
            raise ConfigError("COS_MAX_ATTEMPTS must be at least 1")
        if self.LOG_FORMAT not in LOG_FORMATS:
            raise ConfigError(f"LOG_FORMAT must be one of {LOG_FORMATS}")
        return self

    @property
    def resolved_endpoint_url(self) -> str:
        if self.ENDPOINT_URL:
            return self.ENDPOINT_URL.rstrip("/")
        return f"https://cos.{self.REGION}.myqcloud.com"

    def object_url(self, object_key: str) -> str:
        """Public URL of an object in the configured bucket."""
        parts = urlsplit(self.resolved_endpoint_url)
        key = quote(object_key.lstrip("/"), safe="/~")
        if self.ADDRESSING_STYLE == "path":
            base = f"{parts.scheme}://{parts.netloc}{parts.path}"
            return f"{base}/{self.BUCKET}/{key}"
        return f"{parts.scheme}://{self.BUCKET}.{parts.netloc}{parts.path}/{key}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
