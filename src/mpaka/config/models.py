from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "mpaka"


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = FileRotationSettings()


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    enabled: bool = True
    file: FileLoggingSettings = FileLoggingSettings()


class FetchSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)

    # Jitter between 403 retries. Empirical values, no documented derivation.
    retry_delay_min_seconds: float = Field(default=0.5, ge=0)
    retry_delay_max_seconds: float = Field(default=2.5, ge=0)

    @model_validator(mode="after")
    def _check_delay_range(self) -> FetchSettings:
        if self.retry_delay_min_seconds > self.retry_delay_max_seconds:
            raise ValueError("retry_delay_min_seconds must not exceed retry_delay_max_seconds")
        return self


class RenderSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    engines: Sequence[str] = ("chromium", "firefox")
    navigation_timeout_seconds: float = Field(default=30.0, gt=0)
    settle_seconds: float = Field(default=2.0, ge=0)
    session_timeout_seconds: float = Field(default=60.0, gt=0)
    # Containers running as root need this off.
    chromium_sandbox: bool = True

    # None leaves concurrent render sessions uncapped.
    max_concurrent_sessions: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_engines(self) -> RenderSettings:
        allowed = {"chromium", "firefox", "webkit"}
        unknown = [name for name in self.engines if name not in allowed]
        if unknown:
            raise ValueError(f"Unknown render engines: {', '.join(unknown)}")
        if len(set(self.engines)) < 2:
            raise ValueError("At least two distinct render engines are required")
        return self


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    app_name: str = "mpaka"
    version: str = "v2"
    first_time_timeout_ms: int = Field(default=20000, gt=0)
    returning_user_timeout_ms: int = Field(default=5000, gt=0)

    origin_url: str = "http://localhost:3000"
    storage_dir: str = "data/offline-cache"
    manifest: Sequence[str] = ("/", "/index.html", "/main.js", "/styles.js", "/manifest.json")

    # None disables periodic update checks after activation.
    update_check_interval_seconds: Optional[float] = Field(default=None, gt=0)
    # Assets served from the network seed the next build only while younger than this.
    seed_max_age_seconds: float = Field(default=60.0, gt=0)

    @model_validator(mode="after")
    def _check_budgets(self) -> CacheSettings:
        if self.first_time_timeout_ms <= self.returning_user_timeout_ms:
            raise ValueError("first_time_timeout_ms must be greater than returning_user_timeout_ms")
        if not self.manifest:
            raise ValueError("Cache manifest must list at least one asset")
        return self

    @property
    def cache_name(self) -> str:
        return f"{self.app_name}-{self.version}"

    @property
    def temp_cache_name(self) -> str:
        return f"{self.app_name}-temp-{self.version}"


class ServerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    static_dir: str = ""


class AppConfig(BaseModel):
    """
    Effective runtime configuration after applying all precedence rules.

    Instances are immutable and are handed to each component at construction.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    app: AppSettings = AppSettings()
    logging: LoggingSettings = LoggingSettings()
    fetch: FetchSettings = FetchSettings()
    render: RenderSettings = RenderSettings()
    cache: CacheSettings = CacheSettings()
    server: ServerSettings = ServerSettings()


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "MPAKA__"
    dotenv_path: Optional[str] = "data/.env"
