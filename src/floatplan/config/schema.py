"""Pydantic configuration models for all engine settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """Time-to-live per remote-sourced data category."""

    ndbc_stations_ttl_seconds: int = Field(24 * 3600, gt=0)
    ndbc_observations_ttl_seconds: int = Field(30 * 60, gt=0)
    tide_stations_ttl_seconds: int = Field(24 * 3600, gt=0)
    tide_observations_ttl_seconds: int = Field(15 * 60, gt=0)
    alerts_ttl_seconds: int = Field(15 * 60, gt=0)
    forecast_ttl_seconds: int = Field(60 * 60, gt=0)
    tank_log_stale_seconds: int = Field(24 * 3600, gt=0)


class SyncConfig(BaseModel):
    max_retries: int = Field(5, ge=1)  # Abandon a mutation after this many failed attempts
    backoff_base_seconds: float = Field(1.0, gt=0.0)
    backoff_max_seconds: float = Field(30.0, gt=0.0)
    drain_on_start: bool = True


class HistoryConfig(BaseModel):
    window_hours: float = Field(4.0, gt=0.0)
    trend_lookback_hours: float = Field(3.0, gt=0.0)
    wind_trend_threshold_knots: float = Field(3.0, ge=0.0)


class AlertsConfig(BaseModel):
    pressure_drop_threshold_hpa: float = Field(4.0, ge=0.0)
    pressure_lookback_hours: float = Field(3.0, gt=0.0)
    upcoming_window_minutes: int = 60


class RetentionConfig(BaseModel):
    days: int = Field(30, ge=1)
    sweep_on_start: bool = True


class PersistenceConfig(BaseModel):
    path: str = "floatplan.db"
    snapshot_key: str = "float-plan-app-storage"


class RemoteConfig(BaseModel):
    base_url: str = ""
    timeout_seconds: float = 30.0


class ConnectivityConfig(BaseModel):
    probe_url: str = ""  # Empty = rely on pushed platform signals only
    probe_interval_seconds: int = 30
    probe_timeout_seconds: float = 5.0
    assume_online: bool = False


class SourcesConfig(BaseModel):
    """Public NOAA/NWS endpoints for marine data."""

    ndbc_base_url: str = "https://www.ndbc.noaa.gov"
    coops_metadata_url: str = "https://api.tidesandcurrents.noaa.gov/mdapi/prod/webapi"
    coops_data_url: str = "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter"
    nws_base_url: str = "https://api.weather.gov"
    user_agent: str = "FloatPlan/1.0 (marine-safety)"
    timeout_seconds: float = 30.0


class RefreshConfig(BaseModel):
    interval_seconds: int = 300
    fetch_timeout_seconds: float = 30.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""
    quiet: list[str] = Field(default_factory=lambda: ["httpx", "httpcore", "aiosqlite"])


class AppConfig(BaseModel):
    """Root configuration model containing all engine settings."""

    cache: CacheConfig = CacheConfig()
    sync: SyncConfig = SyncConfig()
    history: HistoryConfig = HistoryConfig()
    alerts: AlertsConfig = AlertsConfig()
    retention: RetentionConfig = RetentionConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    remote: RemoteConfig = RemoteConfig()
    connectivity: ConnectivityConfig = ConnectivityConfig()
    sources: SourcesConfig = SourcesConfig()
    refresh: RefreshConfig = RefreshConfig()
    logging: LoggingConfig = LoggingConfig()
