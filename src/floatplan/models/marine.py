"""Remote-sourced marine records: stations, observations, alerts, forecasts."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from floatplan.models._base import FiniteFloat, Record
from floatplan.timeutil import Timestamp, UtcDatetime

# Great Lakes zone prefixes have no tidal data.
GREAT_LAKES_PREFIXES = ("LMZ", "LSZ", "LEZ", "LOZ", "LHZ")


def is_great_lakes_zone(zone_id: str) -> bool:
    return zone_id.startswith(GREAT_LAKES_PREFIXES)


class PressureUnit(str, Enum):
    HPA = "hPa"
    MB = "mb"


class NDBCStation(Record):
    id: str
    name: str = ""
    lat: float = 0.0
    lon: float = 0.0
    type: str = "buoy"
    met: bool = True  # Has meteorological data
    dart: bool = False  # Tsunami detection buoy
    owner: str = ""
    coops_id: str | None = None


class NDBCObservation(Record):
    """Latest buoy observation. Wind in m/s, pressure in hPa, temps in C."""

    station_id: str
    timestamp: Timestamp = None
    wind_dir: FiniteFloat = None
    wind_speed: FiniteFloat = None
    wind_gust: FiniteFloat = None
    wave_height: FiniteFloat = None
    dominant_wave_period: FiniteFloat = None
    avg_wave_period: FiniteFloat = None
    wave_direction: FiniteFloat = None
    pressure: FiniteFloat = None
    pressure_tendency: FiniteFloat = None
    air_temp: FiniteFloat = None
    water_temp: FiniteFloat = None
    dew_point: FiniteFloat = None
    visibility: FiniteFloat = None
    tide: FiniteFloat = None


class TideStation(Record):
    id: str
    name: str = ""
    lat: float = 0.0
    lon: float = 0.0
    state: str | None = None
    type: str = "tide"


class TideObservation(Record):
    station_id: str
    timestamp: Timestamp = None
    water_level: FiniteFloat = None  # feet above MLLW
    sigma: FiniteFloat = None
    station_name: str = ""


class MarineForecastPeriod(Record):
    number: int
    name: str
    start_time: Timestamp = None
    end_time: Timestamp = None
    detailed_forecast: str = ""
    wind_speed: str | None = None
    wind_direction: str | None = None
    wave_height: str | None = None


class MarineForecast(Record):
    zone_id: str
    zone_name: str = ""
    updated: Timestamp = None
    periods: tuple[MarineForecastPeriod, ...] = ()


class MarineAlert(Record):
    id: str
    event: str
    severity: str = "Unknown"  # Extreme, Severe, Moderate, Minor, Unknown
    urgency: str = "Unknown"
    headline: str = ""
    description: str = ""
    instruction: str | None = None
    onset: Timestamp = None
    expires: Timestamp = None
    sender_name: str = ""
    affected_zones: tuple[str, ...] = ()


class SubscribedZone(Record):
    id: str
    name: str = ""
    type: str = "coastal"  # coastal, offshore
    is_great_lakes: bool = False


class WeatherAlertSettings(Record):
    small_craft_advisory: bool = True
    gale_warning: bool = True
    storm_warning: bool = True
    pressure_drop: bool = True
    pressure_drop_threshold: float = Field(4.0, ge=0.0)  # hPa over the lookback


class PressureReading(Record):
    timestamp: UtcDatetime
    pressure: float  # hPa
    station_id: str


class WindReading(Record):
    timestamp: UtcDatetime
    wind_speed: float  # m/s
    station_id: str
