"""Marine data providers: NDBC buoys, CO-OPS tide gauges, NWS alerts/forecasts.

Sources:
  - NDBC station list: https://www.ndbc.noaa.gov/activestations.xml
  - NDBC latest obs:   https://www.ndbc.noaa.gov/data/realtime2/{station}.txt
  - CO-OPS stations:   https://api.tidesandcurrents.noaa.gov/mdapi/prod/webapi/stations.json
  - CO-OPS water level: https://api.tidesandcurrents.noaa.gov/api/prod/datagetter
  - NWS alerts:        https://api.weather.gov/alerts/active/zone/{zone}
  - NWS zone forecast: https://api.weather.gov/zones/forecast/{zone}/forecast
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from floatplan.config.schema import SourcesConfig
from floatplan.exceptions import RemoteError
from floatplan.models._base import coerce_finite
from floatplan.models.marine import (
    MarineAlert,
    MarineForecast,
    MarineForecastPeriod,
    NDBCObservation,
    NDBCStation,
    TideObservation,
    TideStation,
)
from floatplan.timeutil import parse_timestamp

logger = logging.getLogger(__name__)

MARINE_ALERT_EVENTS = (
    "Small Craft Advisory",
    "Small Craft Advisory for Hazardous Seas",
    "Small Craft Advisory for Rough Bar",
    "Small Craft Advisory for Winds",
    "Gale Warning",
    "Gale Watch",
    "Storm Warning",
    "Storm Watch",
    "Hurricane Force Wind Warning",
    "Hurricane Force Wind Watch",
    "Special Marine Warning",
    "Marine Weather Statement",
)

SEVERITY_ORDER = {"Extreme": 0, "Severe": 1, "Moderate": 2, "Minor": 3, "Unknown": 4}

# realtime2 column -> NDBCObservation field
NDBC_COLUMNS = {
    "WDIR": "wind_dir",
    "WSPD": "wind_speed",
    "GST": "wind_gust",
    "WVHT": "wave_height",
    "DPD": "dominant_wave_period",
    "APD": "avg_wave_period",
    "MWD": "wave_direction",
    "PRES": "pressure",
    "PTDY": "pressure_tendency",
    "ATMP": "air_temp",
    "WTMP": "water_temp",
    "DEWP": "dew_point",
    "VIS": "visibility",
    "TIDE": "tide",
}

_COOPS_ID = re.compile(r"^(\d{7})\s*-")
_WAVES = re.compile(r"waves?\s+(\d+\s*(?:to\s*\d+)?)\s*(?:feet|ft)", re.IGNORECASE)


class MarineDataSource(ABC):
    """Abstract base for marine data providers.

    ``fetch_observation`` and ``fetch_tide_observation`` return ``None``
    when the station has no current data; every method raises on
    transport failure so the caller can leave its cache untouched.
    """

    @abstractmethod
    async def fetch_stations(self) -> list[NDBCStation]:
        ...

    @abstractmethod
    async def fetch_observation(self, station_id: str) -> NDBCObservation | None:
        ...

    @abstractmethod
    async def fetch_tide_stations(self) -> list[TideStation]:
        ...

    @abstractmethod
    async def fetch_tide_observation(self, station_id: str) -> TideObservation | None:
        ...

    @abstractmethod
    async def fetch_alerts(self, zone_ids: list[str]) -> list[MarineAlert]:
        ...

    @abstractmethod
    async def fetch_forecast(self, zone_id: str) -> MarineForecast | None:
        ...


class NoaaMarineSource(MarineDataSource):
    """NOAA/NWS public feeds. No authentication; NWS requires a User-Agent."""

    def __init__(self, config: SourcesConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or SourcesConfig()
        self._client = client or httpx.AsyncClient(
            timeout=self._config.timeout_seconds,
            headers={"User-Agent": self._config.user_agent},
        )

    async def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.get(url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteError(f"GET {url} failed: {e}", endpoint=url) from e
        return resp

    @staticmethod
    def _raise_for_status(resp: httpx.Response, url: str) -> None:
        if not resp.is_success:
            raise RemoteError(
                f"GET {url} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                endpoint=url,
            )

    # ── NDBC ──────────────────────────────────────────────

    async def fetch_stations(self) -> list[NDBCStation]:
        url = f"{self._config.ndbc_base_url}/activestations.xml"
        resp = await self._get(url)
        self._raise_for_status(resp, url)
        stations = self.parse_station_xml(resp.text)
        logger.info("NDBC stations fetched: %d with met data", len(stations))
        return stations

    async def fetch_observation(self, station_id: str) -> NDBCObservation | None:
        url = f"{self._config.ndbc_base_url}/data/realtime2/{station_id}.txt"
        resp = await self._get(url)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, url)
        return self.parse_realtime2(resp.text, station_id)

    @staticmethod
    def parse_station_xml(xml_text: str) -> list[NDBCStation]:
        """Stations with meteorological data from activestations.xml."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise RemoteError(f"NDBC station list is not valid XML: {e}") from e

        stations = []
        for s in root.iter("station"):
            if s.get("met") != "y":
                continue
            lat = coerce_finite(s.get("lat")) or 0.0
            lon = coerce_finite(s.get("lon")) or 0.0
            if lat == 0.0 and lon == 0.0:
                continue
            name = s.get("name") or s.get("id") or "Unknown"
            match = _COOPS_ID.match(name)
            station_type = s.get("type") or "buoy"
            stations.append(NDBCStation(
                id=s.get("id", ""),
                name=name,
                lat=lat,
                lon=lon,
                type=station_type,
                met=True,
                dart=s.get("dart") == "y" or "dart" in station_type.lower(),
                owner=s.get("owner") or "NDBC",
                coops_id=match.group(1) if match else None,
            ))
        return stations

    @staticmethod
    def parse_realtime2(text: str, station_id: str) -> NDBCObservation | None:
        """Newest row of an NDBC realtime2 text file.

        The first five columns are YY MM DD hh mm; "MM" marks a missing value.
        """
        header: list[str] = []
        row: list[str] = []
        for line in text.splitlines():
            if line.startswith("#YY"):
                header = line[1:].split()
            elif line.strip() and not line.startswith("#"):
                row = line.split()
                break
        if not header or len(row) < 5:
            return None

        try:
            year, month, day, hour, minute = (int(v) for v in row[:5])
            if year < 100:
                year += 2000
            timestamp = datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
        except ValueError:
            timestamp = None

        values = {
            NDBC_COLUMNS[col.upper()]: value
            for col, value in zip(header[5:], row[5:])
            if col.upper() in NDBC_COLUMNS
        }
        return NDBCObservation(station_id=station_id, timestamp=timestamp, **values)

    # ── CO-OPS ────────────────────────────────────────────

    async def fetch_tide_stations(self) -> list[TideStation]:
        url = f"{self._config.coops_metadata_url}/stations.json"
        resp = await self._get(url, params={"type": "waterlevels"})
        self._raise_for_status(resp, url)
        stations = self.parse_tide_stations(resp.json())
        logger.info("CO-OPS tide stations fetched: %d", len(stations))
        return stations

    async def fetch_tide_observation(self, station_id: str) -> TideObservation | None:
        now = datetime.now(timezone.utc)
        params = {
            "begin_date": (now - timedelta(hours=1)).strftime("%Y%m%d %H:%M"),
            "end_date": now.strftime("%Y%m%d %H:%M"),
            "station": station_id,
            "product": "water_level",
            "datum": "MLLW",
            "time_zone": "gmt",
            "units": "english",
            "format": "json",
        }
        url = self._config.coops_data_url
        resp = await self._get(url, params=params)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, url)
        return self.parse_water_level(resp.json(), station_id)

    @staticmethod
    def parse_tide_stations(data: dict) -> list[TideStation]:
        stations = []
        for s in data.get("stations") or []:
            lat = coerce_finite(s.get("lat"))
            lon = coerce_finite(s.get("lng"))
            if lat is None or lon is None or (lat == 0.0 and lon == 0.0):
                continue
            stations.append(TideStation(
                id=str(s.get("id", "")),
                name=s.get("name") or str(s.get("id", "")),
                lat=lat,
                lon=lon,
                state=s.get("state") or None,
            ))
        return stations

    @staticmethod
    def parse_water_level(data: dict, station_id: str) -> TideObservation | None:
        if data.get("error"):
            logger.debug("CO-OPS error for %s: %s", station_id, data["error"].get("message"))
            return None
        rows = data.get("data") or []
        if not rows:
            return None
        latest = rows[-1]
        # CO-OPS reports "YYYY-MM-DD HH:MM" in GMT
        timestamp = parse_timestamp(str(latest.get("t", "")).replace(" ", "T"))
        return TideObservation(
            station_id=station_id,
            timestamp=timestamp,
            water_level=latest.get("v"),
            sigma=latest.get("s"),
            station_name=(data.get("metadata") or {}).get("name") or station_id,
        )

    # ── NWS ───────────────────────────────────────────────

    async def fetch_alerts(self, zone_ids: list[str]) -> list[MarineAlert]:
        """Active marine alerts across zones, deduplicated, most severe first."""
        seen: set[str] = set()
        alerts: list[MarineAlert] = []
        for zone_id in zone_ids:
            url = f"{self._config.nws_base_url}/alerts/active/zone/{zone_id}"
            resp = await self._get(url, headers={"Accept": "application/geo+json"})
            if resp.status_code == 404:
                continue
            self._raise_for_status(resp, url)
            for alert in self.parse_alerts(resp.json(), zone_id):
                if alert.id not in seen:
                    seen.add(alert.id)
                    alerts.append(alert)
        alerts.sort(key=lambda a: SEVERITY_ORDER.get(a.severity, SEVERITY_ORDER["Unknown"]))
        return alerts

    async def fetch_forecast(self, zone_id: str) -> MarineForecast | None:
        url = f"{self._config.nws_base_url}/zones/forecast/{zone_id}/forecast"
        resp = await self._get(url, headers={"Accept": "application/geo+json"})
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, url)
        return self.parse_forecast(resp.json(), zone_id)

    @staticmethod
    def is_marine_event(event: str) -> bool:
        lowered = event.lower()
        return any(e.lower() in lowered or lowered in e.lower() for e in MARINE_ALERT_EVENTS)

    @staticmethod
    def parse_alerts(data: dict, zone_id: str) -> list[MarineAlert]:
        alerts = []
        for feature in data.get("features") or []:
            props = feature.get("properties") or {}
            event = props.get("event") or ""
            if not event or not NoaaMarineSource.is_marine_event(event):
                continue
            alerts.append(MarineAlert(
                id=props.get("id") or feature.get("id") or "",
                event=event,
                severity=props.get("severity") or "Unknown",
                urgency=props.get("urgency") or "Unknown",
                headline=props.get("headline") or event,
                description=props.get("description") or "",
                instruction=props.get("instruction"),
                onset=props.get("onset"),
                expires=props.get("expires"),
                sender_name=props.get("senderName") or "NWS",
                affected_zones=tuple(props.get("affectedZones") or (zone_id,)),
            ))
        return alerts

    @staticmethod
    def parse_forecast(data: dict, zone_id: str) -> MarineForecast | None:
        props = data.get("properties") or {}
        raw_periods = props.get("periods") or []
        if not raw_periods:
            return None
        periods = []
        for p in raw_periods:
            text = p.get("detailedForecast") or ""
            waves = _WAVES.search(text)
            periods.append(MarineForecastPeriod(
                number=p.get("number", len(periods) + 1),
                name=p.get("name", ""),
                detailed_forecast=text,
                wave_height=f"{waves.group(1)} ft" if waves else None,
            ))
        return MarineForecast(
            zone_id=zone_id,
            zone_name=props.get("zone", "").rsplit("/", 1)[-1] or zone_id,
            updated=props.get("updated"),
            periods=tuple(periods),
        )

    async def close(self) -> None:
        await self._client.aclose()
