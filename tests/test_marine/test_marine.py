"""Tests for NOAA parsers, cache-aware refresh and hazard monitoring."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
import structlog

from conftest import FakeClock
from floatplan.cache.validity import CacheTtls
from floatplan.config.schema import ConnectivityConfig, SourcesConfig
from floatplan.history.sensors import SensorHistory
from floatplan.marine.hazards import AlertCondition, HazardKind, HazardMonitor, should_notify_for_alert
from floatplan.marine.refresh import MarineRefresher
from floatplan.marine.sources import MarineDataSource, NoaaMarineSource
from floatplan.models.marine import (
    MarineAlert,
    MarineForecast,
    NDBCObservation,
    NDBCStation,
    SubscribedZone,
    TideStation,
    WeatherAlertSettings,
)
from floatplan.resilience.health import HealthTracker
from floatplan.store.store import StateStore
from floatplan.sync.connectivity import ConnectivityMonitor

REALTIME2 = """\
#YY  MM DD hh mm WDIR WSPD GST  WVHT   DPD   APD MWD   PRES  ATMP  WTMP  DEWP  VIS PTDY  TIDE
#yr  mo dy hr mn degT m/s  m/s     m   sec   sec degT   hPa  degC  degC  degC  nmi  hPa    ft
2026 06 01 11 50 290  7.0  9.0   1.4     9   6.1 285 1012.4  14.2  15.1    MM   MM -1.2    MM
2026 06 01 11 40 280  6.5  8.5   1.3     9   6.0 280 1012.6  14.1  15.1    MM   MM   MM    MM
"""

STATION_XML = """<?xml version="1.0" encoding="UTF-8"?>
<stations created="2026-06-01T12:00:00UTC" count="4">
  <station id="46025" lat="33.755" lon="-119.045" name="Santa Monica Basin" owner="NDBC" type="buoy" met="y" currents="n" waterquality="n" dart="n"/>
  <station id="9410840" lat="34.008" lon="-118.500" name="9410840 - Santa Monica, CA" owner="NOS" type="fixed" met="y" currents="n" waterquality="n" dart="n"/>
  <station id="32ST0" lat="-19.713" lon="-85.585" name="Stratus" owner="WHOI" type="buoy" met="n" currents="n" waterquality="n" dart="n"/>
  <station id="00000" lat="0" lon="0" name="Nowhere" owner="NDBC" type="buoy" met="y" currents="n" waterquality="n" dart="n"/>
</stations>
"""

ALERTS = {
    "features": [
        {
            "id": "https://api.weather.gov/alerts/urn:1",
            "properties": {
                "id": "urn:1",
                "event": "Gale Warning",
                "severity": "Severe",
                "urgency": "Expected",
                "headline": "Gale Warning issued June 1",
                "description": "West winds 35 kt.",
                "onset": "2026-06-01T10:00:00-07:00",
                "expires": "2026-06-02T03:00:00-07:00",
                "senderName": "NWS Los Angeles CA",
                "affectedZones": ["https://api.weather.gov/zones/forecast/PZZ655"],
            },
        },
        {"id": "urn:2", "properties": {"id": "urn:2", "event": "Heat Advisory", "severity": "Moderate"}},
    ],
}

FORECAST = {
    "properties": {
        "zone": "https://api.weather.gov/zones/forecast/PZZ655",
        "updated": "2026-06-01T09:15:00+00:00",
        "periods": [
            {"number": 1, "name": "Today", "detailedForecast": "W wind 15 to 20 kt. Wind waves 3 to 5 ft."},
            {"number": 2, "name": "Tonight", "detailedForecast": "W wind 10 kt. Seas 2 ft."},
        ],
    },
}


class TestParsers:
    def test_parse_realtime2_first_row(self) -> None:
        obs = NoaaMarineSource.parse_realtime2(REALTIME2, "46025")
        assert obs is not None
        assert obs.timestamp == datetime(2026, 6, 1, 11, 50, tzinfo=timezone.utc)
        assert obs.wind_speed == 7.0
        assert obs.pressure == 1012.4
        assert obs.pressure_tendency == -1.2

    def test_parse_realtime2_missing_markers(self) -> None:
        obs = NoaaMarineSource.parse_realtime2(REALTIME2, "46025")
        assert obs.dew_point is None
        assert obs.visibility is None
        assert obs.tide is None

    def test_parse_realtime2_no_data(self) -> None:
        assert NoaaMarineSource.parse_realtime2("#YY MM DD hh mm WSPD\n", "46025") is None

    def test_parse_station_xml(self) -> None:
        stations = NoaaMarineSource.parse_station_xml(STATION_XML)
        assert [s.id for s in stations] == ["46025", "9410840"]
        assert stations[0].coops_id is None
        assert stations[1].coops_id == "9410840"

    def test_parse_alerts_keeps_marine_events(self) -> None:
        alerts = NoaaMarineSource.parse_alerts(ALERTS, "PZZ655")
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.id == "urn:1"
        assert alert.event == "Gale Warning"
        assert alert.expires == datetime(2026, 6, 2, 10, 0, tzinfo=timezone.utc)
        assert alert.sender_name == "NWS Los Angeles CA"

    def test_parse_forecast(self) -> None:
        forecast = NoaaMarineSource.parse_forecast(FORECAST, "PZZ655")
        assert forecast is not None
        assert forecast.zone_name == "PZZ655"
        assert len(forecast.periods) == 2
        assert forecast.periods[0].wave_height == "3 to 5 ft"
        assert forecast.periods[1].wave_height is None

    def test_parse_forecast_without_periods(self) -> None:
        assert NoaaMarineSource.parse_forecast({"properties": {}}, "PZZ655") is None

    def test_parse_water_level(self) -> None:
        data = {
            "metadata": {"id": "9410840", "name": "Santa Monica"},
            "data": [
                {"t": "2026-06-01 11:48", "v": "2.913", "s": "0.003"},
                {"t": "2026-06-01 11:54", "v": "2.951", "s": "0.004"},
            ],
        }
        obs = NoaaMarineSource.parse_water_level(data, "9410840")
        assert obs is not None
        assert obs.water_level == 2.951
        assert obs.timestamp == datetime(2026, 6, 1, 11, 54, tzinfo=timezone.utc)
        assert obs.station_name == "Santa Monica"

    def test_parse_water_level_error(self) -> None:
        assert NoaaMarineSource.parse_water_level({"error": {"message": "No data"}}, "1") is None

    def test_parse_tide_stations(self) -> None:
        data = {"stations": [
            {"id": "9410840", "name": "Santa Monica", "lat": 34.008, "lng": -118.5, "state": "CA"},
            {"id": "0", "name": "Bad", "lat": 0, "lng": 0},
        ]}
        stations = NoaaMarineSource.parse_tide_stations(data)
        assert [s.id for s in stations] == ["9410840"]


@pytest.mark.asyncio
class TestNoaaMarineSource:
    async def test_fetch_observation_404_is_none(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        source = NoaaMarineSource(SourcesConfig(), client=client)
        assert await source.fetch_observation("99999") is None
        await source.close()

    async def test_fetch_alerts_dedupes_and_sorts(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            zone = request.url.path.rsplit("/", 1)[-1]
            minor = {"id": f"minor-{zone}", "properties": {
                "id": "minor-shared", "event": "Small Craft Advisory", "severity": "Minor",
            }}
            return httpx.Response(200, json={"features": [minor, ALERTS["features"][0]]})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = NoaaMarineSource(SourcesConfig(), client=client)
        alerts = await source.fetch_alerts(["PZZ655", "PZZ650"])
        assert [a.id for a in alerts] == ["urn:1", "minor-shared"]
        await source.close()


def _source() -> AsyncMock:
    source = AsyncMock(spec=MarineDataSource)
    source.fetch_stations.return_value = [NDBCStation(id="46025")]
    source.fetch_tide_stations.return_value = [TideStation(id="9410840")]
    source.fetch_alerts.return_value = []
    source.fetch_forecast.return_value = MarineForecast(zone_id="PZZ655")
    source.fetch_observation.return_value = None
    return source


@pytest.mark.asyncio
class TestMarineRefresher:
    async def test_fresh_cache_skips_fetch(self, store: StateStore, clock: FakeClock) -> None:
        source = _source()
        refresher = MarineRefresher(store, source)

        assert await refresher.refresh_stations() is True
        clock.advance(hours=23)
        assert await refresher.refresh_stations() is False
        clock.advance(hours=1)
        assert await refresher.refresh_stations() is True
        assert source.fetch_stations.await_count == 2

    async def test_force_bypasses_cache(self, store: StateStore) -> None:
        source = _source()
        refresher = MarineRefresher(store, source)
        await refresher.refresh_stations()
        assert await refresher.refresh_stations(force=True) is True
        assert source.fetch_stations.await_count == 2

    async def test_failure_leaves_cache_untouched(self, store: StateStore, clock: FakeClock) -> None:
        source = _source()
        refresher = MarineRefresher(store, source)
        await refresher.refresh_stations()
        fetched_at = store.read().ndbc_stations_last_fetch

        clock.advance(hours=25)
        source.fetch_stations.side_effect = OSError("network down")
        assert await refresher.refresh_stations() is False
        assert store.read().ndbc_stations_last_fetch == fetched_at
        assert [s.id for s in store.read().ndbc_stations] == ["46025"]

    async def test_timeout_leaves_cache_untouched(self, store: StateStore) -> None:
        async def slow() -> list[NDBCStation]:
            await asyncio.sleep(1.0)
            return []

        source = _source()
        source.fetch_stations.side_effect = slow
        health = HealthTracker()
        refresher = MarineRefresher(store, source, fetch_timeout=0.01, health=health)

        assert await refresher.refresh_stations() is False
        assert store.read().ndbc_stations_last_fetch is None
        assert health.get("ndbc").last_error == "timeout"

    async def test_observation_feeds_history(self, store: StateStore, clock: FakeClock) -> None:
        source = _source()
        source.fetch_observation.return_value = NDBCObservation(
            station_id="46025", timestamp=clock.now, wind_speed=6.0, pressure=1011.0,
        )
        history = SensorHistory(store)
        refresher = MarineRefresher(store, source, history=history)

        obs = await refresher.refresh_observation("46025")
        assert obs is not None
        assert store.read().ndbc_observations["46025"].pressure == 1011.0
        assert len(history.pressure_readings("46025")) == 1
        assert len(history.wind_readings("46025")) == 1

    async def test_alerts_need_subscribed_zones(self, store: StateStore) -> None:
        source = _source()
        refresher = MarineRefresher(store, source)
        assert await refresher.refresh_alerts() is False
        source.fetch_alerts.assert_not_awaited()

        store.add_subscribed_zone(SubscribedZone(id="PZZ655"))
        assert await refresher.refresh_alerts() is True
        source.fetch_alerts.assert_awaited_once_with(["PZZ655"])

    async def test_refresh_all_offline(self, store: StateStore) -> None:
        source = _source()
        connectivity = ConnectivityMonitor(ConnectivityConfig(assume_online=False))
        refresher = MarineRefresher(store, source, connectivity=connectivity)
        report = await refresher.refresh_all()
        assert report.offline is True
        source.fetch_stations.assert_not_awaited()

    async def test_single_refreshes_stay_local_when_offline(self, store: StateStore, clock: FakeClock) -> None:
        source = _source()
        store.add_subscribed_zone(SubscribedZone(id="PZZ655"))
        cached = NDBCObservation(station_id="46025", timestamp=clock.now, pressure=1012.0)
        store.set_ndbc_observation("46025", cached)
        fetched_at = store.read().ndbc_observations_last_fetch["46025"]
        clock.advance(hours=2)
        connectivity = ConnectivityMonitor(ConnectivityConfig(assume_online=False))
        health = HealthTracker()
        refresher = MarineRefresher(store, source, connectivity=connectivity, health=health)

        assert await refresher.refresh_stations(force=True) is False
        assert await refresher.refresh_tide_stations() is False
        assert await refresher.refresh_observation("46025") == cached
        assert await refresher.refresh_tide_observation("9410840") is None
        assert await refresher.refresh_alerts() is False
        assert await refresher.refresh_forecast("PZZ655") is None

        for method in (
            source.fetch_stations, source.fetch_tide_stations, source.fetch_observation,
            source.fetch_tide_observation, source.fetch_alerts, source.fetch_forecast,
        ):
            method.assert_not_called()
        assert store.read().ndbc_observations_last_fetch["46025"] == fetched_at
        assert store.read().ndbc_stations_last_fetch is None
        assert health.unhealthy() == []

    async def test_refresh_all_tags_log_context(self, store: StateStore) -> None:
        seen: list[dict] = []

        async def stations() -> list[NDBCStation]:
            seen.append(structlog.contextvars.get_contextvars())
            return []

        source = _source()
        source.fetch_stations.side_effect = stations
        await MarineRefresher(store, source).refresh_all(force=True)

        assert seen == [{"refresh": "marine", "forced": True}]
        assert structlog.contextvars.get_contextvars() == {}

    async def test_refresh_all_great_lakes_skips_tides(self, store: StateStore) -> None:
        source = _source()
        store.set_is_great_lakes_user(True)
        store.add_subscribed_zone(SubscribedZone(id="LMZ740", is_great_lakes=True))
        refresher = MarineRefresher(store, source, ttls=CacheTtls())

        report = await refresher.refresh_all()

        source.fetch_tide_stations.assert_not_awaited()
        assert "ndbc_stations" in report.refreshed
        assert "forecast:LMZ740" in report.refreshed
        assert "LMZ740" in store.read().cached_forecasts


class TestAlertSettings:
    def test_matching_events(self) -> None:
        settings = WeatherAlertSettings()
        assert should_notify_for_alert(MarineAlert(id="1", event="Small Craft Advisory"), settings)
        assert should_notify_for_alert(MarineAlert(id="2", event="Gale Warning"), settings)
        assert should_notify_for_alert(MarineAlert(id="3", event="Storm Warning"), settings)
        assert should_notify_for_alert(MarineAlert(id="4", event="Hurricane Force Wind Warning"), settings)
        assert not should_notify_for_alert(MarineAlert(id="5", event="Marine Weather Statement"), settings)

    def test_disabled_category(self) -> None:
        settings = WeatherAlertSettings(gale_warning=False)
        assert not should_notify_for_alert(MarineAlert(id="1", event="Gale Warning"), settings)


@pytest.mark.asyncio
class TestHazardMonitor:
    def _seed_pressure_drop(self, store: StateStore, clock: FakeClock) -> SensorHistory:
        history = SensorHistory(store)
        store.set_monitored_buoy_id("46025")
        start = clock.now
        for hours, hpa in ((0, 1013.0), (1, 1010.0), (2, 1008.0)):
            clock.now = start + timedelta(hours=hours)
            history.record_observation("46025", NDBCObservation(
                station_id="46025", timestamp=clock.now, pressure=hpa,
            ))
        return history

    async def test_pressure_drop_dispatched_once(self, store: StateStore, clock: FakeClock) -> None:
        history = self._seed_pressure_drop(store, clock)
        dispatched: list[AlertCondition] = []

        async def dispatcher(condition: AlertCondition) -> None:
            dispatched.append(condition)

        monitor = HazardMonitor(store, history, dispatcher)
        raised = await monitor.update()
        assert [c.kind for c in raised] == [HazardKind.PRESSURE_DROP]
        assert "5.0 hPa" in raised[0].message

        assert await monitor.update() == []
        assert len(dispatched) == 1
        assert monitor.state.transition_count == 1

    async def test_cleared_condition_can_fire_again(self, store: StateStore, clock: FakeClock) -> None:
        history = self._seed_pressure_drop(store, clock)
        monitor = HazardMonitor(store, history)
        await monitor.update()

        clock.advance(hours=6)
        assert monitor.evaluate() == []
        await monitor.update()
        assert monitor.state.active == {}
        assert monitor.state.transition_count == 2

    async def test_pressure_alert_respects_settings(self, store: StateStore, clock: FakeClock) -> None:
        history = self._seed_pressure_drop(store, clock)
        store.set_weather_alert_settings(WeatherAlertSettings(pressure_drop=False))
        assert HazardMonitor(store, history).evaluate() == []

        store.set_weather_alert_settings(WeatherAlertSettings(pressure_drop_threshold=6.0))
        assert HazardMonitor(store, history).evaluate() == []

    async def test_expired_alerts_ignored(self, store: StateStore, clock: FakeClock) -> None:
        store.set_cached_alerts([
            MarineAlert(id="live", event="Gale Warning", expires=clock.now + timedelta(hours=2)),
            MarineAlert(id="gone", event="Gale Warning", expires=clock.now - timedelta(minutes=1)),
        ])
        monitor = HazardMonitor(store, SensorHistory(store))
        assert [c.key for c in monitor.evaluate()] == ["live"]

    async def test_dispatcher_error_is_contained(self, store: StateStore) -> None:
        store.set_cached_alerts([MarineAlert(id="a1", event="Storm Warning", severity="Extreme")])
        dispatcher = AsyncMock(side_effect=RuntimeError("push service down"))
        monitor = HazardMonitor(store, SensorHistory(store), dispatcher)

        raised = await monitor.update()

        assert len(raised) == 1
        dispatcher.assert_awaited_once()
