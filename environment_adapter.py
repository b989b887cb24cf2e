"""
Environmental adapter: turns OpenWeather current-weather and air-pollution responses into an
EnvironmentalSnapshot. Never raises to the caller; any axis that cannot be fetched, or comes back
out of range, is replaced with plausible synthetic readings.
"""

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import requests

from models import AirQualityReading, EnvironmentalSnapshot, Location, WeatherReading
from timezone_utils import estimate_utc_offset, from_unix_timestamp, utc_now

OPENWEATHER_WEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
OPENWEATHER_AIR_POLLUTION_URL = "https://api.openweathermap.org/data/2.5/air_pollution"

SYNTHETIC_CONDITIONS = ("Clear", "Clouds", "Haze")
SYNTHETIC_DESCRIPTIONS = {"Clear": "clear sky", "Clouds": "few clouds", "Haze": "haze"}


def normalize_weather(payload: dict) -> dict:
    """
    Maps an OpenWeather /weather response onto snapshot fields.

    Raises:
        KeyError, ValueError, pydantic.ValidationError: the payload is incomplete or out of range
    """
    main = payload["main"]
    condition = (payload.get("weather") or [{}])[0]
    reading = WeatherReading(
        temperature=main["temp"],
        feelsLike=main.get("feels_like"),
        humidity=main["humidity"],
        weatherCondition=condition.get("main") or "Clear",
        weatherDescription=condition.get("description"),
        windSpeed=(payload.get("wind") or {}).get("speed", 0.0),
        timezoneOffset=payload.get("timezone"),
        city=payload.get("name"),
    )
    fields = reading.model_dump()
    if payload.get("dt"):
        fields["timestamp"] = from_unix_timestamp(payload["dt"])
    return fields


def normalize_air_quality(payload: dict) -> dict:
    """Maps an OpenWeather /air_pollution response onto snapshot fields, validating the ranges."""
    reading = payload["list"][0]
    components = reading.get("components", {})
    return AirQualityReading(
        aqi=reading["main"]["aqi"],
        pm2_5=components.get("pm2_5", 0.0),
        pm10=components.get("pm10", 0.0),
    ).model_dump()


class EnvironmentalAdapter:
    """
    Fetches weather and air quality for a location concurrently.

    Args:
        api_key: OpenWeather key; without one the adapter serves synthetic data only
        timeout: Per-request timeout in seconds
        session: requests-compatible session (injectable for tests)
        rng: Random source for synthetic readings (seed it for deterministic output)
        clock: Returns the current aware UTC datetime
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = 5, session=None,
                 rng: Optional[random.Random] = None, clock: Callable = utc_now):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.rng = rng or random.Random()
        self.clock = clock

    def get_snapshot(self, location: Location) -> EnvironmentalSnapshot:
        weather, air_quality = None, None
        if self.api_key:
            with ThreadPoolExecutor(max_workers=2) as pool:
                weather_future = pool.submit(self._fetch_weather, location)
                air_future = pool.submit(self._fetch_air_quality, location)
                weather = self._result_or_none(weather_future, "weather", location)
                air_quality = self._result_or_none(air_future, "air quality", location)
        else:
            logging.info("No OpenWeather API key configured. Using synthetic environmental data.")

        is_synthetic = weather is None or air_quality is None
        fields = {"timestamp": self.clock()}
        fields.update(weather if weather is not None else self._synthetic_weather(location))
        fields.update(air_quality if air_quality is not None else self._synthetic_air_quality())
        snapshot = EnvironmentalSnapshot(isSynthetic=is_synthetic, **fields)
        logging.info(
            f"Snapshot for ({location.lat}, {location.lng}): {snapshot.temperature}°C, {snapshot.humidity}% humidity, "
            f"{snapshot.weatherCondition}, AQI {snapshot.aqi} (synthetic={is_synthetic})"
        )
        return snapshot

    def _fetch_weather(self, location: Location) -> dict:
        response = self.session.get(
            OPENWEATHER_WEATHER_URL,
            params={"lat": location.lat, "lon": location.lng, "appid": self.api_key, "units": "metric"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return normalize_weather(response.json())

    def _fetch_air_quality(self, location: Location) -> dict:
        response = self.session.get(
            OPENWEATHER_AIR_POLLUTION_URL,
            params={"lat": location.lat, "lon": location.lng, "appid": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return normalize_air_quality(response.json())

    @staticmethod
    def _result_or_none(future, axis: str, location: Location) -> Optional[dict]:
        try:
            return future.result()
        except Exception as e:
            logging.warning(f"Failed to fetch {axis} data for ({location.lat}, {location.lng}), using synthetic values. Error: {e}")
            return None

    def _synthetic_weather(self, location: Location) -> dict:
        condition = self.rng.choice(SYNTHETIC_CONDITIONS)
        return {
            "temperature": round(self.rng.uniform(25, 35), 1),
            "feelsLike": round(self.rng.uniform(28, 36), 1),
            "humidity": float(round(self.rng.uniform(60, 80))),
            "weatherCondition": condition,
            "weatherDescription": SYNTHETIC_DESCRIPTIONS[condition],
            "windSpeed": round(self.rng.uniform(0, 10), 1),
            # No provider offset; approximate local time from the longitude
            "timezoneOffset": estimate_utc_offset(location.lng),
        }

    def _synthetic_air_quality(self) -> dict:
        pm2_5 = round(self.rng.uniform(35, 55), 1)
        return {
            "aqi": self.rng.randint(2, 4),
            "pm2_5": pm2_5,
            "pm10": round(pm2_5 * 1.5, 1),
        }
