import datetime

import pytest
import pytz

from models import EnvironmentalSnapshot, Location, UserProfile
from quest_store import InMemoryQuestStore

NOON_UTC = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=pytz.utc)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now=NOON_UTC):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self):
        return self.payload


class FakeSession:
    """Stands in for requests.Session; routes by URL suffix."""

    def __init__(self, weather=None, air=None, fail=()):
        self.weather = weather
        self.air = air
        self.fail = set(fail)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(url)
        axis = "air" if url.endswith("air_pollution") else "weather"
        if axis in self.fail:
            raise ConnectionError(f"{axis} provider unreachable")
        return FakeResponse(self.air if axis == "air" else self.weather)


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


class RecordingSink:
    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def __call__(self, notification):
        if self.error:
            raise self.error
        self.messages.append(notification)


def make_snapshot(**overrides):
    fields = {
        "temperature": 25.0,
        "feelsLike": 25.0,
        "humidity": 50.0,
        "weatherCondition": "Clouds",
        "windSpeed": 1.0,
        "aqi": 3,
        "pm2_5": 20.0,
        "pm10": 30.0,
        "timestamp": NOON_UTC,
        "timezoneOffset": 0,
    }
    fields.update(overrides)
    return EnvironmentalSnapshot(**fields)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryQuestStore()


@pytest.fixture
def profile():
    return UserProfile(id="user-1")


@pytest.fixture
def location():
    return Location(lat=28.61, lng=77.21)


@pytest.fixture
def heatwave_snapshot():
    return make_snapshot(temperature=45.0, feelsLike=48.0, humidity=50.0, aqi=2, pm2_5=10.0,
                         weatherCondition="Clear", windSpeed=0.0)


@pytest.fixture
def weather_payload():
    return {
        "main": {"temp": 31.2, "feels_like": 35.0, "humidity": 72},
        "weather": [{"main": "Rain", "description": "light rain"}],
        "wind": {"speed": 3.1},
        "timezone": 19800,
        "name": "Delhi",
        "dt": 1717243200,
    }


@pytest.fixture
def air_payload():
    return {"list": [{"main": {"aqi": 3}, "components": {"pm2_5": 41.5, "pm10": 60.2}}]}
