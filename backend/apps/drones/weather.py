# apps/drones/weather.py
import logging
import requests
from django.conf import settings
from django.utils import timezone

from apps.utils.resilience import CircuitBreaker, CircuitBreakerOpenException

logger = logging.getLogger(__name__)


class WeatherCheckError(Exception):
    pass


class WeatherVerdict:
    """
    Safety verdict for one coordinate. An errored verdict is always unsafe.
    """
    def __init__(self, wind_speed=None, rain_probability=None, visibility=None,
                 weather_condition=None, is_safe=False, checked_at=None, error=None):
        self.wind_speed = wind_speed
        self.rain_probability = rain_probability
        self.visibility = visibility
        self.weather_condition = weather_condition
        self.is_safe = is_safe and error is None
        self.checked_at = checked_at or timezone.now()
        self.error = error

    @classmethod
    def failed(cls, error):
        return cls(is_safe=False, error=str(error))

    @property
    def errored(self):
        return self.error is not None

    def to_dict(self):
        return {
            "wind_speed": self.wind_speed,
            "rain_probability": self.rain_probability,
            "visibility": self.visibility,
            "weather_condition": self.weather_condition,
            "is_safe": self.is_safe,
            "checked_at": self.checked_at.isoformat(),
            "error": self.error,
        }


def evaluate(wind_speed, rain_probability, visibility, weather_condition):
    """
    Applies the configured flight thresholds to raw readings.
    """
    unsafe_conditions = set(settings.DRONE_UNSAFE_WEATHER_CONDITIONS)
    return (
        wind_speed <= settings.DRONE_MAX_WIND_SPEED
        and rain_probability <= settings.DRONE_MAX_RAIN_PROBABILITY
        and visibility >= settings.DRONE_MIN_VISIBILITY
        and weather_condition not in unsafe_conditions
    )


@CircuitBreaker("openweathermap", failure_threshold=5, recovery_timeout=60)
def _fetch_forecast(lat, lng):
    response = requests.get(
        settings.WEATHER_API_URL,
        params={
            "lat": lat,
            "lon": lng,
            "appid": settings.WEATHER_API_KEY,
            "units": "metric",
        },
        timeout=settings.WEATHER_API_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


class OpenWeatherGate:
    """
    Weather Gate backed by the OpenWeatherMap 5 day / 3 hour forecast.
    Only the first forecast slot is considered.
    """

    def check(self, lat, lng):
        if not settings.WEATHER_API_KEY:
            logger.error("Weather check skipped: WEATHER_API_KEY is not configured")
            return WeatherVerdict.failed("Weather API key not configured")

        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            return WeatherVerdict.failed(f"Invalid coordinates: {lat}, {lng}")

        try:
            payload = _fetch_forecast(lat, lng)
            return self._parse(payload)
        except CircuitBreakerOpenException as e:
            return WeatherVerdict.failed(e)
        except requests.RequestException as e:
            logger.warning(f"Weather API request failed for ({lat}, {lng}): {e}")
            return WeatherVerdict.failed(f"Weather API failure: {e}")
        except (WeatherCheckError, ValueError) as e:
            logger.warning(f"Weather API returned unusable payload for ({lat}, {lng}): {e}")
            return WeatherVerdict.failed(e)

    @staticmethod
    def _parse(payload):
        try:
            slot = payload["list"][0]
            wind_speed = float(slot["wind"]["speed"])
            rain_probability = round(float(slot.get("pop", 0)) * 100, 1)
            visibility = int(slot.get("visibility", 10000))
            weather_condition = slot["weather"][0]["main"]
        except (KeyError, IndexError, TypeError) as e:
            raise WeatherCheckError(f"Malformed forecast payload: {e!r}")

        return WeatherVerdict(
            wind_speed=wind_speed,
            rain_probability=rain_probability,
            visibility=visibility,
            weather_condition=weather_condition,
            is_safe=evaluate(wind_speed, rain_probability, visibility, weather_condition),
        )
