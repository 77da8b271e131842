"""
Weather Data Types

Core weather data types used throughout the pipeline.
These types are used for feed decoding and database persistence.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
import json
import math


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Naive values are interpreted as UTC. A trailing 'Z' is accepted.

    Raises:
        ValueError: If the string is not ISO-8601 or falls outside the
            representable UTC range
        TypeError: If value is neither a string nor a datetime
    """
    if isinstance(value, datetime):
        timestamp = value
    elif isinstance(value, str):
        timestamp = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")

    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    try:
        return timestamp.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"Timestamp out of range: {value!r}") from e


@dataclass(frozen=True)
class WeatherReading:
    """Single temperature observation from the weather feed"""
    city: str
    timestamp: datetime
    temperature: float
    windspeed: Optional[float] = None
    winddirection: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "city": self.city,
            "timestamp": self.timestamp.isoformat(),
            "temperature": self.temperature,
            "windspeed": self.windspeed,
            "winddirection": self.winddirection,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "WeatherReading":
        """Create WeatherReading from a decoded feed message"""
        if not isinstance(data, dict):
            raise TypeError(f"Expected JSON object, got {type(data).__name__}")

        city = data["city"]
        if not isinstance(city, str) or not city:
            raise ValueError(f"Invalid city: {city!r}")

        temperature = data["temperature"]
        # bool is an int subclass; reject it explicitly
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            raise ValueError(f"Invalid temperature: {temperature!r}")
        try:
            temperature = float(temperature)
        except OverflowError as e:
            raise ValueError("Temperature out of range") from e
        if not math.isfinite(temperature):
            raise ValueError(f"Non-finite temperature: {temperature}")

        return cls(
            city=city,
            timestamp=parse_timestamp(data["timestamp"]),
            temperature=temperature,
            windspeed=data.get("windspeed"),
            winddirection=data.get("winddirection"),
        )

    @classmethod
    def from_json(cls, json_str: Union[str, bytes]) -> "WeatherReading":
        """Deserialize from JSON string"""
        if isinstance(json_str, bytes):
            json_str = json_str.decode("utf-8")
        return cls.from_dict(json.loads(json_str))


@dataclass(frozen=True)
class HourlyBar:
    """Hourly open/high/low/close temperature rollup for a city"""
    city: str
    hour_start: datetime
    open: float
    high: float
    low: float
    close: float
    reading_count: int = 0  # Number of readings that formed this bar

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "city": self.city,
            "timestamp": self.hour_start.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "reading_count": self.reading_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HourlyBar":
        """Create HourlyBar from dictionary"""
        return cls(
            city=data["city"],
            hour_start=parse_timestamp(data["timestamp"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            reading_count=data.get("reading_count", 0),
        )
