"""Monitor configuration."""

import os
from typing import ClassVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidMQTTURLException, UnsupportedMQTTURLException

ENV_PREFIX = "JOB_MONITOR_"


def parse_mqtt_url(url: str) -> tuple[str, int]:
    """Split ``mqtt://host:port`` into its broker host and port.

    Raises:
        UnsupportedMQTTURLException: scheme is not mqtt
        InvalidMQTTURLException: host or port missing or malformed
    """
    parsed = urlparse(url)
    if parsed.scheme != "mqtt":
        raise UnsupportedMQTTURLException(
            f"Unsupported MQTT URL scheme '{parsed.scheme}' in {url}; expected mqtt://"
        )
    try:
        port = parsed.port
    except ValueError as e:
        raise InvalidMQTTURLException(f"Invalid port in MQTT URL {url}: {e}") from e
    if not parsed.hostname or port is None:
        raise InvalidMQTTURLException(
            f"MQTT URL must be of the form mqtt://<host>:<port>, got {url}"
        )
    return parsed.hostname, port


class MonitorConfig(BaseModel):
    """Endpoints and timings for monitoring jobs on one backend.

    When ``mqtt_url`` is set, job events are pushed over the broker topic
    ``mqtt_topic``; otherwise over the server-sent event stream at
    ``stream_path``.
    """

    base_url: str = Field(description="backend root, e.g. https://api.example.com/finance")
    stream_path: str = "/logs/{job_id}"
    status_path: str = "/status/{job_id}"
    headers: dict[str, str] = Field(default_factory=dict)

    request_timeout: float = Field(10.0, gt=0)
    stream_read_timeout: float = Field(60.0, gt=0, description="max silence on the push stream")
    poll_interval: float = Field(2.0, gt=0)
    poll_max_duration: float = Field(300.0, gt=0)

    mqtt_url: str | None = None
    mqtt_topic: str = "jobs/{job_id}/events"

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    @field_validator("mqtt_url")
    @classmethod
    def _check_mqtt_url(cls, value: str | None) -> str | None:
        if value is not None:
            _ = parse_mqtt_url(value)
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")

    def stream_url(self, job_id: str) -> str:
        return self.base_url + self.stream_path.format(job_id=job_id)

    def status_url(self, job_id: str) -> str:
        return self.base_url + self.status_path.format(job_id=job_id)

    def topic(self, job_id: str) -> str:
        return self.mqtt_topic.format(job_id=job_id)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "MonitorConfig":
        """Build a config from ``JOB_MONITOR_*`` variables.

        ``JOB_MONITOR_BASE_URL`` is required. ``JOB_MONITOR_TOKEN``, when set,
        becomes a bearer Authorization header.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            if name == "headers":
                continue
            key = ENV_PREFIX + name.upper()
            if key in env:
                values[name] = env[key]

        token = env.get(ENV_PREFIX + "TOKEN")
        if token:
            values["headers"] = {"Authorization": f"Bearer {token}"}

        return cls.model_validate(values)
