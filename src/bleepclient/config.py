"""Configuration loading and Pydantic models for bleepclient."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_ENDPOINT = "s3.amazonaws.com"
DEFAULT_PORT = 80
DEFAULT_SECURE_PORT = 443


class Credentials(BaseModel):
    """Access key pair used to sign every request."""

    model_config = ConfigDict(frozen=True)

    access_key: str = ""
    secret_key: str = Field(default="", repr=False)


class BucketConfig(BaseModel):
    """Where requests are sent."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = DEFAULT_ENDPOINT
    bucket: str = ""
    port: int = DEFAULT_PORT
    secure: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_port(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("port") is None:
            secure = bool(data.get("secure", False))
            data = {**data, "port": DEFAULT_SECURE_PORT if secure else DEFAULT_PORT}
        return data

    @property
    def scheme(self) -> str:
        return "https" if self.secure else "http"


class HttpConfig(BaseModel):
    """HTTP transport tuning."""

    timeout: float = 30.0


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: str = "INFO"
    format: str = "text"


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = False


class ClientConfig(BaseModel):
    """Top-level bleepclient configuration."""

    credentials: Credentials = Field(default_factory=Credentials)
    bucket: BucketConfig = Field(default_factory=BucketConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def _parse_credentials(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the credentials section from YAML data."""
    if data is None:
        return {}
    return {
        "access_key": data.get("access_key", ""),
        "secret_key": data.get("secret_key", ""),
    }


def _parse_bucket(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the s3 section from YAML data.

    The section is called ``s3`` in the file since it also carries the
    endpoint, port and scheme: s3.name -> bucket, s3.endpoint -> endpoint.
    """
    if data is None:
        return {}
    return {
        "bucket": data.get("name", ""),
        "endpoint": data.get("endpoint", DEFAULT_ENDPOINT),
        "port": data.get("port"),
        "secure": bool(data.get("secure", False)),
    }


def _parse_http(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the http section from YAML data."""
    if data is None:
        return {}
    return {"timeout": data.get("timeout", 30.0)}


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {"enabled": data.get("enabled", False)}


def load_config(path: Path) -> ClientConfig:
    """Load a ClientConfig from a YAML file.

    Missing values are left empty here; required fields are enforced when
    a Client is built from the config.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated ClientConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return ClientConfig(
        credentials=Credentials(**_parse_credentials(raw.get("credentials"))),
        bucket=BucketConfig(**_parse_bucket(raw.get("s3"))),
        http=HttpConfig(**_parse_http(raw.get("http"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )
