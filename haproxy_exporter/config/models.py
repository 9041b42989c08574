"""Pydantic configuration models for the exporter."""

from pydantic import BaseModel, Field, field_validator
from typing import Optional

from ..utils.logger import LOG_LEVELS


class HAProxyConfig(BaseModel):
    """Where and how to scrape HAProxy."""
    scrape_uri: str = "http://localhost/;csv"
    ssl_verify: bool = True
    timeout_seconds: float = Field(default=5.0, gt=0)
    # None exports every server metric; "" exports none
    server_metric_fields: Optional[str] = None
    pid_file: str = ""

    @field_validator('scrape_uri')
    @classmethod
    def validate_scrape_uri(cls, v: str) -> str:
        """Reject empty URIs; the scheme is checked by the transport."""
        if not v.strip():
            raise ValueError('scrape_uri must not be empty')
        return v.strip()

    @field_validator('server_metric_fields', mode='before')
    @classmethod
    def coerce_field_list(cls, v):
        """Allow YAML lists as well as comma separated strings."""
        if isinstance(v, (list, tuple)):
            return ",".join(str(item) for item in v)
        if isinstance(v, int):
            return str(v)
        return v


class WebConfig(BaseModel):
    """Metrics HTTP endpoint configuration."""
    listen_address: str = ":9101"
    telemetry_path: str = "/metrics"

    @field_validator('listen_address')
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        """Require host:port with a numeric port."""
        host, sep, port = v.rpartition(':')
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError('listen_address must be host:port, e.g. ":9101"')
        return v

    @field_validator('telemetry_path')
    @classmethod
    def validate_telemetry_path(cls, v: str) -> str:
        """Telemetry path must be absolute and not the landing page."""
        if not v.startswith('/') or v == '/':
            raise ValueError('telemetry_path must start with "/" and not be "/"')
        return v

    @property
    def host(self) -> str:
        host = self.listen_address.rpartition(':')[0].strip('[]')
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.listen_address.rpartition(':')[2])


class LoggingConfig(BaseModel):
    """Log output configuration."""
    level: str = "INFO"

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f'level must be one of {", ".join(LOG_LEVELS)}')
        return v.upper()


class ExporterSystemConfig(BaseModel):
    """Root configuration model for the exporter."""
    haproxy: HAProxyConfig = Field(default_factory=HAProxyConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
