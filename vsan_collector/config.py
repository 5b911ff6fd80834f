# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from dotenv import load_dotenv
import yaml
import os
import logging

from vsan_collector.metrics_config import DEFAULT_LOOKBACK_FACTOR, DEFAULT_SAMPLING_PERIOD
from vsan_collector.schema.records import ClusterDescriptor

logger = logging.getLogger(__name__)

# Ensure .env from parent directory is loaded for local CLI runs
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

# vSAN performance samples are 5 minutes apart, sub-second precision is pointless
INFLUXDB_WRITE_PRECISION = 's'

TLS_VALIDATION_CHOICES = ['strict', 'normal', 'none']
OUTPUT_CHOICES = ['influxdb', 'prometheus', 'both']


class ConfigError(ValueError):
    """Invalid or unreadable configuration."""


class ClusterConfig(BaseModel):
    """One statically configured cluster. When none are configured, clusters are discovered."""
    model_config = ConfigDict(extra='ignore')

    id: str
    name: str
    datacenter: str = ''
    type: str = 'ClusterComputeResource'

    def to_descriptor(self) -> ClusterDescriptor:
        return ClusterDescriptor(cluster_id=self.id, cluster_name=self.name,
                                 datacenter_name=self.datacenter, cluster_type=self.type)


class FileConfig(BaseModel):
    model_config = ConfigDict(extra='ignore')

    # InfluxDB settings
    inf_url: Optional[str] = None
    inf_database: Optional[str] = None
    inf_token: Optional[str] = None

    # vCenter settings
    vcenter: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    tls_ca: Optional[str] = None
    tls_validation: Optional[str] = None
    clusters: Optional[List[ClusterConfig]] = None

    # Collection settings
    interval_time: Optional[int] = None
    sampling_period: Optional[int] = None
    lookback_factor: Optional[int] = None
    threads: Optional[int] = None
    poll_timeout: Optional[float] = None
    request_timeout: Optional[float] = None
    vsan_metric_include: Optional[List[str]] = None
    vsan_metric_exclude: Optional[List[str]] = None

    # Output settings
    output: Optional[str] = None
    prometheus_port: Optional[int] = None
    to_json: Optional[str] = None


class EnvConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra='ignore'  # Ignore extra fields in .env that aren't defined in the model
    )

    # Core InfluxDB settings
    INF_URL: Optional[str] = Field(default=None)
    INF_DATABASE: str = Field(default="vsan")
    INF_TOKEN: Optional[str] = Field(default=None)

    # vCenter settings
    VCENTER: Optional[str] = Field(default=None)
    VCENTER_USERNAME: Optional[str] = Field(default=None)
    VCENTER_PASSWORD: Optional[str] = Field(default=None)
    TLS_CA: Optional[str] = Field(default=None)
    TLS_VALIDATION: str = Field(default="strict")
    CLUSTERS: List[ClusterConfig] = Field(default_factory=list)

    # Collection settings
    INTERVAL_TIME: int = Field(default=300)
    SAMPLING_PERIOD: int = Field(default=DEFAULT_SAMPLING_PERIOD)
    LOOKBACK_FACTOR: int = Field(default=DEFAULT_LOOKBACK_FACTOR)
    THREADS: int = Field(default=4)
    POLL_TIMEOUT: Optional[float] = Field(default=None)
    REQUEST_TIMEOUT: float = Field(default=30.0)
    VSAN_METRIC_INCLUDE: List[str] = Field(default_factory=list)
    VSAN_METRIC_EXCLUDE: List[str] = Field(default_factory=list)

    # Output settings
    OUTPUT: str = Field(default="influxdb")
    PROMETHEUS_PORT: int = Field(default=8000)
    TO_JSON: Optional[str] = Field(default=None)

    @field_validator('TLS_VALIDATION')
    @classmethod
    def check_tls_validation(cls, value):
        if value not in TLS_VALIDATION_CHOICES:
            raise ValueError(f"must be one of {TLS_VALIDATION_CHOICES}")
        return value


# FileConfig field -> Settings attribute, where the names differ
_FILE_FIELD_MAP = {
    'inf_url': 'influxdb_url',
    'inf_database': 'influxdb_database',
    'inf_token': 'influxdb_token',
}


class Settings:
    """
    Effective collector configuration.

    Environment (and .env) values are loaded first, a YAML config file
    overrides them, and command line values override both (apply_overrides).
    """

    def __init__(self, config_file: Optional[str] = None):
        logger.debug("Loading configuration from environment variables")
        try:
            env_config = EnvConfig()
        except ValidationError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

        self.influxdb_url = env_config.INF_URL
        self.influxdb_database = env_config.INF_DATABASE
        self.influxdb_token = env_config.INF_TOKEN

        self.vcenter = env_config.VCENTER
        self.username = env_config.VCENTER_USERNAME
        self.password = env_config.VCENTER_PASSWORD
        self.tls_ca = env_config.TLS_CA
        self.tls_validation = env_config.TLS_VALIDATION
        self.clusters: List[ClusterDescriptor] = [c.to_descriptor() for c in env_config.CLUSTERS]

        self.interval_time = env_config.INTERVAL_TIME
        self.sampling_period = env_config.SAMPLING_PERIOD
        self.lookback_factor = env_config.LOOKBACK_FACTOR
        self.threads = env_config.THREADS
        self.poll_timeout = env_config.POLL_TIMEOUT
        self.request_timeout = env_config.REQUEST_TIMEOUT
        self.vsan_metric_include = env_config.VSAN_METRIC_INCLUDE
        self.vsan_metric_exclude = env_config.VSAN_METRIC_EXCLUDE

        self.output = env_config.OUTPUT
        self.prometheus_port = env_config.PROMETHEUS_PORT
        self.to_json = env_config.TO_JSON

        if config_file:
            self._load_file(config_file)
        self.validate()

    def _load_file(self, config_file: str) -> None:
        logger.debug(f"Loading configuration from file: {config_file}")
        if not os.path.exists(config_file):
            raise ConfigError(f"Config file not found: {config_file}")
        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_file} must contain a mapping")
        try:
            file_config = FileConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {config_file}: {e}") from e

        for key, value in file_config.model_dump(exclude_none=True).items():
            if key == 'clusters':
                self.clusters = [c.to_descriptor() for c in file_config.clusters]
                continue
            setattr(self, _FILE_FIELD_MAP.get(key, key), value)

    def apply_overrides(self, **overrides: Any) -> None:
        """Set every override that is not None (command line values)."""
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(self, key):
                raise ConfigError(f"Unknown setting: {key}")
            setattr(self, key, value)
        self.validate()

    def validate(self) -> None:
        if self.tls_validation not in TLS_VALIDATION_CHOICES:
            raise ConfigError(f"tls_validation must be one of {TLS_VALIDATION_CHOICES}, got {self.tls_validation}")
        if self.output not in OUTPUT_CHOICES:
            raise ConfigError(f"output must be one of {OUTPUT_CHOICES}, got {self.output}")
        if self.sampling_period <= 0:
            raise ConfigError("sampling_period must be positive")
        if self.lookback_factor <= 0:
            raise ConfigError("lookback_factor must be positive")
        if self.threads <= 0:
            raise ConfigError("threads must be positive")

    def as_dict(self) -> Dict[str, Any]:
        """Settings with secrets masked, for logging."""
        values = dict(vars(self))
        for secret in ('password', 'influxdb_token'):
            if values.get(secret):
                values[secret] = '***'
        return values
