"""
Process configuration, read from environment variables.
"""

from dataclasses import dataclass, field
import logging
import os

DEFAULT_LOG_LEVEL = "info"
DEFAULT_MAX_CONCURRENT_RECONCILES = 3
DEFAULT_RECONCILE_INTERVAL = 60  # seconds
DEFAULT_API_MAX_RETRIES = 10

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
}


class ConfigurationError(Exception):
    """Raised when the controller configuration is invalid."""


def _int_from_env(name, default):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass
class CloudConfig:
    # AWS Region for the kubernetes cluster
    region: str = ""
    # ID of the VPC the security groups live in
    vpc_id: str = ""
    # Max retries configuration for AWS APIs
    max_retries: int = DEFAULT_API_MAX_RETRIES

    @classmethod
    def from_env(cls) -> "CloudConfig":
        return cls(
            region=os.getenv('AWS_DEFAULT_REGION', ""),
            vpc_id=os.getenv('AWS_VPC_ID', ""),
            max_retries=_int_from_env('AWS_MAX_RETRIES', DEFAULT_API_MAX_RETRIES),
        )


@dataclass
class ControllerConfig:
    # Log level for the controller logs, info or debug
    log_level: str = DEFAULT_LOG_LEVEL
    # Name of the Kubernetes cluster
    cluster_name: str = ""
    # Max concurrent reconcile passes for SecurityGroupIngress objects
    max_concurrent_reconciles: int = DEFAULT_MAX_CONCURRENT_RECONCILES
    # Seconds between periodic resyncs of every object
    reconcile_interval: int = DEFAULT_RECONCILE_INTERVAL
    cloud: CloudConfig = field(default_factory=CloudConfig)

    @classmethod
    def from_env(cls) -> "ControllerConfig":
        return cls(
            log_level=os.getenv('LOG_LEVEL', DEFAULT_LOG_LEVEL).lower(),
            cluster_name=os.getenv('K8S_CLUSTER_NAME', ""),
            max_concurrent_reconciles=_int_from_env('MAX_CONCURRENT_RECONCILES', DEFAULT_MAX_CONCURRENT_RECONCILES),
            reconcile_interval=_int_from_env('RECONCILE_INTERVAL', DEFAULT_RECONCILE_INTERVAL),
            cloud=CloudConfig.from_env(),
        )

    def validate(self) -> None:
        """
        Validate the controller configuration.

        Raises:
            ConfigurationError: If a setting is missing or out of range
        """
        if not self.cluster_name:
            raise ConfigurationError("K8S_CLUSTER_NAME environment variable is required but not set")
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level {self.log_level}. Must be one of: {', '.join(LOG_LEVELS)}")
        if self.max_concurrent_reconciles < 1:
            raise ConfigurationError("MAX_CONCURRENT_RECONCILES must be at least 1")
        if self.reconcile_interval < 1:
            raise ConfigurationError("RECONCILE_INTERVAL must be at least 1 second")
        if self.cloud.max_retries < 1:
            raise ConfigurationError("AWS_MAX_RETRIES must be at least 1")

    @property
    def python_log_level(self) -> int:
        return LOG_LEVELS.get(self.log_level, logging.INFO)
