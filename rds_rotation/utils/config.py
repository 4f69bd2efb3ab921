import os
import logging
from dataclasses import dataclass, field
from typing import Optional

from botocore.config import Config

from ..exceptions import ConfigurationError

PROBE_ERROR_POLICIES = ('skip', 'fail')


def validate(*variables, environ=None):
    """
    Check the existence of environment variables.

    :param variables: List of environment variable names to check.
    :param environ: Mapping to check instead of os.environ.
    :raises ConfigurationError: If any of the specified environment variables is missing.
    """
    environ = os.environ if environ is None else environ
    for var in variables:
        if not environ.get(var):
            logging.error(f"Environment variable '{var}' is not set. Please set it before running the rotation.")
            raise ConfigurationError(f"Environment variable '{var}' is not set")


def _number(environ, name, cast, default=None):
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return cast(raw)
    except ValueError:
        logging.error(f"Environment variable '{name}' has an invalid value: {raw!r}")
        raise ConfigurationError(f"Environment variable '{name}' must be a number, got {raw!r}")


@dataclass(frozen=True)
class RotationConfig:
    """
    Settings for one rotation invocation.

    Built once from the environment and handed to every component, so nothing
    below the handler reads os.environ.
    """
    dr_region: str
    retention_days: int
    dr_kms_key: Optional[str] = None
    source_region: Optional[str] = None
    instance_filter: Optional[str] = None
    copy_age_warning_hours: Optional[float] = None
    copy_age_alert_hours: Optional[float] = None
    slack_webhook_url: Optional[str] = None
    slack_warnings_channel: Optional[str] = None
    slack_alerts_channel: Optional[str] = None
    probe_error_policy: str = 'skip'
    log_level: str = 'INFO'
    environment: str = ''
    application: str = 'rds-dr-rotation'
    max_pool_connections: int = 100
    connection_max_attempts: int = 10
    client_config: Config = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.retention_days < 0:
            raise ConfigurationError(f"Retention window must not be negative, got {self.retention_days}")
        if self.probe_error_policy not in PROBE_ERROR_POLICIES:
            raise ConfigurationError(
                f"Probe error policy must be one of {', '.join(PROBE_ERROR_POLICIES)}, "
                f"got {self.probe_error_policy!r}")
        object.__setattr__(self, 'client_config', Config(
            max_pool_connections=self.max_pool_connections,
            retries={
                'max_attempts': self.connection_max_attempts,
                'mode': 'adaptive'
            }
        ))

    @classmethod
    def from_env(cls, environ=None):
        environ = os.environ if environ is None else environ
        validate('DR_REGION', 'MAINTAIN_X_SNAPSHOTS', environ=environ)
        return cls(
            dr_region=environ['DR_REGION'],
            retention_days=_number(environ, 'MAINTAIN_X_SNAPSHOTS', int),
            dr_kms_key=environ.get('DR_KMS_KEY') or None,
            source_region=environ.get('REGION') or None,
            instance_filter=environ.get('DATABASE_INSTANCE_FILTER') or None,
            copy_age_warning_hours=_number(environ, 'SNAPSHOT_COPY_AGE_WARNING', float),
            copy_age_alert_hours=_number(environ, 'SNAPSHOT_COPY_AGE_ALERT', float),
            slack_webhook_url=environ.get('SLACK_WEBHOOK_URL') or None,
            slack_warnings_channel=environ.get('SLACK_WARNINGS_CHANNEL') or None,
            slack_alerts_channel=environ.get('SLACK_ALERTS_CHANNEL') or None,
            probe_error_policy=environ.get('PROBE_ERROR_POLICY', 'skip').lower(),
            log_level=environ.get('LOG_LEVEL', 'INFO'),
            environment=environ.get('ENVIRONMENT', ''),
            application=environ.get('APPLICATION', 'rds-dr-rotation'),
            max_pool_connections=_number(environ, 'MAX_POOL_CONNECTIONS', int, 100),
            connection_max_attempts=_number(environ, 'CONNECTION_MAX_ATTEMPTS', int, 10),
        )
