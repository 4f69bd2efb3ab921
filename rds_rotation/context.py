import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import ConfigurationError
from .planner import rotation_cutoff
from .utils.aws_utils import get_rds_client
from .utils.common_slack import SlackNotifier
from .utils.config import RotationConfig


@dataclass(frozen=True)
class RotationContext:
    """
    Everything an invocation shares between its pipelines.

    Read-only once built: the cutoff and the instance filter are computed once
    and reused by every copy and every retention decision.
    """
    config: RotationConfig
    source_client: Any
    dr_client: Any
    notifier: SlackNotifier
    now: datetime
    cutoff: datetime
    instance_filter: Optional[re.Pattern] = None

    def matches_filter(self, instance_id):
        if self.instance_filter is None:
            return True
        return self.instance_filter.search(instance_id) is not None

    @classmethod
    def create(cls, config, source_client=None, dr_client=None, notifier=None, now=None):
        now = now or datetime.now(timezone.utc)
        try:
            instance_filter = re.compile(config.instance_filter) if config.instance_filter else None
        except re.error as e:
            raise ConfigurationError(f"Invalid instance filter {config.instance_filter!r}: {e}")
        if source_client is None:
            source_client = get_rds_client(config.source_region, config.client_config)
        if dr_client is None:
            dr_client = get_rds_client(config.dr_region, config.client_config)
        return cls(
            config=config,
            source_client=source_client,
            dr_client=dr_client,
            notifier=notifier or SlackNotifier.from_config(config),
            now=now,
            cutoff=rotation_cutoff(config.retention_days, now),
            instance_filter=instance_filter,
        )
