import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SnapshotType(str, Enum):
    AUTOMATED = 'automated'
    MANUAL = 'manual'

    @classmethod
    def parse(cls, value):
        return cls.AUTOMATED if value == 'automated' else cls.MANUAL


class SnapshotStatus(str, Enum):
    CREATING = 'creating'
    AVAILABLE = 'available'
    OTHER = 'other'

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class ProbeResult(str, Enum):
    FOUND = 'found'
    NOT_FOUND = 'not_found'
    ERROR = 'error'


class CopyResult(str, Enum):
    COPIED = 'copied'
    ALREADY_PRESENT = 'already_present'
    SKIPPED_QUOTA = 'skipped_quota'


class TriggerKind(str, Enum):
    SCHEDULED = 'scheduled'
    INITIAL_SYNC = 'initial_sync'
    INSTANCE_EVENT = 'instance_event'


@dataclass(frozen=True)
class DatabaseInstance:
    identifier: str
    backup_retention_period: int

    @property
    def backups_enabled(self):
        return self.backup_retention_period != 0

    @classmethod
    def from_api(cls, item):
        return cls(identifier=item['DBInstanceIdentifier'],
                   backup_retention_period=item.get('BackupRetentionPeriod', 0))


@dataclass(frozen=True)
class Snapshot:
    identifier: str
    instance_id: str
    created_at: Optional[datetime]
    status: SnapshotStatus
    snapshot_type: SnapshotType
    encrypted: bool = False
    availability_zone: Optional[str] = None
    arn: Optional[str] = None

    @property
    def source_region(self):
        """Region of the snapshot, the availability zone without its trailing letter."""
        if not self.availability_zone:
            return None
        return re.sub(r'[a-z]$', '', self.availability_zone)

    @classmethod
    def from_api(cls, item):
        return cls(identifier=item['DBSnapshotIdentifier'],
                   instance_id=item.get('DBInstanceIdentifier', ''),
                   created_at=item.get('SnapshotCreateTime'),
                   status=SnapshotStatus.parse(item.get('Status')),
                   snapshot_type=SnapshotType.parse(item.get('SnapshotType')),
                   encrypted=bool(item.get('Encrypted', False)),
                   availability_zone=item.get('AvailabilityZone'),
                   arn=item.get('DBSnapshotArn'))


@dataclass(frozen=True)
class Trigger:
    kind: TriggerKind
    instance_id: Optional[str] = None

    @property
    def age_check_disabled(self):
        return self.kind is TriggerKind.INITIAL_SYNC


@dataclass
class RotationOutcome:
    instance_id: str
    status: str = 'succeeded'
    copied: int = 0
    already_present: int = 0
    quota_skipped: int = 0
    deleted: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)

    @property
    def succeeded(self):
        return self.status != 'failed'

    def record_copies(self, results):
        for result in results:
            if result is CopyResult.COPIED:
                self.copied += 1
            elif result is CopyResult.ALREADY_PRESENT:
                self.already_present += 1
            elif result is CopyResult.SKIPPED_QUOTA:
                self.quota_skipped += 1

    def as_dict(self):
        summary = {
            'instance': self.instance_id,
            'status': self.status,
            'copied': self.copied,
            'already_present': self.already_present,
            'quota_skipped': self.quota_skipped,
            'deleted': self.deleted,
        }
        if self.error is not None:
            summary['error'] = str(self.error)
        return summary
