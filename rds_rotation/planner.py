"""
Pure decisions of the rotation: what to copy, what the copy is called, and what to delete.

Replica naming contract
-----------------------
Automated snapshots are named ``rds:<instanceId>-YYYY-MM-DD-HH-MM`` by RDS. The
replica keeps that name minus the ``rds:`` prefix, so every replica of an
instance is ``<instanceId>-`` followed by a zero-padded, fixed-width timestamp.
Retention relies on this: comparing a replica identifier with
``<instanceId>-<cutoff as YYYY-MM-DD-HH-MM>`` as plain strings orders it by
time. Changing the replica name format breaks retention.
"""
from datetime import datetime, timedelta, timezone

from .models import SnapshotStatus

VENDOR_PREFIX = 'rds:'
REPLICA_TIMESTAMP_FORMAT = '%Y-%m-%d-%H-%M'


def rotation_cutoff(days, now=None):
    """
    Timestamp separating snapshots still inside the retention window from the ones outside it.

    :param days: Retention window in days.
    :param now: Trigger time, defaults to the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def replica_identifier(snapshot_id):
    """Destination identifier of the copy of ``snapshot_id``, the idempotency key of a copy."""
    if snapshot_id.startswith(VENDOR_PREFIX):
        return snapshot_id[len(VENDOR_PREFIX):]
    return snapshot_id


def select_copy_candidates(snapshots, cutoff):
    """
    Select the source snapshots that should exist in the DR region.

    A snapshot qualifies when it is available and was created strictly after
    the cutoff. Anything at or before the cutoff is considered retired.
    """
    return [snapshot for snapshot in snapshots
            if snapshot.status is SnapshotStatus.AVAILABLE
            and snapshot.created_at is not None
            and snapshot.created_at > cutoff]


def oldest_allowed_identifier(instance_id, cutoff):
    return f"{instance_id}-{cutoff.strftime(REPLICA_TIMESTAMP_FORMAT)}"


def select_expired(snapshot_ids, instance_id, cutoff):
    """
    Select destination snapshot identifiers that sort strictly before the oldest allowed replica name.
    """
    oldest_allowed = oldest_allowed_identifier(instance_id, cutoff)
    return [snapshot_id for snapshot_id in snapshot_ids if snapshot_id < oldest_allowed]


def snapshot_age_hours(snapshot, now=None):
    now = now or datetime.now(timezone.utc)
    return (now - snapshot.created_at).total_seconds() / 3600
