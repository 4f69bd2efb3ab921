import asyncio
import logging

from .inventory import list_snapshots, delete_snapshot
from .models import SnapshotType
from .planner import oldest_allowed_identifier, select_expired
from .utils.logger import log


async def delete_old_snapshots(ctx, instance_id):
    """
    Apply the retention window to the DR copies of one instance.

    Only manual snapshots in the DR region are considered, and only those whose
    identifier sorts before ``<instanceId>-<cutoff>`` are deleted (see the
    naming contract in ``planner``). Deletions run concurrently; every one of
    them finishes before the first failure is raised.

    Args:
        ctx (RotationContext): The invocation context.
        instance_id (str): Source DB instance identifier.

    Returns:
        list: Identifiers of the deleted snapshots.
    """
    oldest_allowed = oldest_allowed_identifier(instance_id, ctx.cutoff)
    log(logging.INFO, 'Kicking off snapshot deletion in DR region', instance_id)
    log(logging.INFO, f"Finding snapshots older than {oldest_allowed}", instance_id)

    snapshots = await list_snapshots(ctx.dr_client, instance_id, SnapshotType.MANUAL)
    old_snapshots = select_expired([snapshot.identifier for snapshot in snapshots
                                    if snapshot.snapshot_type is SnapshotType.MANUAL],
                                   instance_id, ctx.cutoff)
    if not old_snapshots:
        log(logging.INFO, 'No snapshots marked for deletion', instance_id)
        return []

    async def delete(snapshot_id):
        log(logging.INFO, f"Deleting snapshot {snapshot_id}", instance_id)
        await delete_snapshot(ctx.dr_client, snapshot_id, instance_id)
        return snapshot_id

    results = await asyncio.gather(*(delete(snapshot_id) for snapshot_id in old_snapshots),
                                   return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            log(logging.ERROR, f"Error encountered during snapshot deletion: {result}", instance_id)
            raise result
    return results
