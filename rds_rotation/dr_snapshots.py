import asyncio
import logging

from .exceptions import CopyQuotaExceeded, ProbeError
from .inventory import list_snapshots, probe_snapshot, copy_snapshot
from .models import CopyResult, ProbeResult, SnapshotType
from .planner import replica_identifier, select_copy_candidates, snapshot_age_hours
from .utils.aws_utils import error_code, error_text
from .utils.logger import log


async def check_snapshot_age(ctx, snapshot, replica_id):
    """
    Warn or alert when a snapshot has gone uncopied for too long.

    The alert threshold wins over the warning threshold; at most one notification is sent.
    """
    config = ctx.config
    age = snapshot_age_hours(snapshot, ctx.now)
    age_msg = f"Snapshot {replica_id} is {age:.1f} hours old and has not been copied to the DR region"
    if config.copy_age_alert_hours is not None and age > config.copy_age_alert_hours:
        await ctx.notifier.alert(age_msg, snapshot.instance_id)
    elif config.copy_age_warning_hours is not None and age > config.copy_age_warning_hours:
        await ctx.notifier.warning(age_msg, snapshot.instance_id)


async def replicate_snapshot(ctx, snapshot, age_check_disabled=False):
    """
    Copy one source snapshot to the DR region unless a copy already exists there.

    :param ctx: RotationContext of the invocation.
    :param snapshot: Source automated snapshot.
    :param age_check_disabled: Skip the staleness warning/alert, used by the initial sync.
    :return: The CopyResult of this candidate.
    :raises ProbeError: If the existence probe fails and the probe error policy is 'fail'.
    :raises CopyError: If the copy request fails for a reason other than quota.
    """
    instance_id = snapshot.instance_id
    replica_id = replica_identifier(snapshot.identifier)

    probe, err = await probe_snapshot(ctx.dr_client, replica_id)
    if probe is ProbeResult.ERROR:
        if ctx.config.probe_error_policy == 'fail':
            raise ProbeError(f"Failed to check for snapshot {replica_id} in the DR region: {error_text(err)}",
                             instance_id=instance_id, code=error_code(err)) from err
        log(logging.WARNING, f"Could not check for snapshot {replica_id} in the DR region "
                             f"({error_code(err)}), treating it as already copied", instance_id)
        return CopyResult.ALREADY_PRESENT
    if probe is ProbeResult.FOUND:
        log(logging.INFO, f"Snapshot {replica_id} already exists in DR region.", instance_id)
        return CopyResult.ALREADY_PRESENT

    if not age_check_disabled:
        await check_snapshot_age(ctx, snapshot, replica_id)

    log(logging.INFO, f"Copying snapshot {replica_id} to DR region", instance_id)
    try:
        return await copy_snapshot(ctx.dr_client, snapshot, replica_id, ctx.config.dr_kms_key)
    except CopyQuotaExceeded as e:
        log(logging.WARNING, f"Ignoring snapshot copy quota error: {e.code}: {e.message}", instance_id)
        return CopyResult.SKIPPED_QUOTA


async def copy_snapshots(ctx, instance_id, candidates, age_check_disabled=False):
    """
    Replicate every candidate concurrently.

    All copies run to completion before the result is inspected; the first
    failure in candidate order is then raised. Quota errors count as skipped
    copies, not failures.

    :return: One CopyResult per candidate.
    """
    if not candidates:
        log(logging.INFO, 'No snapshots need to be copied to the DR region', instance_id)
        return []

    snapshot_list = ', '.join(snapshot.identifier for snapshot in candidates)
    log(logging.INFO, f"Evaluating snapshots for copy: {snapshot_list}", instance_id)

    results = await asyncio.gather(
        *(replicate_snapshot(ctx, snapshot, age_check_disabled) for snapshot in candidates),
        return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            log(logging.ERROR, f"Error encountered executing snapshot copy: {result}", instance_id)
            raise result
    return results


async def copy_new_snapshots(ctx, instance_id, age_check_disabled=False):
    """
    List the automated snapshots of an instance and replicate the ones newer than the rotation cutoff.
    """
    log(logging.INFO, 'Kicking off snapshot copies', instance_id)
    log(logging.INFO, 'Retrieving snapshots for database instance', instance_id)
    snapshots = await list_snapshots(ctx.source_client, instance_id, SnapshotType.AUTOMATED)
    candidates = select_copy_candidates(snapshots, ctx.cutoff)
    return await copy_snapshots(ctx, instance_id, candidates, age_check_disabled)
