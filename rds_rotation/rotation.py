import asyncio
import logging

from .dr_snapshots import copy_new_snapshots
from .inventory import list_instances
from .models import RotationOutcome
from .retention import delete_old_snapshots
from .utils.logger import log


async def rotate_instance(ctx, instance_id, age_check_disabled=False):
    """
    Copy new snapshots of one instance to the DR region, then prune its expired copies.

    Pruning only runs when copying succeeded. Any failure is recorded on the
    returned outcome instead of being raised, so sibling instances are unaffected.
    """
    outcome = RotationOutcome(instance_id)
    if not ctx.matches_filter(instance_id):
        log(logging.INFO, 'Skipping database b/c it does not match instance filter', instance_id)
        outcome.status = 'skipped'
        return outcome

    try:
        copies = await copy_new_snapshots(ctx, instance_id, age_check_disabled)
    except Exception as e:
        await ctx.notifier.alert(f"Error encountered while copying snapshots: {e}", instance_id)
        outcome.status, outcome.error = 'failed', e
        return outcome
    outcome.record_copies(copies)

    try:
        deleted = await delete_old_snapshots(ctx, instance_id)
    except Exception as e:
        await ctx.notifier.alert(f"Error encountered while deleting snapshots: {e}", instance_id)
        outcome.status, outcome.error = 'failed', e
        return outcome
    outcome.deleted = len(deleted)
    return outcome


async def _rotate_cataloged(ctx, instance, age_check_disabled):
    if not instance.backups_enabled:
        log(logging.INFO, 'Skipping snapshot rotation b/c backups are disabled', instance.identifier)
        return RotationOutcome(instance.identifier, status='skipped')
    return await rotate_instance(ctx, instance.identifier, age_check_disabled)


async def rotate_instances(ctx, instances, age_check_disabled=False):
    return list(await asyncio.gather(
        *(_rotate_cataloged(ctx, instance, age_check_disabled) for instance in instances)))


async def rotate_all(ctx, age_check_disabled=False):
    """
    Rotate every instance of the source region concurrently.

    :raises CatalogUnavailable: If the instance listing fails; nothing is rotated in that case.
    :return: One RotationOutcome per listed instance.
    """
    log(logging.INFO, 'Kicking off snapshot rotation for all instances')
    instances = await list_instances(ctx.source_client)
    return await rotate_instances(ctx, instances, age_check_disabled)
