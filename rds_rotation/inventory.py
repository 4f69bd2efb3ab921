"""
Calls to the RDS API, translated into the rotation's models and errors.

Listing, probing, copying and deleting all run as blocking boto3 calls on the
default executor (see ``run_blocking``), one await per call.
"""
import logging

import botocore.exceptions
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter, after_log

from .exceptions import CatalogUnavailable, InventoryUnavailable, CopyError, CopyQuotaExceeded, DeleteError
from .models import DatabaseInstance, Snapshot, ProbeResult, CopyResult
from .utils.aws_utils import run_blocking, error_code, error_text
from .utils.logger import log

THROTTLING_CODES = ('Throttling', 'ThrottlingException', 'RequestLimitExceeded')
NOT_FOUND_CODE = 'DBSnapshotNotFound'
QUOTA_EXCEEDED_CODE = 'SnapshotQuotaExceeded'
ALREADY_EXISTS_CODE = 'DBSnapshotAlreadyExists'
# ClientError for service errors, BotoCoreError for transport failures
AWS_ERRORS = (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError)


def _is_throttling(err):
    return isinstance(err, botocore.exceptions.ClientError) and error_code(err) in THROTTLING_CODES


retry_on_throttling = retry(
    retry=retry_if_exception(_is_throttling),
    stop=stop_after_attempt(5),
    wait=wait_exponential_jitter(initial=1, max=60),
    after=after_log(logging.getLogger(__name__), logging.WARNING),
    reraise=True
)


def iter_instances(client):
    """
    Yield every DB instance in the client's region, page by page.
    """
    paginator = client.get_paginator('describe_db_instances')
    for page in paginator.paginate():
        for item in page['DBInstances']:
            yield DatabaseInstance.from_api(item)


@retry_on_throttling
def _fetch_instances(client):
    return list(iter_instances(client))


async def list_instances(client):
    """
    List the DB instances of the source region.

    The whole catalog is read before anything is rotated, so a failure on a
    late page fails the invocation rather than a single instance.

    :raises CatalogUnavailable: If any page of the listing fails.
    """
    try:
        return await run_blocking(_fetch_instances, client)
    except AWS_ERRORS as e:
        log(logging.ERROR, f"Error encountered enumerating instances: {error_code(e)}: {error_text(e)}")
        raise CatalogUnavailable(f"Failed to list DB instances: {error_text(e)}", code=error_code(e)) from e


def iter_snapshots(client, instance_id, snapshot_type):
    """
    Yield the snapshots of one instance, excluding shared and public ones.

    Args:
        client (boto3.client): RDS client of the region to list.
        instance_id (str): DB instance identifier.
        snapshot_type (SnapshotType): 'automated' or 'manual'.
    """
    paginator = client.get_paginator('describe_db_snapshots')
    response_iterator = paginator.paginate(
        DBInstanceIdentifier=instance_id,
        IncludePublic=False,
        IncludeShared=False,
        SnapshotType=snapshot_type.value
    )
    for page in response_iterator:
        for item in page['DBSnapshots']:
            yield Snapshot.from_api(item)


@retry_on_throttling
def _fetch_snapshots(client, instance_id, snapshot_type):
    return list(iter_snapshots(client, instance_id, snapshot_type))


async def list_snapshots(client, instance_id, snapshot_type):
    """
    :raises InventoryUnavailable: If the listing fails.
    """
    try:
        return await run_blocking(_fetch_snapshots, client, instance_id, snapshot_type)
    except AWS_ERRORS as e:
        log(logging.ERROR, f"Error encountered during snapshot enumeration: {error_code(e)}: {error_text(e)}",
            instance_id)
        raise InventoryUnavailable(f"Failed to list {snapshot_type.value} snapshots: {error_text(e)}",
                                   instance_id=instance_id, code=error_code(e)) from e


def _describe_snapshot(client, snapshot_id):
    return client.describe_db_snapshots(DBSnapshotIdentifier=snapshot_id)


async def probe_snapshot(client, snapshot_id):
    """
    Check whether a snapshot exists.

    :return: A ``(ProbeResult, error)`` pair. ``error`` is the botocore exception when the result is ``ERROR``.
    """
    try:
        response = await run_blocking(_describe_snapshot, client, snapshot_id)
    except AWS_ERRORS as e:
        if error_code(e) == NOT_FOUND_CODE:
            return ProbeResult.NOT_FOUND, None
        return ProbeResult.ERROR, e
    if not response.get('DBSnapshots'):
        return ProbeResult.NOT_FOUND, None
    return ProbeResult.FOUND, None


def _copy_snapshot(client, snapshot, target_snapshot_id, kms_key_id):
    params = {
        'SourceDBSnapshotIdentifier': snapshot.arn or snapshot.identifier,
        'TargetDBSnapshotIdentifier': target_snapshot_id,
        'CopyTags': True
    }
    if snapshot.source_region:
        params['SourceRegion'] = snapshot.source_region
    if snapshot.encrypted and kms_key_id:
        params['KmsKeyId'] = kms_key_id
    return client.copy_db_snapshot(**params)


async def copy_snapshot(client, snapshot, target_snapshot_id, kms_key_id=None):
    """
    Copy a source snapshot into the client's region, carrying its tags.

    The KMS key is only attached when the source snapshot is encrypted.

    :raises CopyQuotaExceeded: If the destination snapshot quota is exhausted.
    :raises CopyError: For any other copy failure.
    """
    try:
        await run_blocking(_copy_snapshot, client, snapshot, target_snapshot_id, kms_key_id)
    except AWS_ERRORS as e:
        code = error_code(e)
        if code == ALREADY_EXISTS_CODE:
            log(logging.WARNING, f"The snapshot {target_snapshot_id} already exists in the DR region",
                snapshot.instance_id)
            return CopyResult.ALREADY_PRESENT
        error_class = CopyQuotaExceeded if code == QUOTA_EXCEEDED_CODE else CopyError
        raise error_class(f"Failed to copy snapshot {snapshot.identifier}: {error_text(e)}",
                          instance_id=snapshot.instance_id, code=code) from e
    return CopyResult.COPIED


async def delete_snapshot(client, snapshot_id, instance_id=None):
    """
    :raises DeleteError: If the deletion fails.
    """
    try:
        await run_blocking(client.delete_db_snapshot, DBSnapshotIdentifier=snapshot_id)
    except AWS_ERRORS as e:
        raise DeleteError(f"Failed to delete snapshot {snapshot_id}: {error_text(e)}",
                          instance_id=instance_id, code=error_code(e)) from e
