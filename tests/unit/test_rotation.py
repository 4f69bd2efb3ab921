"""
Unit tests for the rotation orchestrator.

Tests cover:
- Instance filter and disabled backups
- Copy then prune ordering
- Failure isolation between instances
- Catalog failures
"""
import dataclasses

import pytest
from botocore.exceptions import EndpointConnectionError

from rds_rotation.exceptions import CatalogUnavailable, CopyError
from rds_rotation.planner import replica_identifier
from rds_rotation.rotation import rotate_all, rotate_instance

from tests.fakes import automated_snapshot, hours_ago, manual_snapshot


def instance(identifier, retention=7):
    return {'DBInstanceIdentifier': identifier, 'BackupRetentionPeriod': retention}


class TestRotateInstance:
    """Tests for a single instance pipeline."""

    @pytest.mark.asyncio
    async def test_copies_then_prunes(self, ctx, source, dr):
        """A healthy instance gets its copies and its retention."""
        source.snapshots = [automated_snapshot('db1', hours_ago(5))]
        dr.snapshots = [manual_snapshot('db1-2024-04-01-04-10', 'db1')]

        outcome = await rotate_instance(ctx, 'db1')

        assert outcome.succeeded
        assert (outcome.copied, outcome.deleted) == (1, 1)
        operations = [operation for operation, _ in dr.calls]
        assert operations.index('copy_db_snapshot') < operations.index('delete_db_snapshot')

    @pytest.mark.asyncio
    async def test_copy_failure_skips_pruning(self, ctx, source, dr, notifier):
        """Pruning never runs after a failed copy."""
        snapshot = automated_snapshot('db1', hours_ago(5))
        source.snapshots = [snapshot]
        dr.snapshots = [manual_snapshot('db1-2024-04-01-04-10', 'db1')]
        dr.copy_errors[replica_identifier(snapshot['DBSnapshotIdentifier'])] = 'KMSKeyNotAccessibleFault'

        outcome = await rotate_instance(ctx, 'db1')

        assert outcome.status == 'failed'
        assert isinstance(outcome.error, CopyError)
        assert dr.operations('delete_db_snapshot') == []
        assert any('while copying snapshots' in msg for msg in notifier.of_level('alert'))

    @pytest.mark.asyncio
    async def test_delete_failure_fails_instance(self, ctx, dr):
        """A failed deletion is reported on the outcome."""
        dr.snapshots = [manual_snapshot('db1-2024-04-01-04-10', 'db1')]
        dr.delete_errors['db1-2024-04-01-04-10'] = 'InvalidDBSnapshotState'

        outcome = await rotate_instance(ctx, 'db1')

        assert outcome.status == 'failed'
        assert outcome.as_dict()['error']

    @pytest.mark.asyncio
    async def test_filtered_instance_is_skipped(self, make_ctx, config, source, dr):
        """An instance outside the filter makes no calls."""
        ctx = make_ctx(dataclasses.replace(config, instance_filter='prod-.*'))
        outcome = await rotate_instance(ctx, 'stage-b')
        assert outcome.status == 'skipped'
        assert outcome.succeeded
        assert source.calls == [] and dr.calls == []


class TestRotateAll:
    """Tests for the full catalog rotation."""

    @pytest.mark.asyncio
    async def test_instance_filter(self, make_ctx, config, source, dr):
        """Only matching instances are rotated, the rest succeed trivially."""
        ctx = make_ctx(dataclasses.replace(config, instance_filter='prod-.*'))
        source.instances = [instance('prod-a'), instance('stage-b')]
        source.snapshots = [automated_snapshot('prod-a', hours_ago(5)),
                            automated_snapshot('stage-b', hours_ago(5))]

        outcomes = {outcome.instance_id: outcome for outcome in await rotate_all(ctx)}

        assert outcomes['prod-a'].status == 'succeeded'
        assert outcomes['prod-a'].copied == 1
        assert outcomes['stage-b'].status == 'skipped'
        assert source.calls_for('stage-b') == []
        assert dr.calls_for('stage-b') == []
        assert source.operations('describe_db_instances') == [{}]

    @pytest.mark.asyncio
    async def test_backups_disabled_skipped_before_inventory(self, ctx, source, dr):
        """An instance without backups is never inventoried."""
        source.instances = [instance('db1', retention=0)]

        outcomes = await rotate_all(ctx)

        assert [outcome.status for outcome in outcomes] == ['skipped']
        assert source.operations('describe_db_snapshots') == []
        assert dr.calls == []

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, ctx, source, dr):
        """One failing instance does not stop its siblings."""
        source.instances = [instance('db1'), instance('db2')]
        broken = automated_snapshot('db1', hours_ago(5))
        source.snapshots = [broken, automated_snapshot('db2', hours_ago(5))]
        dr.copy_errors[replica_identifier(broken['DBSnapshotIdentifier'])] = 'InternalFailure'

        outcomes = {outcome.instance_id: outcome for outcome in await rotate_all(ctx)}

        assert outcomes['db1'].status == 'failed'
        assert outcomes['db2'].status == 'succeeded'
        assert outcomes['db2'].copied == 1

    @pytest.mark.asyncio
    async def test_catalog_failure_is_fatal(self, ctx, source):
        """A pagination failure aborts the whole rotation."""
        source.instances = [instance(f"db{number}") for number in range(5)]
        source.fail_listing_on_page = 2

        with pytest.raises(CatalogUnavailable):
            await rotate_all(ctx)

        assert source.operations('describe_db_snapshots') == []

    @pytest.mark.asyncio
    async def test_unreachable_catalog_is_fatal(self, ctx, source):
        """A connection failure while reading the catalog raises CatalogUnavailable."""
        source.instances = [instance('db1')]
        source.fail_listing_on_page = 0
        source.listing_error = EndpointConnectionError(endpoint_url='https://rds.us-east-1.amazonaws.com')

        with pytest.raises(CatalogUnavailable) as exc_info:
            await rotate_all(ctx)

        assert exc_info.value.code == 'EndpointConnectionError'
        assert source.operations('describe_db_snapshots') == []

    @pytest.mark.asyncio
    async def test_empty_catalog(self, ctx, source):
        """No instances is a successful no-op."""
        assert await rotate_all(ctx) == []
