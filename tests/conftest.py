import pytest

from rds_rotation.context import RotationContext
from rds_rotation.utils.config import RotationConfig

from tests.fakes import NOW, FakeRDSClient, RecordingNotifier


@pytest.fixture
def config():
    return RotationConfig(dr_region='us-west-2', retention_days=7, dr_kms_key='arn:aws:kms:us-west-2:1:key/dr',
                          copy_age_warning_hours=24, copy_age_alert_hours=72)


@pytest.fixture
def source():
    return FakeRDSClient()


@pytest.fixture
def dr():
    return FakeRDSClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_ctx(source, dr, notifier):
    def factory(config):
        return RotationContext.create(config, source_client=source, dr_client=dr, notifier=notifier, now=NOW)
    return factory


@pytest.fixture
def ctx(make_ctx, config):
    return make_ctx(config)
