"""
Shared fixtures.

Handler modules and the shared package live under lambda/, which is put on
sys.path here the same way the deployment package lays them out.
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

LAMBDA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'lambda')
if LAMBDA_DIR not in sys.path:
    sys.path.insert(0, LAMBDA_DIR)

from goodbricks_shared.clients import AwsClients  # noqa: E402

from fakes import FakeLayoutBucket, FakeMailer, InMemoryMainTable  # noqa: E402


@pytest.fixture(autouse=True)
def cloudwatch(monkeypatch):
    """Keep metric publishing away from AWS."""
    client = MagicMock()
    monkeypatch.setattr('goodbricks_shared.metrics.boto3.client', lambda *args, **kwargs: client)
    return client


@pytest.fixture
def table():
    return InMemoryMainTable()


@pytest.fixture
def bucket():
    return FakeLayoutBucket()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def clients(table, bucket, mailer):
    return AwsClients(table=table, layouts=bucket, mailer=mailer)


@pytest.fixture
def owner():
    return 'org-test'
