"""
Unit tests for the organization service.
"""

import pytest

from goodbricks_shared.errors import ConflictError, NotFoundError
from goodbricks_shared.org_service import OrgService


@pytest.fixture
def service(clients):
    return OrgService(clients)


class TestOrgService:

    def test_create_org(self, service, table, owner):
        org = service.create_org(owner, {
            'orgName': ' Masjid Noor ',
            'activeSubscribers': 120,
            'senderEmail': 'News@MasjidNoor.org',
            'website': 'https://masjidnoor.org',
            'phone': ''
        }, 'req-1')

        assert org['orgId'].startswith('org-')
        assert org['orgName'] == 'Masjid Noor'
        assert org['senderEmail'] == 'news@masjidnoor.org'
        assert 'phone' not in org
        stored = table.get_item(f'USER#{owner}', f"ORGMETADATA#{org['orgId']}")
        assert stored['entityType'] == 'ORGMETADATA'
        assert stored['activeSubscribers'] == 120

    def test_duplicate_org_id(self, service, owner):
        service.create_org(owner, {'orgId': 'noor', 'orgName': 'Noor', 'activeSubscribers': 0}, 'req-1')
        with pytest.raises(ConflictError):
            service.create_org(owner, {'orgId': 'noor', 'orgName': 'Noor', 'activeSubscribers': 0}, 'req-1')

    def test_get_org(self, service, owner):
        service.create_org(owner, {'orgId': 'noor', 'orgName': 'Noor', 'activeSubscribers': 5}, 'req-1')
        assert service.get_org(owner)['orgName'] == 'Noor'

    def test_get_org_ignores_other_owner_records(self, service, table, owner):
        """Only ORGMETADATA records count, not audience or groups in the partition."""
        table.seed({'PK': f'USER#{owner}', 'SK': 'AUDIENCE#a@x.org', 'email': 'a@x.org'})
        assert service.find_org(owner) is None

    def test_missing_org(self, service, owner):
        with pytest.raises(NotFoundError):
            service.get_org(owner)
