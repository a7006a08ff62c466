"""
Unit tests for the campaign service.
"""

import itertools

import pytest

from goodbricks_shared.campaign_service import (
    CampaignService,
    derive_recipients,
    ses_template_name,
)
from goodbricks_shared.errors import ConflictError, InvalidStateError, NotFoundError
from goodbricks_shared.layout_service import LayoutService
from goodbricks_shared.org_service import OrgService

from fakes import client_error


@pytest.fixture(autouse=True)
def sequential_ids(monkeypatch):
    """Campaign ids in creation order, even within one millisecond."""
    counter = itertools.count(1)
    monkeypatch.setattr('goodbricks_shared.campaign_service.ULID', lambda: f'01TEST{next(counter):010d}')


@pytest.fixture
def service(clients):
    return CampaignService(clients, default_from_email='default@goodbricks.org')


@pytest.fixture
def layout(clients):
    LayoutService(clients).create_layout({
        'layoutId': 'appeal',
        'version': 'v1',
        'html': '<h1>{{campaignName}}</h1><p>Dear {{firstName}}</p>',
        'variables': ['campaignName', 'firstName']
    }, 'req-setup')
    return 'appeal'


def _create(service, owner, **overrides):
    request = {
        'name': 'Ramadan Appeal',
        'audienceSelection': {'type': 'tag', 'values': ['donors']},
        'metadata': {'subject': 'Give this Ramadan'},
        **overrides
    }
    return service.create_campaign(owner, request, 'req-1')


class TestDeriveRecipients:
    """Recipient rule derivation."""

    def test_explicit_recipients_win(self):
        recipients = derive_recipients({
            'recipients': {'type': 'groups', 'groupIds': ['a', 'b', 'a']},
            'audienceSelection': {'type': 'all'}
        })
        assert recipients == {'type': 'groups', 'groupIds': ['a', 'b']}

    def test_tag_selection_targets_groups(self):
        assert derive_recipients({'audienceSelection': {'type': 'tag', 'values': ['vip']}}) == {
            'type': 'groups', 'groupIds': ['vip']
        }

    @pytest.mark.parametrize('selection', [
        {'type': 'all'},
        {'type': 'list', 'values': ['a@x.org']},
        {'type': 'tag', 'values': []},
    ])
    def test_everything_else_is_all_audience(self, selection):
        assert derive_recipients({'audienceSelection': selection}) == {'type': 'all_audience'}

    def test_template_name(self):
        assert ses_template_name('org.1', 'cmp-ABC') == 'org-1_cmp-ABC'


class TestCreateCampaign:
    """Campaign creation."""

    def test_group_campaign_has_five_copies(self, service, table, owner):
        result = _create(service, owner)

        campaign_id = result['campaignId']
        assert campaign_id.startswith('cmp-')
        assert result['recordsCreated'] == 5
        assert result['campaign']['status'] == 'draft'
        assert result['campaign']['recipients'] == {'type': 'groups', 'groupIds': ['donors']}
        assert 'scheduledAt' not in result['campaign']
        for pk, sk in [
            (f'USER#{owner}', f'CAMPAIGN#{campaign_id}'),
            (f'USER#{owner}', f'STATUS#draft#CAMPAIGN#{campaign_id}'),
            (f'ORG_STATUS_CAMPAIGNS#{owner}#draft', f'CAMPAIGN#{campaign_id}'),
            (f'USER#{owner}#GROUP#donors', f'CAMPAIGN#{campaign_id}'),
            (f'USER#{owner}#GROUP#donors', f'STATUS#draft#CAMPAIGN#{campaign_id}'),
        ]:
            assert table.get_item(pk, sk)['name'] == 'Ramadan Appeal'

    def test_all_audience_campaign_has_three_copies(self, service, owner):
        result = _create(service, owner, audienceSelection={'type': 'all'})
        assert result['recordsCreated'] == 3

    def test_from_email_precedence(self, service, clients, owner):
        """Org sender first, then the request, then the configured default."""
        assert _create(service, owner)['campaign']['metadata']['fromEmail'] == 'default@goodbricks.org'
        assert _create(service, owner, fromEmail='me@x.org')['campaign']['metadata']['fromEmail'] == 'me@x.org'

        OrgService(clients).create_org(
            owner, {'orgName': 'Noor', 'activeSubscribers': 1, 'senderEmail': 'news@noor.org'}, 'req-setup'
        )
        assert _create(service, owner, fromEmail='me@x.org')['campaign']['metadata']['fromEmail'] == 'news@noor.org'

    def test_layout_registers_ses_template(self, service, mailer, layout, owner):
        result = _create(service, owner, layoutId=layout, layoutVersion='v1', layoutProps={'campaignName': 'Ramadan'})

        template_name = f"{owner}_{result['campaignId']}"
        assert result['layoutRetrieved'] is True
        assert result['renderedHtml'] == '<h1>Ramadan</h1><p>Dear {{firstName}}</p>'
        assert result['sesTemplate']['templateName'] == template_name
        assert result['sesTemplate']['created'] is True
        assert result['campaign']['sesTemplateName'] == template_name
        assert mailer.templates[template_name]['SubjectPart'] == 'Give this Ramadan'

    def test_missing_layout_is_not_fatal(self, service, table, owner):
        result = _create(service, owner, layoutId='missing')

        assert result['layoutRetrieved'] is False
        assert result['sesTemplate']['templateName'] is None
        assert 'not found' in result['sesTemplate']['error']
        assert 'sesTemplateName' not in result['campaign']
        assert table.get_item(f'USER#{owner}', f"CAMPAIGN#{result['campaignId']}") is not None

    def test_ses_failure_is_not_fatal(self, service, mailer, layout, owner):
        mailer.template_error = client_error('LimitExceeded', 'Too many templates')
        result = _create(service, owner, layoutId=layout, layoutVersion='v1')
        assert result['sesTemplate']['error']
        assert result['recordsCreated'] == 5


class TestReadCampaigns:

    def test_get_campaign(self, service, owner):
        campaign_id = _create(service, owner)['campaignId']
        campaign = service.get_campaign(owner, campaign_id)
        assert campaign['campaignId'] == campaign_id
        assert 'PK' not in campaign

    def test_get_missing_campaign(self, service, owner):
        with pytest.raises(NotFoundError):
            service.get_campaign(owner, 'cmp-missing')

    def test_list_newest_first(self, service, owner):
        ids = [_create(service, owner)['campaignId'] for _ in range(3)]
        result = service.list_campaigns(owner)
        assert [campaign['campaignId'] for campaign in result['campaigns']] == list(reversed(ids))

    def test_list_by_status(self, service, owner):
        draft = _create(service, owner)['campaignId']
        scheduled = _create(service, owner, status='scheduled', scheduledAt='2030-01-01T00:00:00Z')['campaignId']

        result = service.list_campaigns(owner, status='scheduled')

        assert [campaign['campaignId'] for campaign in result['campaigns']] == [scheduled]
        assert draft not in [campaign['campaignId'] for campaign in result['campaigns']]

    def test_list_by_schedule_window(self, service, owner):
        early = _create(service, owner, scheduledAt='2030-01-01T00:00:00Z')['campaignId']
        _create(service, owner, scheduledAt='2030-06-01T00:00:00Z')
        _create(service, owner)

        result = service.list_campaigns(owner, scheduled_from='2029-12-01T00:00:00Z', scheduled_to='2030-02-01T00:00:00Z')
        assert [campaign['campaignId'] for campaign in result['campaigns']] == [early]

        later = service.list_campaigns(owner, scheduled_from='2030-03-01T00:00:00Z')
        assert later['count'] == 1

    def test_campaigns_by_status(self, service, owner):
        campaign_id = _create(service, owner)['campaignId']
        result = service.campaigns_by_status(owner, 'draft')
        assert [campaign['campaignId'] for campaign in result['campaigns']] == [campaign_id]
        assert service.campaigns_by_status(owner, 'sent')['count'] == 0


class TestUpdateCampaign:
    """Payload, group and status updates."""

    def test_payload_change_refreshes_every_copy(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']

        result = service.update_campaign(owner, campaign_id, {'name': 'Laylat al-Qadr'}, 'req-2')

        assert result['statusChanged'] is False
        assert result['campaign']['name'] == 'Laylat al-Qadr'
        copies = [item for item in table.items.values() if item.get('campaignId') == campaign_id]
        assert len(copies) == 5
        assert {item['name'] for item in copies} == {'Laylat al-Qadr'}

    def test_null_scheduled_at_removes_it(self, service, table, owner):
        campaign_id = _create(service, owner, scheduledAt='2030-01-01T00:00:00Z')['campaignId']
        service.update_campaign(owner, campaign_id, {'scheduledAt': None}, 'req-2')
        assert 'scheduledAt' not in table.get_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}')
        assert 'scheduledAt' not in table.get_item(f'USER#{owner}#GROUP#donors', f'CAMPAIGN#{campaign_id}')

    def test_metadata_is_merged(self, service, owner):
        campaign_id = _create(service, owner)['campaignId']
        result = service.update_campaign(owner, campaign_id, {'metadata': {'previewText': 'Soon'}}, 'req-2')
        assert result['campaign']['metadata']['subject'] == 'Give this Ramadan'
        assert result['campaign']['metadata']['previewText'] == 'Soon'

    def test_group_change_moves_group_copies(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']

        result = service.update_campaign(
            owner, campaign_id, {'audienceSelection': {'type': 'tag', 'values': ['vip']}}, 'req-2'
        )

        assert result['campaign']['recipients'] == {'type': 'groups', 'groupIds': ['vip']}
        assert table.partition(f'USER#{owner}#GROUP#donors') == []
        assert table.get_item(f'USER#{owner}#GROUP#vip', f'STATUS#draft#CAMPAIGN#{campaign_id}') is not None

    def test_status_change_moves_status_copies(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']

        result = service.update_campaign(
            owner, campaign_id, {'status': 'scheduled', 'scheduledAt': '2030-01-01T00:00:00Z'}, 'req-2'
        )

        assert result['statusChanged'] is True
        assert table.get_item(f'USER#{owner}', f'STATUS#draft#CAMPAIGN#{campaign_id}') is None
        assert table.get_item(f'ORG_STATUS_CAMPAIGNS#{owner}#scheduled', f'CAMPAIGN#{campaign_id}') is not None
        assert service.get_campaign(owner, campaign_id)['scheduledAt'] == '2030-01-01T00:00:00Z'

    def test_status_and_group_change_together(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']

        service.update_campaign(
            owner, campaign_id,
            {'status': 'scheduled', 'recipients': {'type': 'groups', 'groupIds': ['vip']}},
            'req-2'
        )

        assert table.partition(f'USER#{owner}#GROUP#donors') == []
        vip = {item['SK'] for item in table.partition(f'USER#{owner}#GROUP#vip')}
        assert vip == {f'CAMPAIGN#{campaign_id}', f'STATUS#scheduled#CAMPAIGN#{campaign_id}'}

    def test_illegal_status_change(self, service, owner):
        campaign_id = _create(service, owner)['campaignId']
        with pytest.raises(InvalidStateError):
            service.update_campaign(owner, campaign_id, {'status': 'sent'}, 'req-2')

    def test_status_moved_underneath(self, service, table, owner):
        """A payload update against a stale status is a conflict."""
        campaign_id = _create(service, owner)['campaignId']
        original_get = table.get_item

        def stale_get(pk, sk):
            item = original_get(pk, sk)
            table.update_item(pk, sk, set_fields={'status': 'sending'})
            return item

        table.get_item = stale_get
        with pytest.raises(ConflictError):
            service.update_campaign(owner, campaign_id, {'name': 'Changed'}, 'req-2')

    def test_conflicting_update_leaves_no_stale_copies(self, service, table, owner):
        """A rejected payload update must not bring back the old status copies."""
        campaign_id = _create(service, owner, name='Zakat Drive')['campaignId']
        primary = (f'USER#{owner}', f'CAMPAIGN#{campaign_id}')
        stale = table.get_item(*primary)
        service.update_campaign(owner, campaign_id, {'status': 'scheduled'}, 'req-2')

        original_get = table.get_item
        table.get_item = lambda pk, sk: dict(stale) if (pk, sk) == primary else original_get(pk, sk)
        with pytest.raises(ConflictError):
            service.update_campaign(owner, campaign_id, {'name': 'Renamed'}, 'req-3')

        assert original_get(f'USER#{owner}', f'STATUS#draft#CAMPAIGN#{campaign_id}') is None
        assert original_get(f'ORG_STATUS_CAMPAIGNS#{owner}#draft', f'CAMPAIGN#{campaign_id}') is None
        assert original_get(f'USER#{owner}#GROUP#donors', f'STATUS#draft#CAMPAIGN#{campaign_id}') is None
        copies = [item for item in table.items.values() if item.get('campaignId') == campaign_id]
        assert {item['name'] for item in copies} == {'Zakat Drive'}
        assert {item['status'] for item in copies} == {'scheduled'}

    def test_layout_change_registers_template(self, service, mailer, layout, owner):
        campaign_id = _create(service, owner)['campaignId']

        result = service.update_campaign(owner, campaign_id, {'layoutId': layout, 'layoutVersion': 'v1'}, 'req-2')

        assert result['sesTemplate']['templateName'] == f'{owner}_{campaign_id}'
        assert result['campaign']['sesTemplateName'] == f'{owner}_{campaign_id}'
        assert f'{owner}_{campaign_id}' in mailer.templates

    def test_update_missing_campaign(self, service, owner):
        with pytest.raises(NotFoundError):
            service.update_campaign(owner, 'cmp-missing', {'name': 'x'}, 'req-2')


class TestDeleteCampaign:

    def test_delete_removes_every_copy(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']

        result = service.delete_campaign(owner, campaign_id, 'req-3')

        assert result['orphanedKeys'] == []
        assert not any(item.get('campaignId') == campaign_id for item in table.items.values())

    def test_failed_derived_delete_is_reported(self, service, table, owner):
        campaign_id = _create(service, owner)['campaignId']
        table.failing_deletes.add((f'USER#{owner}#GROUP#donors', f'CAMPAIGN#{campaign_id}'))

        result = service.delete_campaign(owner, campaign_id, 'req-3')

        assert result['orphanedKeys'] == [{'PK': f'USER#{owner}#GROUP#donors', 'SK': f'CAMPAIGN#{campaign_id}'}]
        with pytest.raises(NotFoundError):
            service.get_campaign(owner, campaign_id)
