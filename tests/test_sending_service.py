"""
Unit tests for campaign sending and transactional email.
"""

import pytest

from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.campaign_service import CampaignService
from goodbricks_shared.errors import InvalidStateError, NotFoundError, ValidationError
from goodbricks_shared.group_service import GroupService
from goodbricks_shared.layout_service import LayoutService
from goodbricks_shared.sending_service import SendingService, default_campaign_html, recipient_values

from fakes import client_error


@pytest.fixture
def service(clients):
    return SendingService(clients, concurrency=2, batch_delay_ms=0)


@pytest.fixture
def campaigns(clients):
    return CampaignService(clients)


@pytest.fixture
def audience(clients, owner):
    GroupService(clients).create_group(owner, {'groupId': 'donors', 'groupName': 'Donors'}, 'req-setup')
    audience = AudienceService(clients)
    people = [
        ('amina@example.org', 'Amina', ['donors'], 'active'),
        ('bilal@example.org', 'Bilal', ['donors'], 'active'),
        ('cyra@example.org', 'Cyra', [], 'active'),
        ('dawud@example.org', 'Dawud', ['donors'], 'unsubscribed'),
    ]
    for email, first_name, tags, status in people:
        audience.create_member(owner, {
            'email': email, 'firstName': first_name, 'lastName': 'Test', 'tags': tags, 'status': status
        }, 'req-setup')
    return audience


def _campaign(campaigns, owner, selection=None, **overrides):
    request = {
        'name': 'Eid Newsletter',
        'description': 'Eid plans',
        'audienceSelection': selection or {'type': 'tag', 'values': ['donors']},
        'metadata': {'subject': 'Eid Mubarak {{firstName}}', 'fromEmail': 'news@noor.org', 'fromName': 'Noor'},
        **overrides
    }
    return campaigns.create_campaign(owner, request, 'req-setup')['campaignId']


class TestResolveRecipients:
    """Recipient resolution."""

    def test_group_members_active_only(self, service, campaigns, audience, owner):
        campaign = campaigns.get_campaign(owner, _campaign(campaigns, owner))
        emails = [recipient['email'] for recipient in service.resolve_recipients(campaign)]
        assert emails == ['amina@example.org', 'bilal@example.org']

    def test_all_audience(self, service, campaigns, audience, owner):
        campaign = campaigns.get_campaign(owner, _campaign(campaigns, owner, {'type': 'all'}))
        emails = [recipient['email'] for recipient in service.resolve_recipients(campaign)]
        assert emails == ['amina@example.org', 'bilal@example.org', 'cyra@example.org']

    def test_explicit_list_dedupes(self, service, campaigns, audience, owner):
        selection = {'type': 'list', 'values': ['Cyra@example.org', 'cyra@example.org', 'guest@example.org']}
        campaign = campaigns.get_campaign(owner, _campaign(campaigns, owner, selection))
        recipients = service.resolve_recipients(campaign)
        assert [recipient['email'] for recipient in recipients] == ['cyra@example.org', 'guest@example.org']
        assert recipients[0]['firstName'] == 'Cyra'

    def test_overlapping_groups_dedupe(self, service, campaigns, audience, clients, owner):
        GroupService(clients).create_group(owner, {'groupId': 'vip', 'groupName': 'VIP'}, 'req-setup')
        GroupService(clients).add_members(owner, 'vip', ['amina@example.org'], 'req-setup')
        campaign = campaigns.get_campaign(
            owner, _campaign(campaigns, owner, {'type': 'tag', 'values': ['donors', 'vip']})
        )
        emails = [recipient['email'] for recipient in service.resolve_recipients(campaign)]
        assert emails == ['amina@example.org', 'bilal@example.org']


class TestSendCampaign:
    """The send operation."""

    def test_individual_send(self, service, campaigns, audience, mailer, table, owner):
        campaign_id = _campaign(campaigns, owner)

        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['success'] is True
        assert result['status'] == 'sent'
        assert result['emailsSent'] == 2
        assert result['failed'] == 0
        assert result['sendingMethod'] == 'individual'
        assert result['batchesProcessed'] == 1
        assert sorted(result['recipients']) == ['amina@example.org', 'bilal@example.org']

        subjects = sorted(message['subject'] for message in mailer.sent)
        assert subjects == ['Eid Mubarak Amina', 'Eid Mubarak Bilal']
        assert mailer.sent[0]['source'] == 'Noor <news@noor.org>'
        assert 'Hello Amina Test!' in [m for m in mailer.sent if m['to'] == ['amina@example.org']][0]['html']

        primary = table.get_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}')
        assert primary['status'] == 'sent'
        assert primary['emailsSent'] == 2
        assert table.get_item(f'USER#{owner}', f'STATUS#sent#CAMPAIGN#{campaign_id}') is not None
        assert table.get_item(f'USER#{owner}', f'STATUS#draft#CAMPAIGN#{campaign_id}') is None
        assert table.get_item(f'USER#{owner}', f'STATUS#sending#CAMPAIGN#{campaign_id}') is None

    def test_subject_keeps_raw_characters(self, service, campaigns, audience, mailer, owner):
        audience.create_member(owner, {
            'email': 'sean@example.org', 'firstName': "Sean & O'Brien", 'lastName': 'Test'
        }, 'req-setup')
        campaign_id = _campaign(campaigns, owner, {'type': 'list', 'values': ['sean@example.org']})

        service.send_campaign(owner, campaign_id, 'req-1')

        message = mailer.sent[0]
        assert message['subject'] == "Eid Mubarak Sean & O'Brien"
        assert 'Hello Sean &amp; O&#x27;Brien Test!' in message['html']

    def test_send_writes_history(self, service, campaigns, audience, table, owner):
        campaign_id = _campaign(campaigns, owner)

        service.send_campaign(owner, campaign_id, 'req-1')

        delivery = table.get_item(f'AUDIENCE_CAMPAIGNS#{owner}#amina@example.org', f'CAMPAIGN#{campaign_id}')
        assert delivery['status'] == 'sent'
        assert delivery['messageId'].startswith('msg-')
        assert delivery['groupIds'] == ['donors']

        summary = table.partition(f'CAMPAIGN_RECIPIENTS#{campaign_id}')
        assert len(summary) == 1
        assert summary[0]['successfulEmails'] == 2
        assert summary[0]['SK'].startswith('SENT#')

        group = table.get_item(f'USER#{owner}', 'GROUPMETADATA#donors')
        assert group['totalCampaignsSent'] == 1
        assert group['lastCampaignSent']

        history = audience.member_campaigns(owner, 'amina@example.org')
        assert [campaign['campaignId'] for campaign in history['campaigns']] == [campaign_id]

    def test_partial_failure_is_reported(self, service, campaigns, audience, mailer, owner):
        mailer.rejected.add('bilal@example.org')
        campaign_id = _campaign(campaigns, owner)

        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['status'] == 'sent'
        assert result['emailsSent'] == 1
        assert result['errors'] == [{'email': 'bilal@example.org', 'error': 'MessageRejected'}]

    def test_total_failure_settles_failed(self, service, campaigns, audience, mailer, table, owner):
        mailer.rejected.update({'amina@example.org', 'bilal@example.org'})
        campaign_id = _campaign(campaigns, owner)

        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['success'] is False
        assert result['status'] == 'failed'
        primary = table.get_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}')
        assert primary['status'] == 'failed'
        assert primary['lastError'] == 'MessageRejected'
        assert table.get_item(f'USER#{owner}', 'GROUPMETADATA#donors')['totalCampaignsSent'] == 0
        assert table.partition(f'AUDIENCE_CAMPAIGNS#{owner}#amina@example.org') == []

    def test_bulk_templated_send(self, service, campaigns, audience, mailer, clients, owner):
        LayoutService(clients).create_layout({
            'layoutId': 'eid', 'html': '<p>Eid Mubarak {{firstName}}</p>', 'variables': ['firstName']
        }, 'req-setup')
        campaign_id = _campaign(campaigns, owner, layoutId='eid')

        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['sendingMethod'] == 'bulk-templated'
        assert result['emailsSent'] == 2
        call = mailer.bulk_calls[0]
        assert call['template'] == f'{owner}_{campaign_id}'
        assert call['destinations'][0]['data']['firstName'] == 'Amina'
        assert mailer.sent == []

    def test_bulk_batch_error_fails_that_batch(self, service, campaigns, audience, mailer, clients, owner):
        LayoutService(clients).create_layout({'layoutId': 'eid', 'html': '<p>Hi</p>'}, 'req-setup')
        campaign_id = _campaign(campaigns, owner, layoutId='eid')

        def throttled(*args, **kwargs):
            raise client_error('Throttling')

        mailer.send_bulk_templated_email = throttled
        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['status'] == 'failed'
        assert {error['error'] for error in result['errors']} == {'Throttling'}

    def test_bulk_short_status_list_counts_failures(self, service, campaigns, audience, mailer, clients, owner):
        LayoutService(clients).create_layout({'layoutId': 'eid', 'html': '<p>Hi</p>'}, 'req-setup')
        campaign_id = _campaign(campaigns, owner, layoutId='eid')
        mailer.send_bulk_templated_email = lambda *args, **kwargs: [{'Status': 'Success', 'MessageId': 'bulk-1'}]

        result = service.send_campaign(owner, campaign_id, 'req-1')

        assert result['status'] == 'sent'
        assert result['emailsSent'] == 1
        assert result['failed'] == 1
        assert result['errors'] == [{'email': 'bilal@example.org', 'error': 'MissingStatus'}]

    def test_batches_pause_between(self, clients, campaigns, audience, owner, monkeypatch):
        pauses = []
        monkeypatch.setattr('goodbricks_shared.sending_service.time.sleep', pauses.append)
        service = SendingService(clients, concurrency=1, batch_delay_ms=250)

        result = service.send_campaign(owner, _campaign(campaigns, owner), 'req-1')

        assert result['batchesProcessed'] == 2
        assert pauses == [0.25]

    def test_missing_campaign(self, service, owner):
        with pytest.raises(NotFoundError):
            service.send_campaign(owner, 'cmp-missing', 'req-1')

    def test_already_sent(self, service, campaigns, audience, owner):
        campaign_id = _campaign(campaigns, owner)
        service.send_campaign(owner, campaign_id, 'req-1')
        with pytest.raises(InvalidStateError):
            service.send_campaign(owner, campaign_id, 'req-2')

    def test_no_recipients(self, service, campaigns, owner, table):
        campaign_id = _campaign(campaigns, owner, {'type': 'tag', 'values': ['empty']})
        with pytest.raises(ValidationError):
            service.send_campaign(owner, campaign_id, 'req-1')
        assert table.get_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}')['status'] == 'draft'

    def test_missing_subject(self, service, campaigns, audience, table, owner):
        campaign_id = _campaign(campaigns, owner, metadata={'fromEmail': 'news@noor.org'})
        with pytest.raises(ValidationError) as exc_info:
            service.send_campaign(owner, campaign_id, 'req-1')
        assert exc_info.value.details == {'field': 'metadata.subject'}

    def test_delivery_crash_settles_failed(self, service, campaigns, audience, table, owner):
        """An unexpected error mid-send leaves the campaign failed, not sending."""
        campaign_id = _campaign(campaigns, owner)
        table.update_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}', set_fields={'layoutId': 'vanished'})

        with pytest.raises(NotFoundError):
            service.send_campaign(owner, campaign_id, 'req-1')

        primary = table.get_item(f'USER#{owner}', f'CAMPAIGN#{campaign_id}')
        assert primary['status'] == 'failed'
        assert 'vanished' in primary['lastError']


class TestSendEmail:
    """Transactional email."""

    def _request(self, **overrides):
        return {
            'recipients': ['a@example.org'],
            'subject': 'Receipt',
            'content': {'html': '<p>Thanks</p>', 'text': 'Thanks'},
            'fromEmail': 'billing@noor.org',
            'fromName': 'Noor Billing',
            'replyTo': 'help@noor.org',
            'tags': [{'name': 'kind', 'value': 'receipt'}],
            **overrides
        }

    def test_send(self, service, mailer):
        result = service.send_email(self._request(), 'req-1')

        assert result['success'] is True
        assert result['messageId'] == 'msg-1'
        sent = mailer.sent[0]
        assert sent['source'] == 'Noor Billing <billing@noor.org>'
        assert sent['reply_to'] == ['help@noor.org']
        assert sent['tags'] == [{'name': 'kind', 'value': 'receipt'}]

    @pytest.mark.parametrize('code', ['MessageRejected', 'MailFromDomainNotVerifiedException', 'ConfigurationSetDoesNotExist'])
    def test_client_side_errors_are_validation(self, service, mailer, code):
        mailer.send_error = client_error(code, 'Rejected by SES')
        with pytest.raises(ValidationError) as exc_info:
            service.send_email(self._request(), 'req-1')
        assert exc_info.value.details == {'sesError': code}

    def test_other_errors_propagate(self, service, mailer):
        mailer.send_error = client_error('ServiceUnavailable')
        with pytest.raises(Exception) as exc_info:
            service.send_email(self._request(), 'req-1')
        assert not isinstance(exc_info.value, ValidationError)


class TestHelpers:

    def test_default_html_escapes(self):
        body = default_campaign_html({'description': '<b>', 'metadata': {'subject': 'Hi'}})
        assert '&lt;b&gt;' in body
        assert '{{firstName}}' in body

    def test_recipient_values(self):
        assert recipient_values({'email': 'a@x.org', 'firstName': None}) == {
            'firstName': '', 'lastName': '', 'email': 'a@x.org', 'organization': ''
        }
