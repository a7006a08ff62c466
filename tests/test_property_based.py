"""
Property-based tests for the GoodBricks email platform.
Uses Hypothesis to generate test cases and verify properties hold across all inputs.
"""

import html

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from hypothesis.strategies import composite

from goodbricks_shared import keys
from goodbricks_shared.audience_service import AudienceService
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.sending_service import SendingService
from goodbricks_shared.templates import personalize
from goodbricks_shared.validation import (
    validate_audience_create_request,
    validate_audience_import_request,
    validate_audience_update_request,
    validate_campaign_create_request,
    validate_campaign_update_request,
    validate_email_format,
    validate_group_create_request,
    validate_layout_create_request,
    validate_org_create_request,
    validate_send_email_request,
)

from fakes import FakeLayoutBucket, FakeMailer, InMemoryMainTable


OWNER = 'org-prop'

group_id = st.text(alphabet='abcdefghijklmnopqrstuvwxyz0123456789-', min_size=1, max_size=12)


@composite
def member_email(draw):
    """Generate lower-case member addresses."""
    local_part = draw(st.text(alphabet='abcdefghijklmnopqrstuvwxyz0123456789._', min_size=1, max_size=12))
    domain = draw(st.sampled_from(['example.org', 'noor.org', 'mail.example.com']))
    return f'{local_part}@{domain}'


def fresh_clients():
    return AwsClients(table=InMemoryMainTable(), layouts=FakeLayoutBucket(), mailer=FakeMailer())


VALIDATORS = [
    validate_audience_create_request,
    validate_audience_update_request,
    validate_audience_import_request,
    validate_group_create_request,
    validate_org_create_request,
    validate_campaign_create_request,
    validate_campaign_update_request,
    validate_layout_create_request,
    validate_send_email_request,
]

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(max_size=20),
    lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(max_size=10), children, max_size=3),
    max_leaves=10
)


class TestValidationProperties:
    """Validators accept any parsed JSON body without raising."""

    @pytest.mark.parametrize('validator', VALIDATORS, ids=lambda validator: validator.__name__)
    @given(request=st.dictionaries(st.text(max_size=15), json_values, max_size=6))
    @settings(max_examples=50, suppress_health_check=[HealthCheck.too_slow])
    def test_validation_never_crashes(self, validator, request):
        """Validation returns a list of field errors for arbitrary input."""
        errors = validator(request)
        assert isinstance(errors, list)
        assert all(set(error) == {'field', 'message'} for error in errors)

    @given(st.text(min_size=1, max_size=100).filter(lambda text: '@' not in text))
    @settings(max_examples=100)
    def test_strings_without_at_are_invalid(self, text):
        assert not validate_email_format(text)

    @given(member_email())
    @settings(max_examples=100)
    def test_generated_member_emails_are_valid(self, email):
        assert validate_email_format(email)

    @given(st.text(min_size=1, max_size=30).filter(
        lambda name: name not in {'email', 'firstName', 'lastName', 'tags', 'organization', 'status'}
    ))
    @settings(max_examples=50)
    def test_unexpected_fields_always_detected(self, field_name):
        request = {'email': 'a@example.org', 'firstName': 'A', 'lastName': 'B', field_name: 'x'}
        errors = validate_audience_create_request(request)
        assert any(error['field'] == field_name for error in errors)


class TestMembershipProperties:
    """Membership pairs always mirror the member's tags."""

    @given(
        email=member_email(),
        initial=st.lists(group_id, max_size=4),
        target=st.lists(group_id, max_size=4)
    )
    @settings(max_examples=40, deadline=None)
    def test_pairs_follow_tags_through_update_and_delete(self, email, initial, target):
        clients = fresh_clients()
        table = clients.table
        audience = AudienceService(clients)

        audience.create_member(OWNER, {'email': email, 'firstName': 'A', 'lastName': 'B', 'tags': initial}, 'req-1')
        audience.update_member(OWNER, email, {'tags': target}, 'req-2')

        member_side = {item['groupId'] for item in table.partition(keys.member_groups_pk(OWNER, email))}
        assert member_side == set(target)
        for group in set(initial) | set(target):
            group_side = table.get_item(keys.group_pk(OWNER, group), f'{keys.AUDIENCE_PREFIX}{email}')
            assert (group_side is not None) == (group in target)
        assert set(table.get_item(keys.user_pk(OWNER), f'{keys.AUDIENCE_PREFIX}{email}').get('tags') or ()) == set(target)

        audience.delete_member(OWNER, email, 'req-3')

        assert not any(email in pk or email in sk for pk, sk in table.keys())


class TestRecipientProperties:

    @given(st.lists(member_email(), min_size=1, max_size=12))
    @settings(max_examples=50, deadline=None)
    def test_list_recipients_are_unique_in_first_seen_order(self, emails):
        service = SendingService(fresh_clients(), concurrency=1, batch_delay_ms=0)
        campaign = {'userId': OWNER, 'audienceSelection': {'type': 'list', 'values': emails}}

        resolved = [recipient['email'] for recipient in service.resolve_recipients(campaign)]

        assert resolved == list(dict.fromkeys(emails))


class TestPersonalizeProperties:

    @given(st.text(max_size=40))
    @settings(max_examples=100)
    def test_values_are_escaped(self, value):
        assert personalize('<p>{{firstName}}</p>', {'firstName': value}) == f'<p>{html.escape(value)}</p>'

    @given(st.text(max_size=80))
    @settings(max_examples=100)
    def test_no_values_leaves_source_unchanged(self, source):
        assert personalize(source, {}) == source
