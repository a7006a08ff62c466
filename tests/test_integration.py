"""
Integration tests for the GoodBricks email platform.

Tests the complete flow of the Lambda functions behind API Gateway with real
AWS services. Requires AWS credentials and deployed infrastructure; set
GOODBRICKS_API_ENDPOINT (and optionally GOODBRICKS_API_REGION) to run them.
Nothing is sent through SES here: campaigns are created and inspected but
never sent.
"""

import json
import os
import time
from typing import Any, Dict, Optional

import boto3
import pytest
import requests
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest


# Test configuration
API_ENDPOINT = os.environ.get('GOODBRICKS_API_ENDPOINT', '').rstrip('/')
REGION = os.environ.get('GOODBRICKS_API_REGION', 'us-east-1')

pytestmark = pytest.mark.skipif(not API_ENDPOINT, reason='GOODBRICKS_API_ENDPOINT is not set')


class ApiTestCase:
    """Signs requests with the caller's AWS credentials."""

    def setup_method(self):
        """Setup for each test."""
        self.session = boto3.Session()
        self.credentials = self.session.get_credentials()
        self.run_id = f'{int(time.time() * 1000)}'
        self.owner = f'it-{self.run_id}'

    def _sign_request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Sign and send AWS SigV4 authenticated request."""
        url = f'{API_ENDPOINT}{path}'
        body = json.dumps(payload) if payload is not None else None
        request = AWSRequest(method=method, url=url, data=body)
        SigV4Auth(self.credentials, 'execute-api', REGION).add_auth(request)
        return requests.request(
            method=method,
            url=url,
            headers=dict(request.headers),
            data=body
        )


class TestAudienceAndGroups(ApiTestCase):
    """Audience members and their group memberships."""

    def test_member_lifecycle(self):
        group = self._sign_request('POST', f'/users/{self.owner}/groups', {'groupId': 'donors', 'groupName': 'Donors'})
        assert group.status_code == 201, f'Expected 201, got {group.status_code}: {group.text}'

        email = f'member-{self.run_id}@example.com'
        created = self._sign_request('POST', f'/users/{self.owner}/audience', {
            'email': email, 'firstName': 'Integration', 'lastName': 'Test', 'tags': ['donors']
        })
        assert created.status_code == 201, created.text
        assert created.json()['recordsCreated'] == 3

        duplicate = self._sign_request('POST', f'/users/{self.owner}/audience', {
            'email': email, 'firstName': 'Integration', 'lastName': 'Test'
        })
        assert duplicate.status_code == 409
        assert duplicate.json()['code'] == 'CONFLICT'

        members = self._sign_request('GET', f'/users/{self.owner}/groups/donors/audience')
        assert [member['email'] for member in members.json()['members']] == [email]

        groups = self._sign_request('GET', f'/users/{self.owner}/audience/{email}/groups')
        assert [group['groupId'] for group in groups.json()['groups']] == ['donors']

        updated = self._sign_request('PUT', f'/users/{self.owner}/audience/{email}', {'removeTag': 'donors'})
        assert updated.status_code == 200
        members = self._sign_request('GET', f'/users/{self.owner}/groups/donors/audience')
        assert members.json()['members'] == []

        deleted = self._sign_request('DELETE', f'/users/{self.owner}/audience/{email}')
        assert deleted.status_code == 200
        assert deleted.json()['orphanedKeys'] == []

        missing = self._sign_request('GET', f'/users/{self.owner}/audience/{email}')
        assert missing.status_code == 404

    def test_import(self):
        response = self._sign_request('POST', f'/users/{self.owner}/audience/import', {
            'members': [
                {'email': f' A-{self.run_id}@Example.com ', 'firstName': 'A'},
                {'email': 'not-an-email'},
            ],
            'defaultGroups': ['newsletter']
        })
        assert response.status_code == 200, response.text
        totals = response.json()['totals']
        assert totals['imported'] == 1
        assert totals['skippedInvalid'] == 1

    def test_invalid_request(self):
        response = self._sign_request('POST', f'/users/{self.owner}/audience', {'email': 'nope'})
        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'


class TestCampaigns(ApiTestCase):
    """Campaign creation, status index and state machine."""

    def test_campaign_lifecycle(self):
        self._sign_request('POST', f'/users/{self.owner}/groups', {'groupId': 'vip', 'groupName': 'VIP'})
        created = self._sign_request('POST', f'/users/{self.owner}/campaigns', {
            'name': 'Integration appeal',
            'audienceSelection': {'type': 'tag', 'values': ['vip']},
            'metadata': {'subject': 'Hello {{firstName}}'}
        })
        assert created.status_code == 201, created.text
        campaign_id = created.json()['campaignId']
        assert campaign_id.startswith('cmp-')

        drafts = self._sign_request('GET', f'/users/{self.owner}/campaigns?status=draft')
        assert campaign_id in [campaign['campaignId'] for campaign in drafts.json()['campaigns']]

        by_group = self._sign_request('GET', f'/users/{self.owner}/groups/vip/campaigns?status=draft')
        assert campaign_id in [campaign['campaignId'] for campaign in by_group.json()['campaigns']]

        scheduled = self._sign_request('PUT', f'/users/{self.owner}/campaigns/{campaign_id}', {
            'status': 'scheduled', 'scheduledAt': '2030-01-01T09:00:00Z'
        })
        assert scheduled.status_code == 200, scheduled.text
        assert scheduled.json()['campaign']['status'] == 'scheduled'

        backwards = self._sign_request('PUT', f'/users/{self.owner}/campaigns/{campaign_id}', {'status': 'draft'})
        assert backwards.status_code == 400
        assert backwards.json()['code'] == 'INVALID_STATE'

        no_recipients = self._sign_request('POST', f'/users/{self.owner}/campaigns/{campaign_id}/send')
        assert no_recipients.status_code == 400

        deleted = self._sign_request('DELETE', f'/users/{self.owner}/campaigns/{campaign_id}')
        assert deleted.status_code == 200
        assert self._sign_request('GET', f'/users/{self.owner}/campaigns/{campaign_id}').status_code == 404

    def test_list_with_bad_token(self):
        response = self._sign_request('GET', f'/users/{self.owner}/campaigns?nextToken=garbage!')
        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_TOKEN'


class TestLayouts(ApiTestCase):

    def test_render_component(self):
        response = self._sign_request('POST', '/email/render', {'component': 'welcome', 'props': {'firstName': 'Hana'}})
        assert response.status_code == 200
        assert 'Hana' in response.json()['html']

    def test_render_missing_layout(self):
        response = self._sign_request('POST', '/email/render', {'layoutId': f'missing-{self.run_id}'})
        assert response.status_code == 404
