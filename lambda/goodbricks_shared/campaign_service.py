"""
Campaign service.

This module implements campaign creation, reads, updates and deletion.

A campaign is stored under its primary key, the owner status index, the
org-wide status index and, for group campaigns, two copies per target group.
Status changes go through the transition updater; group changes move the
group copies.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError
from ulid import ULID

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import ConflictError, DomainError, NotFoundError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode, strip_storage_attributes
from goodbricks_shared.keys import KeyPair
from goodbricks_shared.layout_service import LATEST_VERSION, LayoutService
from goodbricks_shared.logger import log_event
from goodbricks_shared.org_service import OrgService
from goodbricks_shared.pagination import DEFAULT_PAGE_SIZE
from goodbricks_shared.store import AttributeFilter
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.transitions import TransitionUpdater, campaign_group_ids
from goodbricks_shared.types import Campaign


CAMPAIGN_ENTITY_TYPE = keys.ENTITY_TYPES[keys.EntityKind.CAMPAIGN]

DEFAULT_FROM_EMAIL = 'noreply@goodbricks.org'

# Attributes an update request may change directly
UPDATABLE_FIELDS = ('name', 'description', 'layoutId', 'layoutVersion', 'audienceSelection', 'recipients', 'scheduledAt')

TEMPLATE_NAME_PATTERN = re.compile(r'[^A-Za-z0-9_-]')


def derive_recipients(request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recipient rule of a campaign.

    Explicit ``recipients`` win; a tag selection targets the tagged groups;
    anything else targets the whole audience.
    """
    if request.get('recipients'):
        recipients = dict(request['recipients'])
        if recipients.get('type') == 'groups':
            recipients['groupIds'] = list(dict.fromkeys(recipients.get('groupIds') or []))
        return recipients

    selection = request.get('audienceSelection') or {}
    if selection.get('type') == 'tag' and selection.get('values'):
        return {'type': 'groups', 'groupIds': list(dict.fromkeys(selection['values']))}
    return {'type': 'all_audience'}


def ses_template_name(owner_id: str, campaign_id: str) -> str:
    return TEMPLATE_NAME_PATTERN.sub('-', f'{owner_id}_{campaign_id}')


class CampaignService:
    """
    Service class for campaign operations.

    This class encapsulates campaign business logic and delegates the
    multi-copy persistence to the fan-out writer and transition updater.
    """

    def __init__(self, clients: AwsClients, default_from_email: str = DEFAULT_FROM_EMAIL):
        """
        Args:
            clients: AWS client bundle
            default_from_email: Sender used when neither the org nor the request names one
        """
        self.table = clients.table
        self.mailer = clients.mailer
        self.reader = FanOutReader(self.table)
        self.layouts = LayoutService(clients)
        self.orgs = OrgService(clients)
        self.default_from_email = default_from_email

    def _get_campaign_item(self, owner_id: str, campaign_id: str) -> Dict[str, Any]:
        pair = keys.primary_key(keys.EntityKind.CAMPAIGN, owner_id, campaign_id)
        item = self.table.get_item(pair.pk, pair.sk)
        if item is None:
            raise NotFoundError(f"Campaign '{campaign_id}' not found")
        return item

    def register_template(
        self,
        campaign: Dict[str, Any],
        layout_props: Optional[Dict[str, Any]],
        correlation_id: Optional[str]
    ) -> Tuple[Dict[str, Any], Optional[str]]:
        """
        Render the campaign's layout and register it as an SES template.

        Failures are not fatal: they are logged and reported in the returned
        info under ``error``.

        Returns:
            Tuple of (sesTemplate info, rendered HTML or None)
        """
        owner_id = campaign['userId']
        campaign_id = campaign['campaignId']
        template_name = ses_template_name(owner_id, campaign_id)
        subject = (campaign.get('metadata') or {}).get('subject') or campaign.get('name') or 'Email Template'

        try:
            renderer = self.layouts.load_renderer(campaign['layoutId'], campaign.get('layoutVersion') or LATEST_VERSION)
            rendered = renderer.render(layout_props)
            saved = self.mailer.create_or_update_template(template_name, subject, rendered.html)
        except (DomainError, ClientError) as error:
            log_event(
                'ses_template_failed',
                correlation_id,
                campaignId=campaign_id,
                layoutId=campaign['layoutId'],
                errorType=type(error).__name__,
                errorMessage=str(error)
            )
            return {'templateName': None, 'error': str(error)}, None

        log_event('ses_template_registered', correlation_id, campaignId=campaign_id, templateName=template_name)
        info = {
            'templateName': template_name,
            'created': saved.created,
            'updated': saved.updated,
            'variables': rendered.variables
        }
        return info, rendered.html

    def create_campaign(self, owner_id: str, request: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """
        Create a campaign.

        This method implements the complete creation flow:
        1. Derive the recipient rule and resolve the sender address
        2. Render the layout and register the SES template (best-effort)
        3. Fan-out create-only of every campaign copy

        Args:
            owner_id: Owning user id
            request: Validated creation request
            correlation_id: Request correlation ID for logging and tracing

        Returns:
            Dictionary with the campaign, recordsCreated and the template outcome
        """
        campaign_id = f'cmp-{ULID()}'
        now = now_iso()
        recipients = derive_recipients(request)
        status = request.get('status') or 'draft'

        org = self.orgs.find_org(owner_id)
        metadata = dict(request.get('metadata') or {})
        metadata['fromEmail'] = (
            (org or {}).get('senderEmail')
            or metadata.get('fromEmail')
            or request.get('fromEmail')
            or self.default_from_email
        )

        campaign: Campaign = {
            'userId': owner_id,
            'campaignId': campaign_id,
            'name': request['name'].strip(),
            'description': request.get('description') or '',
            'audienceSelection': request['audienceSelection'],
            'recipients': recipients,
            'status': status,
            'scheduledAt': request.get('scheduledAt'),
            'emailsSent': 0,
            'createdAt': now,
            'lastModified': now,
            'metadata': metadata
        }

        ses_template = None
        rendered_html = None
        if request.get('layoutId'):
            campaign['layoutId'] = request['layoutId']
            campaign['layoutVersion'] = request.get('layoutVersion') or LATEST_VERSION
            if request.get('layoutProps'):
                campaign['layoutProps'] = request['layoutProps']
            ses_template, rendered_html = self.register_template(campaign, request.get('layoutProps'), correlation_id)
            if ses_template.get('templateName'):
                campaign['sesTemplateName'] = ses_template['templateName']

        writer = FanOutWriter(self.table, correlation_id)
        try:
            result = writer.write(
                campaign,
                keys.campaign_keys(owner_id, campaign_id, status, campaign_group_ids(campaign)),
                WriteMode.CREATE_ONLY,
                CAMPAIGN_ENTITY_TYPE
            )
        except ConflictError:
            raise ConflictError(f"Campaign '{campaign_id}' already exists", {'campaignId': campaign_id})

        log_event('campaign_created', correlation_id, userId=owner_id, campaignId=campaign_id,
                  recordsCreated=result.records_written)

        return {
            'campaignId': campaign_id,
            'campaign': {key: value for key, value in campaign.items() if value is not None},
            'recordsCreated': result.records_written,
            'layoutRetrieved': rendered_html is not None,
            'renderedHtml': rendered_html,
            'sesTemplate': ses_template
        }

    def get_campaign(self, owner_id: str, campaign_id: str) -> Dict[str, Any]:
        return strip_storage_attributes(self._get_campaign_item(owner_id, campaign_id))

    def list_campaigns(
        self,
        owner_id: str,
        status: Optional[str] = None,
        scheduled_from: Optional[str] = None,
        scheduled_to: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        List campaigns newest first.

        ``status`` selects the status key range; the scheduledAt bounds are
        applied after the read, so a page may be short.
        """
        prefix = keys.status_campaign_prefix(status) if status else keys.CAMPAIGN_PREFIX

        filters: List[AttributeFilter] = []
        if scheduled_from and scheduled_to:
            filters.append(AttributeFilter('scheduledAt', 'between', scheduled_from, scheduled_to))
        elif scheduled_from:
            filters.append(AttributeFilter('scheduledAt', 'gte', scheduled_from))
        elif scheduled_to:
            filters.append(AttributeFilter('scheduledAt', 'lte', scheduled_to))

        page = self.reader.read(
            keys.user_pk(owner_id),
            sk_prefix=prefix,
            filters=filters or None,
            limit=limit,
            page_token=next_token,
            newest_first=True
        )
        return {'campaigns': page.items, 'count': len(page.items), 'nextToken': page.next_token}

    def campaigns_by_status(
        self,
        owner_id: str,
        status: str,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """Campaigns in one status from the org-wide status index, newest first."""
        page = self.reader.read(
            keys.org_status_pk(owner_id, status),
            sk_prefix=keys.CAMPAIGN_PREFIX,
            limit=limit,
            page_token=next_token,
            newest_first=True
        )
        return {'status': status, 'campaigns': page.items, 'count': len(page.items), 'nextToken': page.next_token}

    def update_campaign(
        self,
        owner_id: str,
        campaign_id: str,
        request: Dict[str, Any],
        correlation_id: str
    ) -> Dict[str, Any]:
        """
        Update a campaign.

        Payload changes refresh every copy. A status change goes through the
        state machine and moves the status copies; a change of target groups
        moves the group copies. A null ``scheduledAt`` removes it.

        Raises:
            NotFoundError: If the campaign does not exist
            InvalidStateError: If the status change is not allowed
            ConflictError: If another request changed the status first
        """
        current = self._get_campaign_item(owner_id, campaign_id)
        old_status = current['status']
        new_status = request.get('status') or old_status

        changes: Dict[str, Any] = {
            field: request[field] for field in UPDATABLE_FIELDS if field in request
        }
        if 'audienceSelection' in request or 'recipients' in request:
            changes['recipients'] = derive_recipients(request)
        if 'metadata' in request:
            changes['metadata'] = {**(current.get('metadata') or {}), **request['metadata']}

        ses_template = None
        layout_changed = any(
            field in request and request[field] != current.get(field) for field in ('layoutId', 'layoutVersion')
        )
        if layout_changed and (request.get('layoutId') or current.get('layoutId')):
            preview = {**strip_storage_attributes(current), **changes}
            preview.setdefault('layoutVersion', LATEST_VERSION)
            ses_template, _ = self.register_template(preview, preview.get('layoutProps'), correlation_id)
            if ses_template.get('templateName'):
                changes['sesTemplateName'] = ses_template['templateName']

        old_groups = campaign_group_ids(current)
        updater = TransitionUpdater(self.table, FanOutWriter(self.table, correlation_id))

        if new_status != old_status:
            result = updater.transition_campaign_status(current, new_status, changes)
            updated = result.entity
            new_groups = campaign_group_ids(updated)
            # Status copies moved with the transition; group copies of dropped groups remain
            dropped: List[KeyPair] = [
                KeyPair(keys.group_pk(owner_id, group_id), f'{keys.CAMPAIGN_PREFIX}{campaign_id}')
                for group_id in old_groups if group_id not in new_groups
            ]
            orphaned = result.orphaned_keys + updater.writer.delete(dropped)
        else:
            updated, orphaned = self._update_payload(updater, current, changes)

        response = {
            'campaign': updated,
            'statusChanged': new_status != old_status,
            'orphanedKeys': keys.key_strings(orphaned)
        }
        if ses_template is not None:
            response['sesTemplate'] = ses_template
        log_event('campaign_updated', correlation_id, campaignId=campaign_id, statusChanged=response['statusChanged'])
        return response

    def _update_payload(
        self,
        updater: TransitionUpdater,
        current: Dict[str, Any],
        changes: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], List[KeyPair]]:
        """
        Refresh every copy with new attributes when the status is unchanged.

        The conditional primary update runs first, so a request that loses
        to a concurrent status change writes no derived copies.
        """
        owner_id = current['userId']
        campaign_id = current['campaignId']
        status = current['status']

        removed = [name for name, value in changes.items() if value is None]
        set_fields = {name: value for name, value in changes.items() if value is not None}
        set_fields['lastModified'] = now_iso()

        updated = strip_storage_attributes(current)
        updated.update(set_fields)
        for name in removed:
            updated.pop(name, None)

        old_groups = campaign_group_ids(current)
        new_groups = campaign_group_ids(updated)
        kept = [group_id for group_id in new_groups if group_id in old_groups]

        primary = keys.primary_key(keys.EntityKind.CAMPAIGN, owner_id, campaign_id)
        try:
            self.table.update_item(
                primary.pk,
                primary.sk,
                set_fields=set_fields,
                remove_fields=removed,
                expected={'status': status},
                must_exist=True
            )
        except ConflictError:
            raise ConflictError(
                'Campaign status was changed by another request',
                {'campaignId': campaign_id, 'expectedStatus': status}
            )

        derived = keys.campaign_keys(owner_id, campaign_id, status, kept)[1:]
        updater.writer.write(updated, derived, WriteMode.UPSERT, CAMPAIGN_ENTITY_TYPE)

        orphaned = updater.move_campaign_groups(updated, old_groups, new_groups)
        return updated, orphaned

    def delete_campaign(self, owner_id: str, campaign_id: str, correlation_id: str) -> Dict[str, Any]:
        """
        Delete the primary copy, then best-effort delete every derived copy.

        Delivery history in the audience inverse index is kept.

        Raises:
            NotFoundError: If the campaign does not exist
        """
        current = self._get_campaign_item(owner_id, campaign_id)
        pairs = keys.campaign_keys(owner_id, campaign_id, current['status'], campaign_group_ids(current))

        self.table.delete_item(pairs[0].pk, pairs[0].sk)
        orphaned = FanOutWriter(self.table, correlation_id).delete(pairs[1:])

        log_event('campaign_deleted', correlation_id, campaignId=campaign_id, orphaned=len(orphaned))
        return {'campaignId': campaign_id, 'deleted': True, 'orphanedKeys': keys.key_strings(orphaned)}
