"""
Campaign sending and transactional email.

Sending a campaign:
1. Load the campaign and check it may enter ``sending``
2. Resolve and de-duplicate the recipients
3. Move the campaign to ``sending``
4. Deliver through SES (bulk templated or personalised individual sends)
5. Settle the campaign as ``sent`` or ``failed``
6. Record deliveries in the audience inverse index, write the send summary
   and bump the group counters

Per-recipient failures are collected and reported; they never abort the send.
"""

import html
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, NamedTuple, Optional

from botocore.exceptions import ClientError

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import DomainError, NotFoundError, ValidationError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode, chunked
from goodbricks_shared.group_service import bump_group_counters
from goodbricks_shared.layout_service import LATEST_VERSION, LayoutService
from goodbricks_shared.logger import log_event
from goodbricks_shared.mailer import CLIENT_SIDE_SES_ERRORS, MAX_BULK_DESTINATIONS, error_code, format_source
from goodbricks_shared.store import AttributeFilter
from goodbricks_shared.templates import RECIPIENT_FIELDS, personalize
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.transitions import TransitionUpdater, campaign_group_ids, ensure_sendable


DELIVERY_ENTITY_TYPE = 'AUDIENCE_CAMPAIGN'
SEND_RECORD_ENTITY_TYPE = 'CAMPAIGN_RECIPIENTS'

DEFAULT_SEND_CONCURRENCY = 10
DEFAULT_BATCH_DELAY_MS = 100


class Delivery(NamedTuple):
    email: str
    message_id: Optional[str]
    error: Optional[str]


class SendOutcome(NamedTuple):
    deliveries: List[Delivery]
    batches: int
    method: str

    @property
    def delivered(self) -> List[Delivery]:
        return [delivery for delivery in self.deliveries if delivery.error is None]

    @property
    def failed(self) -> List[Delivery]:
        return [delivery for delivery in self.deliveries if delivery.error is not None]


def default_campaign_html(campaign: Dict[str, Any]) -> str:
    """Body used when a campaign has no layout."""
    metadata = campaign.get('metadata') or {}
    return (
        '<!DOCTYPE html><html>'
        f"<head><title>{html.escape(metadata.get('subject') or '')}</title></head>"
        '<body>'
        '<h1>Hello {{firstName}} {{lastName}}!</h1>'
        f"<p>{html.escape(campaign.get('description') or 'Thank you for your interest.')}</p>"
        f"<p>Best regards,<br>{html.escape(metadata.get('fromName') or 'The Team')}</p>"
        '</body></html>'
    )


def recipient_values(recipient: Dict[str, Any]) -> Dict[str, str]:
    return {field: recipient.get(field) or '' for field in RECIPIENT_FIELDS}


class SendingService:
    """
    Service class for campaign delivery.

    Usage:
        service = SendingService(clients, concurrency=10, batch_delay_ms=100)
        result = service.send_campaign('user-1', 'cmp-01H...', correlation_id)
    """

    def __init__(
        self,
        clients: AwsClients,
        concurrency: int = DEFAULT_SEND_CONCURRENCY,
        batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS
    ):
        """
        Args:
            clients: AWS client bundle
            concurrency: Worker threads and batch size for individual sends
            batch_delay_ms: Pause between individual send batches
        """
        self.table = clients.table
        self.mailer = clients.mailer
        self.reader = FanOutReader(self.table)
        self.layouts = LayoutService(clients)
        self.concurrency = max(1, concurrency)
        self.batch_delay_ms = max(0, batch_delay_ms)

    # Recipients

    def resolve_recipients(self, campaign: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Recipients of a campaign, de-duplicated by email, first occurrence kept.

        Group campaigns read the group member partitions, list selections
        look up each explicit email, everything else reads the whole
        audience. Members that are not active are left out.
        """
        owner_id = campaign['userId']
        recipients_rule = campaign.get('recipients') or {}
        selection = campaign.get('audienceSelection') or {}

        candidates: List[Dict[str, Any]] = []
        if recipients_rule.get('type') == 'groups':
            for group_id in campaign_group_ids(campaign):
                candidates.extend(self.reader.read_all(keys.group_pk(owner_id, group_id), sk_prefix=keys.AUDIENCE_PREFIX))
        elif selection.get('type') == 'list':
            for email in selection.get('values') or []:
                email = email.strip().lower()
                member = self.reader.get(keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email))
                candidates.append(member or {'email': email})
        else:
            candidates = self.reader.read_all(
                keys.user_pk(owner_id),
                sk_prefix=keys.AUDIENCE_PREFIX,
                filters=[AttributeFilter('status', 'eq', 'active')]
            )

        resolved: Dict[str, Dict[str, Any]] = {}
        for candidate in candidates:
            email = candidate.get('email')
            if not email or email in resolved:
                continue
            if candidate.get('status', 'active') != 'active':
                continue
            resolved[email] = candidate
        return list(resolved.values())

    # Delivery

    def _send_bulk(self, campaign: Dict[str, Any], recipients: List[Dict[str, Any]], source: str) -> SendOutcome:
        deliveries: List[Delivery] = []
        batches = 0
        default_data = {field: '' for field in RECIPIENT_FIELDS}

        for batch in chunked(recipients, MAX_BULK_DESTINATIONS):
            batches += 1
            destinations = [{'email': recipient['email'], 'data': recipient_values(recipient)} for recipient in batch]
            try:
                statuses = self.mailer.send_bulk_templated_email(
                    source, campaign['sesTemplateName'], destinations, default_data
                )
            except ClientError as error:
                deliveries.extend(Delivery(recipient['email'], None, error_code(error) or str(error)) for recipient in batch)
                continue

            for recipient, status in zip(batch, statuses):
                if status.get('Status') == 'Success':
                    deliveries.append(Delivery(recipient['email'], status.get('MessageId'), None))
                else:
                    deliveries.append(Delivery(recipient['email'], None, status.get('Error') or status.get('Status')))
            # Destinations SES returned no status for
            deliveries.extend(
                Delivery(recipient['email'], None, 'MissingStatus') for recipient in batch[len(statuses):]
            )

        return SendOutcome(deliveries, batches, 'bulk-templated')

    def _campaign_html(self, campaign: Dict[str, Any]) -> str:
        if campaign.get('layoutId'):
            renderer = self.layouts.load_renderer(campaign['layoutId'], campaign.get('layoutVersion') or LATEST_VERSION)
            return renderer.render(campaign.get('layoutProps')).html
        return default_campaign_html(campaign)

    def _send_individual(self, campaign: Dict[str, Any], recipients: List[Dict[str, Any]], source: str) -> SendOutcome:
        metadata = campaign['metadata']
        template_html = self._campaign_html(campaign)

        def send_one(recipient: Dict[str, Any]) -> Delivery:
            values = recipient_values(recipient)
            try:
                message_id = self.mailer.send_email(
                    source,
                    [recipient['email']],
                    personalize(metadata['subject'], values, escape=False),
                    html=personalize(template_html, values),
                    text=f"Hello {values['firstName']} {values['lastName']}! "
                         f"{campaign.get('description') or 'Thank you for your interest.'}"
                )
            except ClientError as error:
                return Delivery(recipient['email'], None, error_code(error) or str(error))
            return Delivery(recipient['email'], message_id, None)

        deliveries: List[Delivery] = []
        batches = 0
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for batch in chunked(recipients, self.concurrency):
                if batches and self.batch_delay_ms:
                    time.sleep(self.batch_delay_ms / 1000)
                deliveries.extend(executor.map(send_one, batch))
                batches += 1

        return SendOutcome(deliveries, batches, 'individual')

    def deliver(self, campaign: Dict[str, Any], recipients: List[Dict[str, Any]]) -> SendOutcome:
        metadata = campaign['metadata']
        source = format_source(metadata['fromEmail'], metadata.get('fromName'))
        if campaign.get('sesTemplateName'):
            return self._send_bulk(campaign, recipients, source)
        return self._send_individual(campaign, recipients, source)

    # Operations

    def send_campaign(self, owner_id: str, campaign_id: str, correlation_id: str) -> Dict[str, Any]:
        """
        Send a campaign to its resolved recipients.

        Args:
            owner_id: Owning user id
            campaign_id: Campaign to send
            correlation_id: Request correlation ID for logging and tracing

        Returns:
            Dictionary with the final status, delivery counts, per-recipient
            errors and any orphaned keys

        Raises:
            NotFoundError: If the campaign does not exist
            InvalidStateError: If the campaign is not draft or scheduled
            ValidationError: If subject or fromEmail is missing, or there are no recipients
            ConflictError: If another request changed the status first
        """
        primary = keys.primary_key(keys.EntityKind.CAMPAIGN, owner_id, campaign_id)
        campaign = self.table.get_item(primary.pk, primary.sk)
        if campaign is None:
            raise NotFoundError(f"Campaign '{campaign_id}' not found")

        ensure_sendable(campaign)
        metadata = campaign.get('metadata') or {}
        if not metadata.get('subject'):
            raise ValidationError('Campaign metadata must include subject', {'field': 'metadata.subject'})
        if not metadata.get('fromEmail'):
            raise ValidationError('Campaign metadata must include fromEmail', {'field': 'metadata.fromEmail'})

        recipients = self.resolve_recipients(campaign)
        if not recipients:
            raise ValidationError('Campaign has no recipients', {'campaignId': campaign_id})

        updater = TransitionUpdater(self.table, FanOutWriter(self.table, correlation_id))
        sending = updater.transition_campaign_status(campaign, 'sending')
        orphaned = list(sending.orphaned_keys)
        log_event('campaign_sending', correlation_id, campaignId=campaign_id, recipients=len(recipients))

        try:
            outcome = self.deliver(sending.entity, recipients)
        except Exception as error:
            self._settle_failed(updater, sending.entity, str(error), correlation_id)
            raise

        sent_at = now_iso()
        delivered = outcome.delivered
        final_status = 'sent' if delivered else 'failed'
        changes: Dict[str, Any] = {'emailsSent': len(delivered)}
        if delivered:
            changes['sentAt'] = sent_at
        else:
            changes['lastError'] = outcome.failed[0].error
        settled = updater.transition_campaign_status(sending.entity, final_status, changes)
        orphaned.extend(settled.orphaned_keys)

        self._record_deliveries(updater.writer, settled.entity, delivered, sent_at)
        updater.writer.write(
            {
                'campaignId': campaign_id,
                'userId': owner_id,
                'campaignName': campaign.get('name'),
                'subject': metadata.get('subject'),
                'fromEmail': metadata.get('fromEmail'),
                'fromName': metadata.get('fromName'),
                'totalRecipients': len(recipients),
                'successfulEmails': len(delivered),
                'failedEmails': len(outcome.failed),
                'batchesProcessed': outcome.batches,
                'sendingMethod': outcome.method,
                'status': final_status,
                'sentAt': sent_at
            },
            [keys.campaign_send_record_key(campaign_id, sent_at)],
            WriteMode.UPSERT,
            SEND_RECORD_ENTITY_TYPE
        )

        if delivered:
            bump_group_counters(
                self.table,
                owner_id,
                campaign_group_ids(campaign),
                {'totalCampaignsSent': 1},
                {'lastCampaignSent': sent_at},
                correlation_id=correlation_id
            )

        log_event(
            'campaign_sent',
            correlation_id,
            campaignId=campaign_id,
            status=final_status,
            emailsSent=len(delivered),
            failed=len(outcome.failed)
        )

        return {
            'success': bool(delivered),
            'campaignId': campaign_id,
            'status': final_status,
            'emailsSent': len(delivered),
            'failed': len(outcome.failed),
            'totalRecipients': len(recipients),
            'recipients': [delivery.email for delivery in delivered],
            'errors': [{'email': delivery.email, 'error': delivery.error} for delivery in outcome.failed],
            'sendingMethod': outcome.method,
            'batchesProcessed': outcome.batches,
            'orphanedKeys': keys.key_strings(orphaned)
        }

    def _settle_failed(
        self,
        updater: TransitionUpdater,
        campaign: Dict[str, Any],
        reason: str,
        correlation_id: Optional[str]
    ) -> None:
        try:
            updater.transition_campaign_status(campaign, 'failed', {'lastError': reason})
        except (DomainError, ClientError) as error:
            log_event(
                'campaign_settle_failed',
                correlation_id,
                campaignId=campaign.get('campaignId'),
                errorType=type(error).__name__,
                errorMessage=str(error)
            )

    def _record_deliveries(
        self,
        writer: FanOutWriter,
        campaign: Dict[str, Any],
        delivered: List[Delivery],
        sent_at: str
    ) -> None:
        """Write one inverse-index copy per delivered recipient."""
        owner_id = campaign['userId']
        campaign_id = campaign['campaignId']
        metadata = campaign.get('metadata') or {}
        records = []
        for delivery in delivered:
            payload = {
                'userId': owner_id,
                'email': delivery.email,
                'campaignId': campaign_id,
                'campaignName': campaign.get('name'),
                'subject': metadata.get('subject'),
                'groupIds': campaign_group_ids(campaign) or None,
                'status': campaign['status'],
                'messageId': delivery.message_id,
                'sentAt': sent_at
            }
            records.append((payload, keys.audience_campaign_key(owner_id, delivery.email, campaign_id)))
        writer.write_many(records, WriteMode.UPSERT, DELIVERY_ENTITY_TYPE)

    def send_email(self, request: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """
        Send one transactional email.

        Raises:
            ValidationError: If SES rejects the message, the sender is not
                verified, or the configuration set does not exist
        """
        content = request['content']
        reply_to = [request['replyTo']] if request.get('replyTo') else None
        try:
            message_id = self.mailer.send_email(
                format_source(request['fromEmail'], request.get('fromName')),
                request['recipients'],
                request['subject'],
                html=content.get('html'),
                text=content.get('text'),
                cc_addresses=request.get('cc'),
                bcc_addresses=request.get('bcc'),
                reply_to=reply_to,
                tags=request.get('tags'),
                configuration_set=request.get('configurationSet')
            )
        except ClientError as error:
            code = error_code(error)
            if code in CLIENT_SIDE_SES_ERRORS:
                raise ValidationError(
                    error.response.get('Error', {}).get('Message') or code,
                    {'sesError': code}
                )
            raise

        log_event('email_sent', correlation_id, recipients=len(request['recipients']), messageId=message_id)
        return {'success': True, 'messageId': message_id, 'recipients': request['recipients']}
