"""
Audience service.

This module implements the business logic for audience members, including:
- Member creation with group membership fan-out
- Member reads, listing, updates and deletion
- Bulk import with upsert and insert-only modes
- Campaign history per member (the AUDIENCE_CAMPAIGNS inverse index)

Group membership is changed only through the transition updater, which keeps
the member's ``tags`` set and the membership records reconciled.
"""

from typing import Any, Dict, List, Optional, Tuple

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import ConflictError, NotFoundError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode, strip_storage_attributes
from goodbricks_shared.group_service import bump_group_counters
from goodbricks_shared.keys import KeyPair
from goodbricks_shared.logger import log_event
from goodbricks_shared.pagination import DEFAULT_PAGE_SIZE
from goodbricks_shared.store import AttributeFilter
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.transitions import MEMBERSHIP_ENTITY_TYPE, TransitionUpdater
from goodbricks_shared.types import AudienceMember
from goodbricks_shared.validation import validate_email_format


AUDIENCE_ENTITY_TYPE = keys.ENTITY_TYPES[keys.EntityKind.AUDIENCE]

DEFAULT_TOTALS_LIMIT = 100


def normalize_email(email: str) -> str:
    return email.strip().lower()


def present_member(item: Dict[str, Any]) -> Dict[str, Any]:
    """Member as returned by the API: storage attributes dropped, tags as a sorted list."""
    member = strip_storage_attributes(item)
    member['tags'] = sorted(member.get('tags') or [])
    return member


class AudienceService:
    """
    Service class for audience member operations.

    This class encapsulates all business logic for audience members,
    delegating persistence to the fan-out writer and transition updater.
    """

    def __init__(self, clients: AwsClients):
        """
        Args:
            clients: AWS client bundle
        """
        self.table = clients.table
        self.reader = FanOutReader(self.table)

    def _updater(self, correlation_id: Optional[str]) -> TransitionUpdater:
        return TransitionUpdater(self.table, FanOutWriter(self.table, correlation_id))

    def _get_member_item(self, owner_id: str, email: str) -> Optional[Dict[str, Any]]:
        pair = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
        return self.table.get_item(pair.pk, pair.sk)

    def _member_records(self, member: Dict[str, Any], group_ids: List[str]) -> List[Tuple[Dict[str, Any], KeyPair]]:
        """Primary copy plus the symmetric membership pair per group."""
        updater = TransitionUpdater(self.table)
        pairs = keys.audience_keys(member['userId'], member['email'], group_ids)
        records = [(member, pairs[0])]
        for group_id in group_ids:
            payload = updater.membership_payload(member, group_id)
            for pair in keys.membership_keys(member['userId'], group_id, member['email']):
                records.append((payload, pair))
        return records

    def create_member(self, owner_id: str, request: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """
        Create an audience member and its group memberships.

        This method implements the complete creation flow:
        1. Normalize the email and de-duplicate the group ids in ``tags``
        2. Fan-out create-only: primary copy and a membership pair per group
        3. Best-effort increment of each group's memberCount

        Args:
            owner_id: Owning user id
            request: Validated creation request
            correlation_id: Request correlation ID for logging and tracing

        Returns:
            Dictionary with the created member and the number of records written

        Raises:
            ConflictError: If the member already exists
        """
        email = normalize_email(request['email'])
        group_ids = list(dict.fromkeys(request.get('tags') or []))
        now = now_iso()

        member: AudienceMember = {
            'userId': owner_id,
            'email': email,
            'firstName': request['firstName'].strip(),
            'lastName': request['lastName'].strip(),
            'organization': request.get('organization') or '',
            'status': request.get('status') or 'active',
            'createdAt': now,
            'lastModified': now
        }
        if group_ids:
            member['tags'] = set(group_ids)

        writer = FanOutWriter(self.table, correlation_id)
        try:
            result = writer.write_many(
                self._member_records(member, group_ids), WriteMode.CREATE_ONLY, AUDIENCE_ENTITY_TYPE
            )
        except ConflictError:
            raise ConflictError(f"Audience member '{email}' already exists", {'email': email})

        bump_group_counters(self.table, owner_id, group_ids, {'memberCount': 1}, correlation_id=correlation_id)
        log_event('audience_member_created', correlation_id, userId=owner_id, groups=len(group_ids))

        return {'member': present_member(member), 'recordsCreated': result.records_written}

    def get_member(self, owner_id: str, email: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the member does not exist
        """
        email = normalize_email(email)
        item = self._get_member_item(owner_id, email)
        if item is None:
            raise NotFoundError(f"Audience member '{email}' not found")
        return present_member(item)

    def list_members(
        self,
        owner_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        page = self.reader.read(
            keys.user_pk(owner_id),
            sk_prefix=keys.AUDIENCE_PREFIX,
            limit=limit,
            page_token=next_token
        )
        members = [present_member(item) for item in page.items]
        return {'members': members, 'count': len(members), 'nextToken': page.next_token}

    def update_member(
        self,
        owner_id: str,
        email: str,
        request: Dict[str, Any],
        correlation_id: str
    ) -> Dict[str, Any]:
        """
        Update member attributes and group membership.

        ``tags`` replaces the membership list; ``addTag`` and ``removeTag``
        change one group. Membership copies of unchanged groups are refreshed
        with the new attributes.

        Raises:
            NotFoundError: If the member does not exist
        """
        email = normalize_email(email)
        current = self._get_member_item(owner_id, email)
        if current is None:
            raise NotFoundError(f"Audience member '{email}' not found")

        current_groups = sorted(current.get('tags') or [])
        target_groups = list(request['tags']) if request.get('tags') is not None else list(current_groups)
        if request.get('addTag') and request['addTag'] not in target_groups:
            target_groups.append(request['addTag'])
        if request.get('removeTag'):
            target_groups = [group_id for group_id in target_groups if group_id != request['removeTag']]
        target_groups = list(dict.fromkeys(target_groups))

        set_fields = {
            field: request[field]
            for field in ('firstName', 'lastName', 'organization', 'status')
            if request.get(field) is not None
        }
        set_fields['lastModified'] = now_iso()

        primary = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
        member = self.table.update_item(primary.pk, primary.sk, set_fields=set_fields, must_exist=True)

        updater = self._updater(correlation_id)
        result = updater.sync_memberships(member, current_groups, target_groups)
        if len(set_fields) > 1:
            kept = [group_id for group_id in target_groups if group_id in current_groups]
            records = []
            for group_id in kept:
                payload = updater.membership_payload(member, group_id)
                records.extend((payload, pair) for pair in keys.membership_keys(owner_id, group_id, email))
            updater.writer.write_many(records, WriteMode.UPSERT, MEMBERSHIP_ENTITY_TYPE)

        added = [group_id for group_id in target_groups if group_id not in current_groups]
        removed = [group_id for group_id in current_groups if group_id not in target_groups]
        bump_group_counters(self.table, owner_id, added, {'memberCount': 1}, correlation_id=correlation_id)
        bump_group_counters(self.table, owner_id, removed, {'memberCount': -1}, correlation_id=correlation_id)

        return {
            'member': present_member(result.entity),
            'groupsAdded': added,
            'groupsRemoved': removed,
            'orphanedKeys': keys.key_strings(result.orphaned_keys)
        }

    def delete_member(self, owner_id: str, email: str, correlation_id: str) -> Dict[str, Any]:
        """
        Delete the primary copy, then best-effort delete every membership pair.

        Memberships are taken from both the member's tags and the member-side
        membership partition, so records that drifted from the tags are
        cleaned up too.

        Raises:
            NotFoundError: If the member does not exist
        """
        email = normalize_email(email)
        current = self._get_member_item(owner_id, email)
        if current is None:
            raise NotFoundError(f"Audience member '{email}' not found")

        primary = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
        self.table.delete_item(primary.pk, primary.sk)

        memberships = self.reader.read_all(keys.member_groups_pk(owner_id, email), sk_prefix=keys.GROUP_PREFIX)
        group_ids = list(dict.fromkeys(
            list(current.get('tags') or []) + [item['groupId'] for item in memberships if item.get('groupId')]
        ))

        stale: List[KeyPair] = []
        for group_id in group_ids:
            stale.extend(keys.membership_keys(owner_id, group_id, email))
        orphaned = FanOutWriter(self.table, correlation_id).delete(stale)

        bump_group_counters(self.table, owner_id, group_ids, {'memberCount': -1}, correlation_id=correlation_id)
        log_event('audience_member_deleted', correlation_id, userId=owner_id, groups=len(group_ids))

        return {'email': email, 'deleted': True, 'orphanedKeys': keys.key_strings(orphaned)}

    def import_members(self, owner_id: str, request: Dict[str, Any], correlation_id: str) -> Dict[str, Any]:
        """
        Bulk import audience members.

        Emails are trimmed and lower-cased, invalid ones are skipped and the
        rest de-duplicated (last occurrence wins). Modes:
        - upsert: create new members and update existing ones
        - insert_only: create new members, skip existing ones

        Returns:
            Dictionary with totals and a per-email ``details`` list whose
            action is one of imported, updated, skipped_existing, skipped_invalid
        """
        mode = request.get('mode') or 'upsert'
        append_tags = request.get('appendTags', True)
        default_groups = request.get('defaultGroups') or []
        top_level_organization = request.get('organization')

        details: List[Dict[str, str]] = []
        deduped: Dict[str, Dict[str, Any]] = {}
        for raw in request['members']:
            email = normalize_email(raw.get('email') or '') if isinstance(raw.get('email'), str) else ''
            if not validate_email_format(email):
                details.append({'email': str(raw.get('email') or ''), 'action': 'skipped_invalid', 'reason': 'invalid_email'})
                continue
            deduped.pop(email, None)
            deduped[email] = {**raw, 'email': email}

        updater = self._updater(correlation_id)
        writer = updater.writer
        group_increments: Dict[str, int] = {}
        totals = {'input': len(request['members']), 'imported': 0, 'updated': 0, 'skippedExisting': 0,
                  'skippedInvalid': len(details)}

        for email, raw in deduped.items():
            provided = list(raw.get('tags') or []) + list(raw.get('groupIds') or [])
            groups = list(dict.fromkeys(provided + list(default_groups)))
            organization = top_level_organization or raw.get('organization') or ''
            existing = self._get_member_item(owner_id, email)

            if existing is not None and mode == 'insert_only':
                totals['skippedExisting'] += 1
                details.append({'email': email, 'action': 'skipped_existing'})
                continue

            if existing is None:
                now = now_iso()
                member: AudienceMember = {
                    'userId': owner_id,
                    'email': email,
                    'firstName': raw.get('firstName') or '',
                    'lastName': raw.get('lastName') or '',
                    'organization': organization,
                    'status': raw.get('status') or 'active',
                    'createdAt': now,
                    'lastModified': now
                }
                if groups:
                    member['tags'] = set(groups)
                try:
                    writer.write_many(self._member_records(member, groups), WriteMode.CREATE_ONLY, AUDIENCE_ENTITY_TYPE)
                except ConflictError:
                    totals['skippedExisting'] += 1
                    details.append({'email': email, 'action': 'skipped_existing', 'reason': 'created_concurrently'})
                    continue
                for group_id in groups:
                    group_increments[group_id] = group_increments.get(group_id, 0) + 1
                totals['imported'] += 1
                details.append({'email': email, 'action': 'imported'})
                continue

            current_groups = sorted(existing.get('tags') or [])
            if append_tags:
                target_groups = list(dict.fromkeys(current_groups + groups))
            elif provided:
                target_groups = groups
            else:
                target_groups = list(dict.fromkeys(current_groups + list(default_groups)))

            set_fields = {'lastModified': now_iso(), 'organization': organization}
            for field in ('firstName', 'lastName', 'status'):
                if raw.get(field):
                    set_fields[field] = raw[field]
            primary = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
            member = self.table.update_item(primary.pk, primary.sk, set_fields=set_fields, must_exist=True)
            updater.sync_memberships(member, current_groups, target_groups)

            for group_id in target_groups:
                if group_id not in current_groups:
                    group_increments[group_id] = group_increments.get(group_id, 0) + 1
            for group_id in current_groups:
                if group_id not in target_groups:
                    group_increments[group_id] = group_increments.get(group_id, 0) - 1
            totals['updated'] += 1
            details.append({'email': email, 'action': 'updated'})

        for group_id, delta in group_increments.items():
            if delta:
                bump_group_counters(self.table, owner_id, [group_id], {'memberCount': delta}, correlation_id=correlation_id)

        log_event('audience_imported', correlation_id, userId=owner_id, **totals)
        return {'userId': owner_id, 'mode': mode, 'totals': totals, 'details': details}

    # Campaign history

    def member_campaigns(
        self,
        owner_id: str,
        email: str,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """Campaigns delivered to a member, newest first; ``status`` is a post-fetch filter."""
        email = normalize_email(email)
        filters = [AttributeFilter('status', 'eq', status)] if status else None
        page = self.reader.read(
            keys.audience_campaigns_pk(owner_id, email),
            sk_prefix=keys.CAMPAIGN_PREFIX,
            filters=filters,
            limit=limit,
            page_token=next_token,
            newest_first=True
        )
        return {'email': email, 'campaigns': page.items, 'count': len(page.items), 'nextToken': page.next_token}

    def member_campaign_details(self, owner_id: str, email: str, campaign_id: str) -> Dict[str, Any]:
        """
        One delivery record merged with the current campaign.

        Raises:
            NotFoundError: If the campaign was never sent to the member
        """
        email = normalize_email(email)
        delivery = self.reader.get(keys.audience_campaign_key(owner_id, email, campaign_id))
        if delivery is None:
            raise NotFoundError(f"Campaign '{campaign_id}' was not sent to '{email}'")

        campaign = self.reader.get(keys.primary_key(keys.EntityKind.CAMPAIGN, owner_id, campaign_id))
        return {'email': email, 'campaignId': campaign_id, 'delivery': delivery, 'campaign': campaign}

    def campaign_totals(self, owner_id: str, limit: int = DEFAULT_TOTALS_LIMIT) -> Dict[str, Any]:
        """Campaigns received per member for the first ``limit`` members, most first."""
        page = self.reader.read(keys.user_pk(owner_id), sk_prefix=keys.AUDIENCE_PREFIX, limit=limit)

        totals = []
        for member in page.items:
            email = member.get('email')
            if not email:
                continue
            campaigns = self.reader.read_all(keys.audience_campaigns_pk(owner_id, email), sk_prefix=keys.CAMPAIGN_PREFIX)
            sent = [campaign for campaign in campaigns if campaign.get('status') == 'sent']
            sent_times = sorted(campaign['sentAt'] for campaign in sent if campaign.get('sentAt'))
            totals.append({
                'email': email,
                'firstName': member.get('firstName'),
                'lastName': member.get('lastName'),
                'totalCampaigns': len(campaigns),
                'sentCampaigns': len(sent),
                'lastSentAt': sent_times[-1] if sent_times else None,
                'groups': sorted(member.get('tags') or [])
            })

        totals.sort(key=lambda entry: entry['totalCampaigns'], reverse=True)
        return {'userId': owner_id, 'audienceMembers': totals, 'totalMembers': len(totals)}
