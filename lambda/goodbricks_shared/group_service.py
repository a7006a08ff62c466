"""
Audience group service.

This module implements the business logic for audience groups, including:
- Group metadata creation and listing
- Adding and removing members through the transition updater, so the
  member's tags and the symmetric membership records stay reconciled
- Group member, member group and group campaign queries
- Best-effort group counters (memberCount, totalCampaignsSent)
"""

from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError
from ulid import ULID

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import ConflictError, NotFoundError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode
from goodbricks_shared.logger import log_event
from goodbricks_shared.pagination import DEFAULT_PAGE_SIZE
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.transitions import TransitionUpdater
from goodbricks_shared.types import GroupMetadata


def bump_group_counters(
    table: Any,
    owner_id: str,
    group_ids: Iterable[str],
    add_fields: Dict[str, Any],
    set_fields: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None
) -> None:
    """
    Best-effort update of denormalized group counters.

    Counters are not transactional with membership writes. A missing group
    or a failed update is logged and skipped.
    """
    for group_id in dict.fromkeys(group_ids):
        pair = keys.primary_key(keys.EntityKind.GROUP_METADATA, owner_id, group_id)
        try:
            table.update_item(
                pair.pk,
                pair.sk,
                set_fields={'lastModified': now_iso(), **(set_fields or {})},
                add_fields=add_fields,
                must_exist=True
            )
        except ConflictError:
            log_event('group_counter_skipped', correlation_id, groupId=group_id, reason='group_not_found')
        except ClientError as error:
            log_event('group_counter_failed', correlation_id, groupId=group_id, errorMessage=str(error))


class GroupService:
    """
    Service class for audience group operations.

    Group metadata lives at (USER#{userId}, GROUPMETADATA#{groupId}); members
    at (USER#{userId}#GROUP#{groupId}, AUDIENCE#{email}).
    """

    def __init__(self, clients: AwsClients):
        """
        Args:
            clients: AWS client bundle
        """
        self.table = clients.table
        self.reader = FanOutReader(self.table)

    def create_group(self, owner_id: str, request: Dict[str, Any], correlation_id: str) -> GroupMetadata:
        """
        Create group metadata with zeroed counters.

        Raises:
            ConflictError: If the group id is already taken
        """
        group_id = request.get('groupId') or f'grp-{ULID()}'
        now = now_iso()

        group: GroupMetadata = {
            'userId': owner_id,
            'groupId': group_id,
            'groupName': request['groupName'].strip(),
            'description': request.get('description') or '',
            'memberCount': 0,
            'totalCampaignsSent': 0,
            'averageOpenRate': 0,
            'averageClickRate': 0,
            'isActive': request.get('isActive', True),
            'createdAt': now,
            'lastModified': now
        }

        writer = FanOutWriter(self.table, correlation_id)
        try:
            writer.write(
                group,
                keys.build_keys(keys.EntityKind.GROUP_METADATA, owner_id, group_id),
                WriteMode.CREATE_ONLY,
                keys.ENTITY_TYPES[keys.EntityKind.GROUP_METADATA]
            )
        except ConflictError:
            raise ConflictError(f"Group '{group_id}' already exists", {'groupId': group_id})

        log_event('group_created', correlation_id, userId=owner_id, groupId=group_id)
        return group

    def get_group(self, owner_id: str, group_id: str) -> Dict[str, Any]:
        group = self.reader.get(keys.primary_key(keys.EntityKind.GROUP_METADATA, owner_id, group_id))
        if group is None:
            raise NotFoundError(f"Group '{group_id}' not found")
        return group

    def list_groups(
        self,
        owner_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        page = self.reader.read(
            keys.user_pk(owner_id),
            sk_prefix=keys.GROUP_METADATA_PREFIX,
            limit=limit,
            page_token=next_token
        )
        return {'groups': page.items, 'count': len(page.items), 'nextToken': page.next_token}

    def add_members(
        self,
        owner_id: str,
        group_id: str,
        emails: List[str],
        correlation_id: str
    ) -> Dict[str, Any]:
        """
        Add existing audience members to a group.

        Members that do not exist and memberships that already exist are
        skipped and reported. memberCount grows by the number added.

        Raises:
            NotFoundError: If the group does not exist
        """
        self.get_group(owner_id, group_id)

        updater = TransitionUpdater(self.table, FanOutWriter(self.table, correlation_id))
        added: List[str] = []
        skipped: List[Dict[str, str]] = []

        for email in dict.fromkeys(email.strip().lower() for email in emails):
            member = self.reader.get(keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email))
            if member is None:
                skipped.append({'email': email, 'reason': 'member_not_found'})
                continue
            try:
                updater.add_membership(member, group_id)
            except ConflictError:
                skipped.append({'email': email, 'reason': 'already_member'})
                continue
            added.append(email)

        if added:
            bump_group_counters(self.table, owner_id, [group_id], {'memberCount': len(added)}, correlation_id=correlation_id)

        log_event('group_members_added', correlation_id, groupId=group_id, added=len(added), skipped=len(skipped))
        return {
            'groupId': group_id,
            'added': added,
            'skipped': skipped,
            'processedCount': len(added)
        }

    def remove_member(self, owner_id: str, group_id: str, email: str, correlation_id: str) -> Dict[str, Any]:
        """
        Remove one member from a group.

        Raises:
            NotFoundError: If the member or the membership does not exist
        """
        email = email.strip().lower()
        group_side = keys.membership_keys(owner_id, group_id, email)[0]
        if self.reader.get(group_side) is None:
            raise NotFoundError(f"'{email}' is not a member of group '{group_id}'")
        if self.reader.get(keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)) is None:
            raise NotFoundError(f"Audience member '{email}' not found")

        updater = TransitionUpdater(self.table, FanOutWriter(self.table, correlation_id))
        orphaned = updater.remove_membership(owner_id, group_id, email)
        bump_group_counters(self.table, owner_id, [group_id], {'memberCount': -1}, correlation_id=correlation_id)

        return {
            'groupId': group_id,
            'email': email,
            'removed': True,
            'orphanedKeys': keys.key_strings(orphaned)
        }

    def group_audience(
        self,
        owner_id: str,
        group_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        page = self.reader.read(
            keys.group_pk(owner_id, group_id),
            sk_prefix=keys.AUDIENCE_PREFIX,
            limit=limit,
            page_token=next_token
        )
        return {'groupId': group_id, 'members': page.items, 'count': len(page.items), 'nextToken': page.next_token}

    def member_groups(self, owner_id: str, email: str) -> Dict[str, Any]:
        """
        Groups an audience member belongs to, read from the member-side
        membership copies.

        Raises:
            NotFoundError: If the audience member does not exist
        """
        email = email.strip().lower()
        member = self.reader.get(keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email))
        if member is None:
            raise NotFoundError(f"Audience member '{email}' not found")

        memberships = self.reader.read_all(keys.member_groups_pk(owner_id, email), sk_prefix=keys.GROUP_PREFIX)
        groups = [
            {'groupId': item['groupId'], 'addedAt': item.get('addedAt')}
            for item in memberships
        ]
        return {'email': email, 'groups': groups, 'count': len(groups)}

    def group_campaigns(
        self,
        owner_id: str,
        group_id: str,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: Optional[str] = None
    ) -> Dict[str, Any]:
        """Campaigns targeting a group, newest first, optionally by status."""
        prefix = keys.status_campaign_prefix(status) if status else keys.CAMPAIGN_PREFIX
        page = self.reader.read(
            keys.group_pk(owner_id, group_id),
            sk_prefix=prefix,
            limit=limit,
            page_token=next_token,
            newest_first=True
        )
        return {'groupId': group_id, 'campaigns': page.items, 'count': len(page.items), 'nextToken': page.next_token}
