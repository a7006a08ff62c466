"""
Status and group transition updater.

When a classifying attribute of an entity changes (campaign status, campaign
target groups, audience group membership) the derived copies keyed by the
old classifier must move. Every move follows the same order:

1. write the copies implied by the new classifier
2. update the primary copy
3. best-effort delete the copies keyed by the old classifier

A failed step 3 leaves an orphaned copy. Orphans are logged by the writer and
returned to the caller, which reports them as ``orphanedKeys``.
"""

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from goodbricks_shared import keys
from goodbricks_shared.errors import ConflictError, InvalidStateError
from goodbricks_shared.fanout import FanOutWriter, WriteMode, strip_storage_attributes
from goodbricks_shared.keys import KeyPair
from goodbricks_shared.store import MainTable
from goodbricks_shared.timestamps import now_iso


# Allowed campaign status transitions; sent and failed are terminal
CAMPAIGN_TRANSITIONS = {
    'draft': ('scheduled', 'sending', 'failed'),
    'scheduled': ('sending', 'failed'),
    'sending': ('sent', 'failed'),
    'sent': (),
    'failed': (),
}

SENDABLE_STATUSES = ('draft', 'scheduled')

MEMBERSHIP_ENTITY_TYPE = 'AUDIENCE_GROUP'


class TransitionResult(NamedTuple):
    entity: Dict[str, Any]
    orphaned_keys: List[KeyPair]


def check_transition(current: str, target: str) -> bool:
    """
    Validate a campaign status change.

    Returns:
        False when ``target`` equals ``current`` (nothing to do), True otherwise

    Raises:
        InvalidStateError: If the transition is not allowed
    """
    if current == target:
        return False
    if target not in CAMPAIGN_TRANSITIONS.get(current, ()):
        raise InvalidStateError(
            f"Cannot transition campaign from '{current}' to '{target}'",
            {'currentStatus': current, 'requestedStatus': target}
        )
    return True


def ensure_sendable(campaign: Dict[str, Any]) -> None:
    """Raise InvalidStateError unless the campaign may enter ``sending``."""
    status = campaign.get('status')
    if status not in SENDABLE_STATUSES:
        raise InvalidStateError(
            f"Campaign cannot be sent from status '{status}'",
            {'campaignId': campaign.get('campaignId'), 'currentStatus': status}
        )


def campaign_group_ids(campaign: Dict[str, Any]) -> List[str]:
    recipients = campaign.get('recipients') or {}
    if recipients.get('type') != 'groups':
        return []
    return list(recipients.get('groupIds') or [])


class TransitionUpdater:
    """Moves derived copies when a classifier changes."""

    def __init__(self, table: MainTable, writer: Optional[FanOutWriter] = None):
        self.table = table
        self.writer = writer or FanOutWriter(table)

    # Campaign status

    def transition_campaign_status(
        self,
        campaign: Dict[str, Any],
        new_status: str,
        changes: Optional[Dict[str, Any]] = None
    ) -> TransitionResult:
        """
        Move a campaign to a new status.

        Args:
            campaign: Current primary copy of the campaign
            new_status: Target status
            changes: Other attributes to change along with the status;
                None values are removed

        Returns:
            TransitionResult with the updated campaign and any orphaned keys

        Raises:
            InvalidStateError: If the transition is not allowed
            ConflictError: If another writer changed the status first
        """
        old_status = campaign['status']
        if not check_transition(old_status, new_status):
            return TransitionResult(strip_storage_attributes(campaign), [])

        owner_id = campaign['userId']
        campaign_id = campaign['campaignId']
        changes = dict(changes or {})
        removed = [name for name, value in changes.items() if value is None]
        set_fields = {name: value for name, value in changes.items() if value is not None}
        set_fields['status'] = new_status
        set_fields['lastModified'] = now_iso()

        updated = strip_storage_attributes(campaign)
        updated.update(set_fields)
        for name in removed:
            updated.pop(name, None)

        group_ids = campaign_group_ids(updated)
        new_pairs = keys.campaign_keys(owner_id, campaign_id, new_status, group_ids)
        primary = new_pairs[0]
        derived = new_pairs[1:]

        self.writer.write(updated, derived, WriteMode.UPSERT, keys.ENTITY_TYPES[keys.EntityKind.CAMPAIGN])

        try:
            self.table.update_item(
                primary.pk,
                primary.sk,
                set_fields=set_fields,
                remove_fields=removed,
                expected={'status': old_status},
                must_exist=True
            )
        except ConflictError:
            # Another writer moved the campaign; withdraw the copies just added
            fresh = keys.status_classified_keys(owner_id, campaign_id, new_status, group_ids)
            self.writer.delete(fresh)
            raise ConflictError(
                'Campaign status was changed by another request',
                {'campaignId': campaign_id, 'expectedStatus': old_status}
            )

        stale = [
            pair for pair in keys.status_classified_keys(
                owner_id, campaign_id, old_status, campaign_group_ids(campaign)
            )
            if pair not in new_pairs
        ]
        orphaned = self.writer.delete(stale)
        return TransitionResult(updated, orphaned)

    # Campaign groups

    def move_campaign_groups(
        self,
        campaign: Dict[str, Any],
        old_group_ids: Iterable[str],
        new_group_ids: Iterable[str]
    ) -> List[KeyPair]:
        """
        Add copies for newly targeted groups and remove copies for dropped ones.

        ``campaign`` is the payload the new group copies are written with.

        Returns:
            Key pairs of dropped-group copies that could not be deleted
        """
        old_groups = list(dict.fromkeys(old_group_ids))
        new_groups = list(dict.fromkeys(new_group_ids))
        added = [group_id for group_id in new_groups if group_id not in old_groups]
        dropped = [group_id for group_id in old_groups if group_id not in new_groups]

        owner_id = campaign['userId']
        campaign_id = campaign['campaignId']
        status = campaign['status']

        new_pairs: List[KeyPair] = []
        for group_id in added:
            new_pairs.extend(keys.campaign_group_keys(owner_id, campaign_id, status, group_id))
        self.writer.write(campaign, new_pairs, WriteMode.UPSERT, keys.ENTITY_TYPES[keys.EntityKind.CAMPAIGN])

        stale: List[KeyPair] = []
        for group_id in dropped:
            stale.extend(keys.campaign_group_keys(owner_id, campaign_id, status, group_id))
        return self.writer.delete(stale)

    # Audience group membership

    def membership_payload(self, member: Dict[str, Any], group_id: str) -> Dict[str, Any]:
        """Projection carried by both membership copies."""
        payload = {
            'userId': member['userId'],
            'email': member['email'],
            'groupId': group_id,
            'addedAt': now_iso(),
        }
        for field in ('firstName', 'lastName', 'organization', 'status'):
            if member.get(field) is not None:
                payload[field] = member[field]
        return payload

    def add_membership(self, member: Dict[str, Any], group_id: str) -> Dict[str, Any]:
        """
        Add an audience member to a group.

        Writes the symmetric membership pair create-only, then adds the group
        id to the member's ``tags``.

        Returns:
            The member's primary attributes after the update

        Raises:
            ConflictError: If the membership already exists
        """
        owner_id = member['userId']
        email = member['email']
        pairs = keys.membership_keys(owner_id, group_id, email)
        self.writer.write(
            self.membership_payload(member, group_id), pairs, WriteMode.CREATE_ONLY, MEMBERSHIP_ENTITY_TYPE
        )

        primary = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
        try:
            return self.table.update_item(
                primary.pk,
                primary.sk,
                set_fields={'lastModified': now_iso()},
                add_fields={'tags': {group_id}},
                must_exist=True
            )
        except ConflictError:
            # Member vanished between the read and the update
            self.writer.delete(pairs)
            raise

    def remove_membership(self, owner_id: str, group_id: str, email: str) -> List[KeyPair]:
        """
        Remove an audience member from a group.

        Returns:
            Membership key pairs that could not be deleted
        """
        primary = keys.primary_key(keys.EntityKind.AUDIENCE, owner_id, email)
        self.table.update_item(
            primary.pk,
            primary.sk,
            set_fields={'lastModified': now_iso()},
            delete_fields={'tags': {group_id}},
            must_exist=True
        )
        return self.writer.delete(keys.membership_keys(owner_id, group_id, email))

    def sync_memberships(
        self,
        member: Dict[str, Any],
        current_group_ids: Sequence[str],
        target_group_ids: Sequence[str]
    ) -> TransitionResult:
        """
        Reconcile a member's group memberships with a target list.

        Existing memberships being added again are skipped.

        Returns:
            TransitionResult with the member after the change and any orphaned keys
        """
        current = list(dict.fromkeys(current_group_ids))
        target = list(dict.fromkeys(target_group_ids))
        updated = strip_storage_attributes(member)
        orphaned: List[KeyPair] = []

        for group_id in target:
            if group_id in current:
                continue
            try:
                updated = strip_storage_attributes(self.add_membership(member, group_id))
            except ConflictError:
                continue

        for group_id in current:
            if group_id in target:
                continue
            orphaned.extend(self.remove_membership(member['userId'], group_id, member['email']))

        updated['tags'] = set(target)
        return TransitionResult(updated, orphaned)
