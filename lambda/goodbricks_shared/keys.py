"""
Key builder for the single-table design.

Every access pattern is served by one (PK, SK) range query, so an entity is
written once per access pattern it must support. The functions here derive
every key pair an entity needs from its identity and classifiers. They are
pure: no I/O, deterministic output, primary pair first.

Access patterns:
    Audience member           PK=USER#{o}                      SK=AUDIENCE#{email}
    Group members             PK=USER#{o}#GROUP#{g}            SK=AUDIENCE#{email}
    Groups of a member        PK=USER#{o}#AUDIENCE#{email}     SK=GROUP#{g}
    Campaign                  PK=USER#{o}                      SK=CAMPAIGN#{id}
    Campaigns by status       PK=USER#{o}                      SK=STATUS#{s}#CAMPAIGN#{id}
    Org campaigns by status   PK=ORG_STATUS_CAMPAIGNS#{o}#{s}  SK=CAMPAIGN#{id}
    Group campaigns           PK=USER#{o}#GROUP#{g}            SK=CAMPAIGN#{id}
    Group campaigns by status PK=USER#{o}#GROUP#{g}            SK=STATUS#{s}#CAMPAIGN#{id}
    Campaigns of a member     PK=AUDIENCE_CAMPAIGNS#{o}#{email} SK=CAMPAIGN#{id}
    Campaign send records     PK=CAMPAIGN_RECIPIENTS#{id}      SK=SENT#{ts}
    Group metadata            PK=USER#{o}                      SK=GROUPMETADATA#{g}
    Org metadata              PK=USER#{o}                      SK=ORGMETADATA#{orgId}
    Layout version            PK=LAYOUT#{id}                   SK=VERSION#{v}
    Layouts by category       PK=LAYOUT_CATEGORY#{c}           SK=LAYOUT#{id}#VERSION#{v}
"""

from typing import Iterable, List, NamedTuple, Optional, Sequence

from goodbricks_shared.errors import ValidationError
from goodbricks_shared.types import CAMPAIGN_STATUSES


KEY_DELIMITER = '#'


class EntityKind:
    AUDIENCE = 'audience'
    CAMPAIGN = 'campaign'
    GROUP_METADATA = 'group-metadata'
    ORG_METADATA = 'org-metadata'

    ALL = (AUDIENCE, CAMPAIGN, GROUP_METADATA, ORG_METADATA)


# Sort-key prefix of the primary copy, per entity kind
PRIMARY_SK_PREFIX = {
    EntityKind.AUDIENCE: 'AUDIENCE#',
    EntityKind.CAMPAIGN: 'CAMPAIGN#',
    EntityKind.GROUP_METADATA: 'GROUPMETADATA#',
    EntityKind.ORG_METADATA: 'ORGMETADATA#',
}

# entityType attribute stamped on each kind of copy
ENTITY_TYPES = {
    EntityKind.AUDIENCE: 'AUDIENCE',
    EntityKind.CAMPAIGN: 'CAMPAIGN',
    EntityKind.GROUP_METADATA: 'GROUPMETADATA',
    EntityKind.ORG_METADATA: 'ORGMETADATA',
}


class KeyPair(NamedTuple):
    """One (PK, SK) pair an entity copy is stored under."""
    pk: str
    sk: str

    def as_key(self) -> dict:
        return {'PK': self.pk, 'SK': self.sk}


def _require_component(field: str, value: Optional[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f'{field} is required and must be a non-empty string',
            {'field': field}
        )
    if KEY_DELIMITER in value:
        raise ValidationError(
            f"{field} must not contain '{KEY_DELIMITER}'",
            {'field': field}
        )
    return value


def _require_status(status: Optional[str]) -> str:
    if status not in CAMPAIGN_STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(CAMPAIGN_STATUSES)}",
            {'field': 'status'}
        )
    return status


def _unique(pairs: Iterable[KeyPair]) -> List[KeyPair]:
    seen = set()
    ordered = []
    for pair in pairs:
        if pair not in seen:
            seen.add(pair)
            ordered.append(pair)
    return ordered


def _group_ids(group_ids: Optional[Sequence[str]]) -> List[str]:
    if not group_ids:
        return []
    return [_require_component('groupId', group_id) for group_id in group_ids]


# Partition keys

def user_pk(owner_id: str) -> str:
    return f"USER#{_require_component('userId', owner_id)}"


def group_pk(owner_id: str, group_id: str) -> str:
    return f"{user_pk(owner_id)}#GROUP#{_require_component('groupId', group_id)}"


def member_groups_pk(owner_id: str, email: str) -> str:
    return f"{user_pk(owner_id)}#AUDIENCE#{_require_component('email', email)}"


def org_status_pk(owner_id: str, status: str) -> str:
    return f"ORG_STATUS_CAMPAIGNS#{_require_component('userId', owner_id)}#{_require_status(status)}"


def audience_campaigns_pk(owner_id: str, email: str) -> str:
    return (
        f"AUDIENCE_CAMPAIGNS#{_require_component('userId', owner_id)}"
        f"#{_require_component('email', email)}"
    )


def layout_pk(layout_id: str) -> str:
    return f"LAYOUT#{_require_component('layoutId', layout_id)}"


def layout_category_pk(category: str) -> str:
    return f"LAYOUT_CATEGORY#{_require_component('category', category)}"


# Sort-key prefixes used by readers

def status_campaign_prefix(status: str) -> str:
    return f'STATUS#{_require_status(status)}#CAMPAIGN#'


CAMPAIGN_PREFIX = 'CAMPAIGN#'
AUDIENCE_PREFIX = 'AUDIENCE#'
GROUP_PREFIX = 'GROUP#'
GROUP_METADATA_PREFIX = 'GROUPMETADATA#'
ORG_METADATA_PREFIX = 'ORGMETADATA'
VERSION_PREFIX = 'VERSION#'


# Key pairs

def primary_key(kind: str, owner_id: str, entity_id: str) -> KeyPair:
    """Primary (source of truth) key pair of an owned entity."""
    if kind not in PRIMARY_SK_PREFIX:
        raise ValidationError(f'Unknown entity kind: {kind}', {'field': 'kind'})
    field = 'email' if kind == EntityKind.AUDIENCE else 'entityId'
    return KeyPair(user_pk(owner_id), f'{PRIMARY_SK_PREFIX[kind]}{_require_component(field, entity_id)}')


def membership_keys(owner_id: str, group_id: str, email: str) -> List[KeyPair]:
    """
    The symmetric membership pair: member under the group, group under the member.
    """
    return [
        KeyPair(group_pk(owner_id, group_id), f"AUDIENCE#{_require_component('email', email)}"),
        KeyPair(member_groups_pk(owner_id, email), f'GROUP#{group_id}'),
    ]


def audience_keys(owner_id: str, email: str, group_ids: Optional[Sequence[str]] = None) -> List[KeyPair]:
    """Primary audience copy followed by a membership pair per group."""
    pairs = [primary_key(EntityKind.AUDIENCE, owner_id, email)]
    for group_id in _group_ids(group_ids):
        pairs.extend(membership_keys(owner_id, group_id, email))
    return _unique(pairs)


def status_classified_keys(
    owner_id: str,
    campaign_id: str,
    status: str,
    group_ids: Optional[Sequence[str]] = None
) -> List[KeyPair]:
    """Campaign key pairs whose position depends on the campaign status."""
    _require_component('campaignId', campaign_id)
    prefix = status_campaign_prefix(status)
    pairs = [
        KeyPair(user_pk(owner_id), f'{prefix}{campaign_id}'),
        KeyPair(org_status_pk(owner_id, status), f'CAMPAIGN#{campaign_id}'),
    ]
    for group_id in _group_ids(group_ids):
        pairs.append(KeyPair(group_pk(owner_id, group_id), f'{prefix}{campaign_id}'))
    return _unique(pairs)


def campaign_group_keys(
    owner_id: str,
    campaign_id: str,
    status: str,
    group_id: str
) -> List[KeyPair]:
    """Both copies of a campaign stored under one target group."""
    pk = group_pk(owner_id, group_id)
    return [
        KeyPair(pk, f"CAMPAIGN#{_require_component('campaignId', campaign_id)}"),
        KeyPair(pk, f'{status_campaign_prefix(status)}{campaign_id}'),
    ]


def campaign_keys(
    owner_id: str,
    campaign_id: str,
    status: str,
    group_ids: Optional[Sequence[str]] = None
) -> List[KeyPair]:
    """
    Every key pair a campaign is stored under.

    Order: primary, owner status index, org-wide status index, then the
    group copy and group status copy for each target group.
    """
    prefix = status_campaign_prefix(status)
    pairs = [
        primary_key(EntityKind.CAMPAIGN, owner_id, campaign_id),
        KeyPair(user_pk(owner_id), f'{prefix}{campaign_id}'),
        KeyPair(org_status_pk(owner_id, status), f'CAMPAIGN#{campaign_id}'),
    ]
    for group_id in _group_ids(group_ids):
        pairs.extend(campaign_group_keys(owner_id, campaign_id, status, group_id))
    return _unique(pairs)


def build_keys(
    kind: str,
    owner_id: str,
    entity_id: str,
    status: Optional[str] = None,
    group_ids: Optional[Sequence[str]] = None
) -> List[KeyPair]:
    """
    Derive every key pair an entity must be written under.

    Args:
        kind: One of EntityKind.ALL
        owner_id: Owning user id
        entity_id: Email for audience members, otherwise the entity id
        status: Campaign status (required for campaigns)
        group_ids: Target groups (campaigns) or memberships (audience members)

    Returns:
        Ordered, de-duplicated key pairs, primary pair first

    Raises:
        ValidationError: If any identity field is empty or malformed
    """
    if kind == EntityKind.CAMPAIGN:
        return campaign_keys(owner_id, entity_id, status, group_ids)
    if kind == EntityKind.AUDIENCE:
        return audience_keys(owner_id, entity_id, group_ids)
    return [primary_key(kind, owner_id, entity_id)]


def audience_campaign_key(owner_id: str, email: str, campaign_id: str) -> KeyPair:
    """Inverse index: one campaign delivered to one audience member."""
    return KeyPair(
        audience_campaigns_pk(owner_id, email),
        f"CAMPAIGN#{_require_component('campaignId', campaign_id)}"
    )


def campaign_send_record_key(campaign_id: str, sent_at: str) -> KeyPair:
    return KeyPair(f"CAMPAIGN_RECIPIENTS#{_require_component('campaignId', campaign_id)}", f'SENT#{sent_at}')


def layout_keys(layout_id: str, version: str, category: Optional[str] = None) -> List[KeyPair]:
    """Layout version record plus its category index copy when categorised."""
    _require_component('version', version)
    pairs = [KeyPair(layout_pk(layout_id), f'VERSION#{version}')]
    if category:
        pairs.append(KeyPair(layout_category_pk(category), f'LAYOUT#{layout_id}#VERSION#{version}'))
    return pairs


def key_strings(pairs: Iterable[KeyPair]) -> List[dict]:
    """Key pairs as plain {'PK', 'SK'} dicts for JSON responses."""
    return [pair.as_key() for pair in pairs]
