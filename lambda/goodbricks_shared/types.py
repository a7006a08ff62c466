"""
Shared type definitions for the GoodBricks email platform.

This module defines TypedDict classes for request/response types and domain models.
Items read back from DynamoDB carry the same attributes plus PK, SK and entityType.
"""

from typing import TypedDict, Literal, List, Dict, Any, Optional, Set

# Campaign status literal type
CampaignStatus = Literal['draft', 'scheduled', 'sending', 'sent', 'failed']

CAMPAIGN_STATUSES = ('draft', 'scheduled', 'sending', 'sent', 'failed')

# Audience member status literal type
AudienceStatus = Literal['active', 'unsubscribed', 'deleted']

AUDIENCE_STATUSES = ('active', 'unsubscribed', 'deleted')


class AudienceSelection(TypedDict):
    """How the audience of a campaign was chosen."""
    type: Literal['tag', 'list', 'all']
    values: List[str]


class Recipients(TypedDict, total=False):
    """Resolved recipient rule of a campaign."""
    type: Literal['groups', 'all_audience']
    groupIds: List[str]


class CampaignMetadata(TypedDict, total=False):
    """Sender and envelope details of a campaign."""
    subject: str
    fromName: str
    fromEmail: str
    previewText: str


class Campaign(TypedDict, total=False):
    """Complete campaign domain model."""
    userId: str
    campaignId: str
    name: str
    description: str
    layoutId: str
    layoutVersion: str
    layoutProps: Dict[str, Any]
    sesTemplateName: Optional[str]
    audienceSelection: AudienceSelection
    recipients: Recipients
    status: CampaignStatus
    scheduledAt: Optional[str]
    sentAt: Optional[str]
    emailsSent: int
    createdAt: str
    lastModified: str
    metadata: CampaignMetadata


class AudienceMember(TypedDict, total=False):
    """Audience member domain model. ``tags`` holds the member's group ids."""
    userId: str
    email: str
    firstName: str
    lastName: str
    tags: Set[str]
    organization: str
    status: AudienceStatus
    createdAt: str
    lastModified: str


class GroupMetadata(TypedDict, total=False):
    """Group metadata with best-effort counters."""
    userId: str
    groupId: str
    groupName: str
    description: str
    memberCount: int
    totalCampaignsSent: int
    lastCampaignSent: Optional[str]
    averageOpenRate: Any
    averageClickRate: Any
    isActive: bool
    createdAt: str
    lastModified: str


class OrgMetadata(TypedDict, total=False):
    """Organization metadata holding the sender identity."""
    userId: str
    orgId: str
    orgName: str
    activeSubscribers: int
    description: str
    website: str
    senderEmail: str
    address: str
    phone: str
    createdAt: str
    lastModified: str


class Layout(TypedDict, total=False):
    """Stored email layout version."""
    layoutId: str
    version: str
    name: str
    description: str
    category: str
    variables: List[str]
    s3Path: str
    s3TemplatePath: str
    aliasOf: str
    createdAt: str
    lastModified: str


class ErrorResponse(TypedDict, total=False):
    """Standard error response structure."""
    error: str
    code: str
    details: Dict[str, Any]
