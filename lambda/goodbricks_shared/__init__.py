"""Shared code for the GoodBricks email platform functions."""

from .types import (
    Campaign,
    CampaignStatus,
    AudienceMember,
    AudienceStatus,
    GroupMetadata,
    OrgMetadata,
    Layout,
    ErrorResponse
)

from .errors import (
    DomainError,
    ValidationError,
    InvalidTokenError,
    InvalidStateError,
    NotFoundError,
    ConflictError,
    InternalError
)

from .responses import (
    create_success_response,
    create_error_response
)

__all__ = [
    # Types
    'Campaign',
    'CampaignStatus',
    'AudienceMember',
    'AudienceStatus',
    'GroupMetadata',
    'OrgMetadata',
    'Layout',
    'ErrorResponse',
    # Errors
    'DomainError',
    'ValidationError',
    'InvalidTokenError',
    'InvalidStateError',
    'NotFoundError',
    'ConflictError',
    'InternalError',
    # Responses
    'create_success_response',
    'create_error_response',
]
