"""
Organization service.

Organization metadata is stored under the owner partition and supplies the
default sender address for campaigns.
"""

from typing import Any, Dict, Optional

from ulid import ULID

from goodbricks_shared import keys
from goodbricks_shared.clients import AwsClients
from goodbricks_shared.errors import ConflictError, NotFoundError
from goodbricks_shared.fanout import FanOutReader, FanOutWriter, WriteMode
from goodbricks_shared.logger import log_event
from goodbricks_shared.timestamps import now_iso
from goodbricks_shared.types import OrgMetadata


ORG_OPTIONAL_FIELDS = ('description', 'website', 'senderEmail', 'address', 'phone')


class OrgService:
    """Service class for organization metadata."""

    def __init__(self, clients: AwsClients):
        self.table = clients.table
        self.reader = FanOutReader(self.table)

    def create_org(self, owner_id: str, request: Dict[str, Any], correlation_id: str) -> OrgMetadata:
        """
        Create organization metadata.

        Args:
            owner_id: Owning user id
            request: Validated creation request
            correlation_id: Request correlation ID for logging and tracing

        Returns:
            The created organization metadata

        Raises:
            ConflictError: If the org id is already taken for this owner
        """
        org_id = request.get('orgId') or f'org-{ULID()}'
        now = now_iso()

        org: OrgMetadata = {
            'userId': owner_id,
            'orgId': org_id,
            'orgName': request['orgName'].strip(),
            'activeSubscribers': int(request['activeSubscribers']),
            'createdAt': now,
            'lastModified': now
        }
        for field in ORG_OPTIONAL_FIELDS:
            if request.get(field):
                org[field] = request[field].strip()
        if org.get('senderEmail'):
            org['senderEmail'] = org['senderEmail'].lower()

        try:
            FanOutWriter(self.table, correlation_id).write(
                org,
                keys.build_keys(keys.EntityKind.ORG_METADATA, owner_id, org_id),
                WriteMode.CREATE_ONLY,
                keys.ENTITY_TYPES[keys.EntityKind.ORG_METADATA]
            )
        except ConflictError:
            raise ConflictError(f"Organization '{org_id}' already exists", {'orgId': org_id})

        log_event('org_created', correlation_id, userId=owner_id, orgId=org_id)
        return org

    def find_org(self, owner_id: str) -> Optional[Dict[str, Any]]:
        """First organization metadata record of the owner, or None."""
        page = self.reader.read(keys.user_pk(owner_id), sk_prefix=keys.ORG_METADATA_PREFIX, limit=1)
        return page.items[0] if page.items else None

    def get_org(self, owner_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the owner has no organization metadata
        """
        org = self.find_org(owner_id)
        if org is None:
            raise NotFoundError(f"Organization metadata for user '{owner_id}' not found")
        return org
