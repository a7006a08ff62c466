"""
Fan-out writer and reader.

A logical entity is stored as one denormalized copy per access pattern. The
writer persists those copies in batches of 25; the reader serves one access
pattern with a single range query.

Batches are independent: a failure in batch k leaves batches 1..k-1 written
and k..N unwritten. Within a create-only batch the write is atomic.
"""

import copy
from enum import Enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from botocore.exceptions import ClientError

from goodbricks_shared.keys import KeyPair
from goodbricks_shared.logger import log_event
from goodbricks_shared.pagination import DEFAULT_PAGE_SIZE, decode_token, encode_token
from goodbricks_shared.store import MAX_BATCH_SIZE, AttributeFilter, MainTable


# Attributes that identify a copy rather than describe the entity
STORAGE_ATTRIBUTES = ('PK', 'SK', 'entityType')


class WriteMode(Enum):
    CREATE_ONLY = 'create-only'
    UPSERT = 'upsert'


class FanOutResult(NamedTuple):
    records_written: int
    batches_written: int


class Page(NamedTuple):
    items: List[Dict[str, Any]]
    next_token: Optional[str]


def strip_storage_attributes(item: Dict[str, Any]) -> Dict[str, Any]:
    """Return an entity copy without its PK, SK and entityType."""
    return {key: value for key, value in item.items() if key not in STORAGE_ATTRIBUTES}


def chunked(values: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class FanOutWriter:
    """
    Writes one copy of an entity per key pair.

    Conflict policy: in create-only mode an existing copy always raises
    ConflictError. Callers that want "already exists" to mean "skip" catch it.
    """

    def __init__(self, table: MainTable, correlation_id: Optional[str] = None):
        self.table = table
        self.correlation_id = correlation_id

    def build_copies(
        self,
        payload: Dict[str, Any],
        key_pairs: Sequence[KeyPair],
        entity_type: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Stamp PK, SK and entityType onto one copy of the payload per key pair."""
        # DynamoDB rejects empty sets; unset attributes are omitted
        attributes = {
            key: value for key, value in strip_storage_attributes(payload).items()
            if value is not None and not (isinstance(value, (set, frozenset)) and not value)
        }
        copies = []
        for pair in key_pairs:
            item = copy.deepcopy(attributes)
            item['PK'] = pair.pk
            item['SK'] = pair.sk
            item['entityType'] = entity_type or payload.get('entityType') or 'ENTITY'
            copies.append(item)
        return copies

    def write(
        self,
        payload: Dict[str, Any],
        key_pairs: Sequence[KeyPair],
        mode: WriteMode = WriteMode.UPSERT,
        entity_type: Optional[str] = None
    ) -> FanOutResult:
        """
        Persist one denormalized copy of ``payload`` per key pair.

        Args:
            payload: Entity attribute map
            key_pairs: Key pairs from the key builder
            mode: CREATE_ONLY (conditional on non-existence) or UPSERT
            entity_type: entityType stamped on every copy

        Returns:
            FanOutResult with the number of copies and batches written

        Raises:
            ConflictError: In create-only mode when any copy already exists
        """
        if not key_pairs:
            return FanOutResult(0, 0)

        return self._write_copies(self.build_copies(payload, key_pairs, entity_type), mode)

    def write_many(
        self,
        records: Sequence[Tuple[Dict[str, Any], KeyPair]],
        mode: WriteMode = WriteMode.UPSERT,
        entity_type: Optional[str] = None
    ) -> FanOutResult:
        """Write records that each have their own payload, batched the same way."""
        copies = []
        for payload, pair in records:
            copies.extend(self.build_copies(payload, [pair], entity_type))
        if not copies:
            return FanOutResult(0, 0)
        return self._write_copies(copies, mode)

    def _write_copies(self, copies: List[Dict[str, Any]], mode: WriteMode) -> FanOutResult:
        written = 0
        batches = 0
        for batch in chunked(copies, MAX_BATCH_SIZE):
            try:
                self.table.write_batch(batch, create_only=mode is WriteMode.CREATE_ONLY)
            except Exception as error:
                log_event(
                    'fanout_batch_failed',
                    self.correlation_id,
                    batchNumber=batches + 1,
                    recordsWritten=written,
                    errorType=type(error).__name__,
                    errorMessage=str(error)
                )
                raise
            written += len(batch)
            batches += 1

        return FanOutResult(written, batches)

    def delete(self, key_pairs: Sequence[KeyPair]) -> List[KeyPair]:
        """
        Best-effort delete of copies.

        Returns:
            Key pairs that could not be deleted
        """
        failed = []
        for pair in key_pairs:
            try:
                self.table.delete_item(pair.pk, pair.sk)
            except ClientError as error:
                log_event(
                    'stale_copy_orphaned',
                    self.correlation_id,
                    PK=pair.pk,
                    SK=pair.sk,
                    errorMessage=str(error)
                )
                failed.append(pair)
        return failed


class FanOutReader:
    """Serves one access pattern with a single range query."""

    def __init__(self, table: MainTable):
        self.table = table

    def read(
        self,
        pk: str,
        sk_prefix: Optional[str] = None,
        filters: Optional[Sequence[AttributeFilter]] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        page_token: Optional[str] = None,
        newest_first: bool = False,
        sk_range: Optional[Sequence[str]] = None
    ) -> Page:
        """
        Read one page of copies for an access pattern.

        Filters are applied after the key-range read, so a page may hold
        fewer than ``limit`` items while ``next_token`` is still set.

        Raises:
            InvalidTokenError: If ``page_token`` is malformed
        """
        start_key = decode_token(page_token)
        result = self.table.query(
            pk,
            sk_prefix=sk_prefix,
            sk_range=sk_range,
            filters=filters,
            limit=limit,
            exclusive_start_key=start_key,
            newest_first=newest_first
        )
        items = [strip_storage_attributes(item) for item in result.items]
        return Page(items, encode_token(result.last_evaluated_key))

    def read_all(
        self,
        pk: str,
        sk_prefix: Optional[str] = None,
        filters: Optional[Sequence[AttributeFilter]] = None,
        newest_first: bool = False
    ) -> List[Dict[str, Any]]:
        """Follow continuation tokens until the access pattern is exhausted."""
        items: List[Dict[str, Any]] = []
        start_key = None
        while True:
            result = self.table.query(
                pk,
                sk_prefix=sk_prefix,
                filters=filters,
                exclusive_start_key=start_key,
                newest_first=newest_first
            )
            items.extend(strip_storage_attributes(item) for item in result.items)
            start_key = result.last_evaluated_key
            if not start_key:
                return items

    def get(self, pair: KeyPair) -> Optional[Dict[str, Any]]:
        item = self.table.get_item(pair.pk, pair.sk)
        return strip_storage_attributes(item) if item else None
