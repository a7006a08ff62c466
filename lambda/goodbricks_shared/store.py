"""
Main table wrapper.

Thin layer over the boto3 DynamoDB Table resource used by every service. It
owns expression building, conditional-write error mapping and the batch
write limits, so services deal only in items and key pairs.
"""

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from goodbricks_shared.errors import ConflictError, ValidationError


# BatchWriteItem and the fan-out batches are capped at 25 items
MAX_BATCH_SIZE = 25

FILTER_OPS = ('eq', 'ne', 'gte', 'lte', 'between', 'begins_with', 'contains')

CREATE_ONLY_CONDITION = 'attribute_not_exists(PK) AND attribute_not_exists(SK)'


class AttributeFilter(NamedTuple):
    """Filter on a non-key attribute, applied after the key-range read."""
    name: str
    op: str
    value: Any
    upper: Any = None


class QueryPage(NamedTuple):
    items: List[Dict[str, Any]]
    last_evaluated_key: Optional[Dict[str, Any]]


def is_conditional_failure(error: ClientError) -> bool:
    """True when a write was rejected by its condition expression."""
    code = error.response.get('Error', {}).get('Code')
    if code == 'ConditionalCheckFailedException':
        return True
    if code == 'TransactionCanceledException':
        reasons = error.response.get('CancellationReasons') or []
        if reasons:
            return any(reason.get('Code') == 'ConditionalCheckFailed' for reason in reasons)
        return 'ConditionalCheckFailed' in error.response.get('Error', {}).get('Message', '')
    return False


def _filter_condition(filters: Sequence[AttributeFilter]):
    condition = None
    for item_filter in filters:
        if item_filter.op not in FILTER_OPS:
            raise ValidationError(
                f'Unsupported filter operation: {item_filter.op}',
                {'field': item_filter.name}
            )
        attr = Attr(item_filter.name)
        if item_filter.op == 'between':
            clause = attr.between(item_filter.value, item_filter.upper)
        else:
            clause = getattr(attr, item_filter.op)(item_filter.value)
        condition = clause if condition is None else condition & clause
    return condition


class MainTable:
    """
    Wrapper around the single GoodBricks DynamoDB table.

    Usage:
        table = MainTable(boto3.resource('dynamodb').Table(name), boto3.client('dynamodb'))
        table.put_item({'PK': 'USER#u1', 'SK': 'CAMPAIGN#c1', ...}, create_only=True)
    """

    def __init__(self, table: Any, client: Any = None):
        """
        Args:
            table: boto3 DynamoDB Table resource
            client: Low-level DynamoDB client, needed for transactional batches
        """
        self.table = table
        self.client = client
        self.table_name = table.name
        self._serializer = TypeSerializer()

    def get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        response = self.table.get_item(Key={'PK': pk, 'SK': sk})
        return response.get('Item')

    def query(
        self,
        pk: str,
        sk_prefix: Optional[str] = None,
        sk_range: Optional[Sequence[str]] = None,
        filters: Optional[Sequence[AttributeFilter]] = None,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Dict[str, Any]] = None,
        newest_first: bool = False
    ) -> QueryPage:
        """
        Run one range query against a partition.

        ``limit`` bounds the items read, not the items returned: filters are
        evaluated afterwards, so a page can be shorter than ``limit`` while
        more matches remain.

        Args:
            pk: Partition key value
            sk_prefix: Optional sort-key prefix (begins_with)
            sk_range: Optional inclusive (low, high) sort-key range
            filters: Optional non-key attribute filters
            limit: Maximum items to read
            exclusive_start_key: Start key from a previous page
            newest_first: Descending sort-key order

        Returns:
            QueryPage with the items and the LastEvaluatedKey (None on the last page)
        """
        key_condition = Key('PK').eq(pk)
        if sk_range:
            key_condition = key_condition & Key('SK').between(sk_range[0], sk_range[1])
        elif sk_prefix:
            key_condition = key_condition & Key('SK').begins_with(sk_prefix)

        params: Dict[str, Any] = {
            'KeyConditionExpression': key_condition,
            'ScanIndexForward': not newest_first
        }
        if filters:
            params['FilterExpression'] = _filter_condition(filters)
        if limit:
            params['Limit'] = limit
        if exclusive_start_key:
            params['ExclusiveStartKey'] = exclusive_start_key

        response = self.table.query(**params)
        return QueryPage(response.get('Items', []), response.get('LastEvaluatedKey'))

    def put_item(self, item: Dict[str, Any], create_only: bool = False) -> None:
        """
        Write one item.

        Raises:
            ConflictError: If ``create_only`` and the key already exists
        """
        params: Dict[str, Any] = {'Item': item}
        if create_only:
            params['ConditionExpression'] = CREATE_ONLY_CONDITION
        try:
            self.table.put_item(**params)
        except ClientError as error:
            if is_conditional_failure(error):
                raise ConflictError(
                    'Item already exists',
                    {'PK': item.get('PK'), 'SK': item.get('SK')}
                )
            raise

    def update_item(
        self,
        pk: str,
        sk: str,
        set_fields: Optional[Dict[str, Any]] = None,
        remove_fields: Optional[Iterable[str]] = None,
        add_fields: Optional[Dict[str, Any]] = None,
        delete_fields: Optional[Dict[str, Any]] = None,
        expected: Optional[Dict[str, Any]] = None,
        must_exist: bool = False
    ) -> Dict[str, Any]:
        """
        Update attributes of one item in place.

        Args:
            pk, sk: Item key
            set_fields: Attributes to SET
            remove_fields: Attributes to REMOVE
            add_fields: Numbers to increment or sets to merge (ADD)
            delete_fields: Set elements to remove (DELETE)
            expected: Attribute values that must still hold for the update to apply
            must_exist: Fail instead of creating the item when absent

        Returns:
            The item's attributes after the update

        Raises:
            ConflictError: If the condition fails
        """
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        clauses: Dict[str, List[str]] = {'SET': [], 'REMOVE': [], 'ADD': [], 'DELETE': []}

        def placeholder(attr: str) -> str:
            name_ref = f'#a{len(names)}'
            names[name_ref] = attr
            return name_ref

        def value_ref(value: Any) -> str:
            ref = f':v{len(values)}'
            values[ref] = value
            return ref

        for attr, value in (set_fields or {}).items():
            clauses['SET'].append(f'{placeholder(attr)} = {value_ref(value)}')
        for attr in remove_fields or []:
            clauses['REMOVE'].append(placeholder(attr))
        for attr, value in (add_fields or {}).items():
            clauses['ADD'].append(f'{placeholder(attr)} {value_ref(value)}')
        for attr, value in (delete_fields or {}).items():
            clauses['DELETE'].append(f'{placeholder(attr)} {value_ref(value)}')

        parts = [f"{action} {', '.join(items)}" for action, items in clauses.items() if items]
        if not parts:
            raise ValidationError('No attributes to update')

        params: Dict[str, Any] = {
            'Key': {'PK': pk, 'SK': sk},
            'UpdateExpression': ' '.join(parts),
            'ExpressionAttributeNames': names,
            'ReturnValues': 'ALL_NEW'
        }

        conditions = []
        if must_exist:
            conditions.append('attribute_exists(PK)')
        for attr, value in (expected or {}).items():
            conditions.append(f'{placeholder(attr)} = {value_ref(value)}')
        if conditions:
            params['ConditionExpression'] = ' AND '.join(conditions)
        if values:
            params['ExpressionAttributeValues'] = values

        try:
            response = self.table.update_item(**params)
        except ClientError as error:
            if is_conditional_failure(error):
                raise ConflictError(
                    'Item does not exist or was modified concurrently',
                    {'PK': pk, 'SK': sk, 'expected': expected or {}}
                )
            raise
        return response.get('Attributes', {})

    def delete_item(self, pk: str, sk: str) -> None:
        self.table.delete_item(Key={'PK': pk, 'SK': sk})

    def write_batch(self, items: Sequence[Dict[str, Any]], create_only: bool = False) -> None:
        """
        Write up to 25 items as one batch.

        Create-only batches are one TransactWriteItems call in which every item
        must not exist yet; the batch is all-or-nothing. Upsert batches go
        through the batch writer, which resubmits unprocessed items.

        Raises:
            ValidationError: If the batch is empty or over the limit
            ConflictError: If a create-only item already exists
        """
        if not items or len(items) > MAX_BATCH_SIZE:
            raise ValidationError(
                f'Batch must contain between 1 and {MAX_BATCH_SIZE} items',
                {'size': len(items)}
            )

        if not create_only:
            with self.table.batch_writer(overwrite_by_pkeys=['PK', 'SK']) as batch:
                for item in items:
                    batch.put_item(Item=item)
            return

        transact_items = [
            {
                'Put': {
                    'TableName': self.table_name,
                    'Item': {key: self._serializer.serialize(value) for key, value in item.items()},
                    'ConditionExpression': CREATE_ONLY_CONDITION
                }
            }
            for item in items
        ]
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as error:
            if is_conditional_failure(error):
                raise ConflictError(
                    'One or more items already exist',
                    {'keys': [{'PK': item.get('PK'), 'SK': item.get('SK')} for item in items]}
                )
            raise
