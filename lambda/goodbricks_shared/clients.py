"""
AWS client bundle.

Built once per runtime from configuration and handed to service
constructors. Services never create boto3 clients themselves, so tests can
pass in-memory fakes with the same methods.
"""

from typing import Dict, NamedTuple, Optional

import boto3

from goodbricks_shared.blobs import LayoutBucket
from goodbricks_shared.mailer import Mailer
from goodbricks_shared.store import MainTable


class AwsClients(NamedTuple):
    table: MainTable
    layouts: Optional[LayoutBucket]
    mailer: Mailer


def create_clients(config: Dict[str, str]) -> AwsClients:
    """
    Build the client bundle from handler configuration.

    Args:
        config: Output of load_config; needs main_table_name and, for layout
            functions, email_layouts_bucket_name

    Returns:
        AwsClients with the table, layout bucket (None when not configured) and mailer
    """
    dynamodb = boto3.resource('dynamodb')
    table = MainTable(dynamodb.Table(config['main_table_name']), boto3.client('dynamodb'))

    layouts = None
    if config.get('email_layouts_bucket_name'):
        layouts = LayoutBucket(boto3.client('s3'), config['email_layouts_bucket_name'])

    return AwsClients(table=table, layouts=layouts, mailer=Mailer(boto3.client('ses')))
