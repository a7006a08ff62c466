"""S3 wrapper for the email layouts bucket."""

from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from goodbricks_shared.errors import NotFoundError


class LayoutBucket:
    """
    Stores layout sources and descriptors.

    Usage:
        bucket = LayoutBucket(boto3.client('s3'), 'gb-email-layouts')
        bucket.put_object('universal/welcome/v1/template.html', html, 'text/html')
    """

    def __init__(self, s3: Any, bucket_name: str):
        self.s3 = s3
        self.bucket_name = bucket_name

    def put_object(
        self,
        key: str,
        body: str,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> None:
        params: Dict[str, Any] = {
            'Bucket': self.bucket_name,
            'Key': key,
            'Body': body.encode('utf-8'),
            'ContentType': content_type
        }
        if metadata:
            params['Metadata'] = metadata
        self.s3.put_object(**params)

    def get_object(self, key: str) -> bytes:
        """
        Raises:
            NotFoundError: If the object does not exist
        """
        try:
            response = self.s3.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as error:
            if error.response.get('Error', {}).get('Code') in ('NoSuchKey', '404', 'NotFound'):
                raise NotFoundError(f"Object '{key}' not found")
            raise
        return response['Body'].read()

    def list_prefixes(self, prefix: str) -> List[str]:
        """Immediate sub-prefixes of ``prefix`` (S3 'folders')."""
        paginator = self.s3.get_paginator('list_objects_v2')
        prefixes = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix, Delimiter='/'):
            for common in page.get('CommonPrefixes', []):
                prefixes.append(common['Prefix'])
        return prefixes

    def list_objects(self, prefix: str) -> List[str]:
        paginator = self.s3.get_paginator('list_objects_v2')
        keys = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            keys.extend(obj['Key'] for obj in page.get('Contents', []))
        return keys
