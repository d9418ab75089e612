"""AWS service helpers for S3 and CloudFront."""

from typing import IO, Dict, Iterable, List, Optional, Union

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from shared.errors import CDNInvalidationError, S3Error
from shared.logger import StructuredLogger

# Error codes worth another attempt; everything else is a definitive rejection
TRANSIENT_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeoutException",
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
    "ServiceFailure",
}

# S3 DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000


def is_retryable(error: Exception) -> bool:
    """Classify a botocore error as transient (retry) or definitive (fail now)."""
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        return code in TRANSIENT_ERROR_CODES or status >= 500
    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return True
    # Remaining BotoCoreErrors (bad params, missing credentials) will not fix themselves
    return False


def client_config(connect_timeout: float = 10.0, read_timeout: float = 60.0) -> BotoConfig:
    """botocore client config with explicit timeouts and SDK-level retries off."""
    return BotoConfig(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": 1, "mode": "standard"},
    )


class S3Helper:
    """S3 operations."""

    def __init__(self, region_name: str = "us-east-1", client=None, boto_config: Optional[BotoConfig] = None):
        self.client = client or boto3.client("s3", region_name=region_name, config=boto_config or client_config())

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Union[IO[bytes], bytes],
        content_type: str = "application/octet-stream",
        cache_control: Optional[str] = None,
    ) -> str:
        """Put object to S3, streaming from a file handle. Returns the ETag."""
        extra_args = {"ContentType": content_type}
        if cache_control:
            extra_args["CacheControl"] = cache_control

        try:
            StructuredLogger.debug("Putting object to S3", bucket=bucket, key=key, content_type=content_type)
            response = self.client.put_object(Bucket=bucket, Key=key, Body=body, **extra_args)
            return response.get("ETag", "").strip('"')
        except (ClientError, BotoCoreError) as e:
            raise S3Error(f"Error putting object to {bucket}/{key}: {str(e)}", retryable=is_retryable(e)) from e

    def list_objects(self, bucket: str, prefix: str = "") -> Dict[str, str]:
        """List objects under prefix. Returns a mapping of key to ETag."""
        try:
            objects = {}
            paginator = self.client.get_paginator("list_objects_v2")
            pages = paginator.paginate(Bucket=bucket, Prefix=prefix)

            for page in pages:
                if "Contents" in page:
                    for obj in page["Contents"]:
                        objects[obj["Key"]] = obj.get("ETag", "").strip('"')

            return objects
        except (ClientError, BotoCoreError) as e:
            raise S3Error(f"Error listing objects in {bucket}/{prefix}: {str(e)}", retryable=is_retryable(e)) from e

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> List[str]:
        """Delete keys in batches. Returns the keys S3 confirmed deleted."""
        keys = list(keys)
        deleted = []
        try:
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                chunk = keys[start : start + DELETE_BATCH_SIZE]
                StructuredLogger.info("Deleting S3 objects", bucket=bucket, count=len(chunk))
                response = self.client.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": False},
                )
                deleted.extend(item["Key"] for item in response.get("Deleted", []))
                errors = response.get("Errors", [])
                if errors:
                    failed = ", ".join(f"{err.get('Key')} ({err.get('Code')})" for err in errors)
                    raise S3Error(f"Error deleting objects from {bucket}: {failed}")
            return deleted
        except (ClientError, BotoCoreError) as e:
            raise S3Error(f"Error deleting objects from {bucket}: {str(e)}", retryable=is_retryable(e)) from e


class CloudFrontHelper:
    """CloudFront operations."""

    def __init__(self, region_name: str = "us-east-1", client=None, boto_config: Optional[BotoConfig] = None):
        self.client = client or boto3.client(
            "cloudfront", region_name=region_name, config=boto_config or client_config()
        )

    def create_invalidation(self, distribution_id: str, paths: List[str], caller_reference: str) -> Dict[str, str]:
        """Create an invalidation. Returns its id and initial status."""
        try:
            StructuredLogger.info(
                "Creating CloudFront invalidation",
                distribution_id=distribution_id,
                paths_count=len(paths),
                caller_reference=caller_reference,
            )

            response = self.client.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(paths), "Items": list(paths)},
                    "CallerReference": caller_reference,
                },
            )

            invalidation = response["Invalidation"]
            StructuredLogger.info(
                "CloudFront invalidation created",
                invalidation_id=invalidation["Id"],
                distribution_id=distribution_id,
                status=invalidation.get("Status"),
            )
            return {"Id": invalidation["Id"], "Status": invalidation.get("Status", "InProgress")}
        except (ClientError, BotoCoreError) as e:
            raise CDNInvalidationError(
                f"Error invalidating CloudFront: {str(e)}", retryable=is_retryable(e)
            ) from e

    def get_invalidation_status(self, distribution_id: str, invalidation_id: str) -> str:
        """Current status of an invalidation (``InProgress`` or ``Completed``)."""
        try:
            response = self.client.get_invalidation(DistributionId=distribution_id, Id=invalidation_id)
            return response["Invalidation"]["Status"]
        except (ClientError, BotoCoreError) as e:
            raise CDNInvalidationError(
                f"Error reading invalidation {invalidation_id}: {str(e)}", retryable=is_retryable(e)
            ) from e
