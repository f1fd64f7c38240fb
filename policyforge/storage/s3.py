"""
Amazon S3 policy store for policyforge.

Supports:
- Amazon S3
- S3-compatible storage (LocalStack, MinIO, ...) through endpoint_url

With the "local" profile the client targets LocalStack on
http://localhost:4566 in us-east-1 with path-style addressing.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from policyforge.config import StoreConfig
from policyforge.exceptions import PolicyNotFoundError, StoreError
from policyforge.resilience import RetryPolicy, retry_call
from policyforge.storage.base import POLICY_CONTENT_TYPE, PolicyStore

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_TRANSIENT_CODES = {
    "InternalError",
    "ServiceUnavailable",
    "SlowDown",
    "RequestTimeout",
    "Throttling",
    "ThrottlingException",
}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _is_transient(error: Exception) -> bool:
    if isinstance(error, ClientError):
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return _error_code(error) in _TRANSIENT_CODES or status >= 500
    return isinstance(error, BotoCoreError)


class S3PolicyStore(PolicyStore):
    """
    Store policy documents in an S3 bucket.

    Example:
        >>> store = S3PolicyStore(StoreConfig(
        ...     bucket_name="policies",
        ...     policy_object_key="policies/active.rego",
        ...     profile="local",
        ... ))
        >>> store.put("policies/billing_invoices_v1.rego", b"package api.access")
    """

    name = "s3"

    def __init__(self, config: StoreConfig, client: Any = None) -> None:
        """
        Initialize the S3 store.

        Args:
            config: Store configuration.
            client: Pre-built boto3 S3 client; one is created from the
                configuration when omitted.
        """
        self.config = config
        self._retry_policy = RetryPolicy(
            max_attempts=max(1, config.max_attempts),
            base_delay=0.2,
            max_delay=5.0,
            retry_on=_is_transient,
        )
        self._client = client if client is not None else self._create_client()

    @property
    def bucket_name(self) -> str:
        return self.config.bucket_name

    def _create_client(self) -> Any:
        """Initialize the boto3 S3 client."""
        client_config = BotoConfig(
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
            retries={"max_attempts": 0},  # We handle retries ourselves
            s3={"addressing_style": "path"} if self.config.is_local else None,
        )

        client_kwargs: dict[str, Any] = {"config": client_config}

        region = self.config.resolved_region()
        if region:
            client_kwargs["region_name"] = region

        endpoint_url = self.config.resolved_endpoint_url()
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        if self.config.is_local:
            logger.info(f"Using local S3 endpoint: {endpoint_url}")
            return boto3.client("s3", **client_kwargs)

        logger.info(f"Using AWS profile: {self.config.profile or 'default'}")
        session = boto3.Session(profile_name=self.config.profile or None)
        return session.client("s3", **client_kwargs)

    def fetch(self, key: str) -> bytes:
        """Fetch an object's bytes."""
        try:
            return retry_call(
                self._get_object,
                key,
                policy=self._retry_policy,
                description=f"S3 get {key}",
            )
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise PolicyNotFoundError(key) from e
            raise StoreError(
                f"Failed to get object from S3: {_error_code(e) or e}",
                key=key,
                operation="fetch",
            ) from e
        except BotoCoreError as e:
            raise StoreError(
                f"Failed to get object from S3: {e}", key=key, operation="fetch"
            ) from e

    def _get_object(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket_name, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def put(self, key: str, data: bytes, content_type: str = POLICY_CONTENT_TYPE) -> None:
        """Upload an object in a single request."""
        try:
            retry_call(
                self._client.put_object,
                policy=self._retry_policy,
                description=f"S3 put {key}",
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(
                f"Failed to upload policy to S3: {e}", key=key, operation="put"
            ) from e

        logger.info(f"Stored s3://{self.bucket_name}/{key} ({len(data)} bytes)")

    def health_check(self) -> bool:
        """
        Check if the bucket is reachable.

        Returns:
            True if healthy.
        """
        try:
            self._client.head_bucket(Bucket=self.bucket_name)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"S3 health check failed: {e}")
            return False
