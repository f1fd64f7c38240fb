"""
Policy storage for policyforge.

- PolicyStore: key/blob store interface
- S3PolicyStore: Amazon S3 and S3-compatible storage (boto3)
"""

from __future__ import annotations

from policyforge.storage.base import (
    DEFAULT_KEY_PREFIX,
    POLICY_CONTENT_TYPE,
    PolicyStore,
    authored_policy_key,
)
from policyforge.storage.s3 import S3PolicyStore

__all__ = [
    "DEFAULT_KEY_PREFIX",
    "POLICY_CONTENT_TYPE",
    "PolicyStore",
    "S3PolicyStore",
    "authored_policy_key",
]
