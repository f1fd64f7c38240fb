"""
Policy store interface and key conventions.

A policy store is a key/blob store: fetch a document by key, put a
document under a key. Putting a key replaces it as a whole, so readers
never observe a partially written policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from policyforge.exceptions import StoreError

DEFAULT_KEY_PREFIX = "policies/"
DEFAULT_EXTENSION = "rego"
POLICY_CONTENT_TYPE = "text/plain"


def authored_policy_key(
    application_name: str,
    api_name: str,
    api_version: str,
    prefix: str = DEFAULT_KEY_PREFIX,
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """
    Build the deterministic key of an authored policy.

    Example:
        >>> authored_policy_key("billing", "invoices", "v1")
        'policies/billing_invoices_v1.rego'
    """
    if prefix and not prefix.endswith("/"):
        prefix = prefix + "/"
    return f"{prefix}{application_name}_{api_name}_{api_version}.{extension}"


class PolicyStore(ABC):
    """Abstract base class for policy stores."""

    name: str = "base"

    @abstractmethod
    def fetch(self, key: str) -> bytes:
        """
        Fetch a policy document.

        Raises:
            PolicyNotFoundError: If no object exists under the key.
            StoreError: If the store cannot be read.
        """

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = POLICY_CONTENT_TYPE) -> None:
        """
        Store a policy document, replacing any previous object under the key.

        Raises:
            StoreError: If the write fails.
        """

    def fetch_text(self, key: str) -> str:
        """Fetch a policy document and decode it as UTF-8."""
        data = self.fetch(key)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreError(
                f"Policy object is not UTF-8 text: {e}", key=key, operation="fetch"
            ) from e

    def health_check(self) -> bool:
        return True
