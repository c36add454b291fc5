"""
Credential Store for Birdwatch.

Persists one OAuth token record per mailbox, keyed by email address.
"""

import copy
import logging
import time
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any, Protocol

from google.cloud import firestore

from .errors import ProviderError

logger = logging.getLogger(__name__)

# Provider fields stored verbatim, in the layout the token endpoint returns them
TOKEN_FIELDS = ("access_token", "refresh_token", "expiry_date", "token_type", "scope", "id_token")


@dataclass
class CredentialRecord:
    """OAuth token material for one mailbox."""
    identity: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None  # epoch milliseconds
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None

    def is_stale(self, now: Optional[float] = None, margin_seconds: int = 60) -> bool:
        """True if the access token has no expiry or expires within the margin."""
        if not self.expiry_date:
            return True
        now = time.time() if now is None else now
        return self.expiry_date < (now + margin_seconds) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Provider fields only; the identity is the document key."""
        data = asdict(self)
        return {k: data[k] for k in TOKEN_FIELDS if data[k] is not None}

    @classmethod
    def from_dict(cls, identity: str, data: Dict[str, Any]) -> "CredentialRecord":
        expiry = data.get("expiry_date")
        return cls(
            identity=identity,
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expiry_date=int(expiry) if expiry is not None else None,
            token_type=data.get("token_type"),
            scope=data.get("scope"),
            id_token=data.get("id_token"),
        )


class CredentialStore(Protocol):
    """Get/put access to stored credential records."""

    def get(self, identity: str) -> Optional[CredentialRecord]:
        ...

    def put(self, record: CredentialRecord) -> None:
        ...


class FirestoreCredentialStore:
    """
    Stores credential records in Firestore.

    Collection layout:
    - <collection>/<email address>: provider token fields
    """

    def __init__(self, project_id: str, collection_name: str = "oauth2Token", db=None):
        """
        Initialize Firestore credential store.

        Args:
            project_id: GCP project ID
            collection_name: Firestore collection for tokens
            db: Optional pre-built Firestore client
        """
        self.collection_name = collection_name
        self.db = db or firestore.Client(project=project_id)
        logger.info(f"FirestoreCredentialStore initialized with collection: {collection_name}")

    def get(self, identity: str) -> Optional[CredentialRecord]:
        try:
            doc = self.db.collection(self.collection_name).document(identity).get()
        except Exception as e:
            raise ProviderError(f"Failed to read credentials for {identity}: {e}") from e

        if not doc.exists:
            return None
        return CredentialRecord.from_dict(identity, doc.to_dict() or {})

    def put(self, record: CredentialRecord) -> None:
        doc_ref = self.db.collection(self.collection_name).document(record.identity)
        try:
            doc_ref.set(record.to_dict())
        except Exception as e:
            raise ProviderError(f"Failed to save credentials for {record.identity}: {e}") from e
        logger.info(f"Stored OAuth tokens for {record.identity}")


class InMemoryCredentialStore:
    """Process-local credential store for local development and tests."""

    def __init__(self, records: Optional[List[CredentialRecord]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        self.put_count = 0
        for record in records or []:
            self._records[record.identity] = record.to_dict()

    def get(self, identity: str) -> Optional[CredentialRecord]:
        data = self._records.get(identity)
        if data is None:
            return None
        return CredentialRecord.from_dict(identity, copy.deepcopy(data))

    def put(self, record: CredentialRecord) -> None:
        self._records[record.identity] = record.to_dict()
        self.put_count += 1
