"""
Gmail API Client for Birdwatch.

Thin wrapper over the Gmail v1 API, always scoped to the mailbox of the
session it was built with.
"""

import logging
from typing import List, Dict, Any, Optional

import httplib2
import google_auth_httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from google.auth.exceptions import GoogleAuthError

from .errors import ProviderError
from .oauth_manager import Session

logger = logging.getLogger(__name__)


class GmailClient:
    """
    Gmail API client for one authorized mailbox.

    All calls use userId='me'. API and auth failures are raised as ProviderError.
    """

    def __init__(self, session: Session, service=None):
        """
        Initialize Gmail client.

        Args:
            session: Resolved session for the mailbox
            service: Optional pre-built Gmail API resource
        """
        self.session = session
        self.credentials = None
        if service is None:
            self.credentials = session.credentials()
            service = build('gmail', 'v1', credentials=self.credentials, cache_discovery=False)
        self.service = service

    def _execute(self, request, description: str, isolated: bool = False) -> Dict[str, Any]:
        """
        Execute an API request, wrapping failures.

        Isolated requests get their own transport; httplib2 connections
        cannot be shared between threads.
        """
        try:
            if isolated and self.credentials is not None:
                http = google_auth_httplib2.AuthorizedHttp(self.credentials, http=httplib2.Http())
                return request.execute(http=http)
            return request.execute()
        except (HttpError, GoogleAuthError) as e:
            logger.debug(f"Gmail API error during {description}: {e}")
            raise ProviderError(f"Gmail API error during {description}: {e}") from e

    def get_profile_email(self) -> str:
        """Get the address of the authorized mailbox."""
        profile = self._execute(
            self.service.users().getProfile(userId='me'),
            "getProfile"
        )
        return profile['emailAddress']

    def list_message_ids(self) -> List[str]:
        """
        List message IDs in provider order (newest first).

        Only the first page is read.
        """
        response = self._execute(
            self.service.users().messages().list(userId='me'),
            "messages.list"
        )
        return [m['id'] for m in response.get('messages', [])]

    def get_message(self, message_id: str) -> Dict[str, Any]:
        """Fetch the full message resource."""
        return self._execute(
            self.service.users().messages().get(userId='me', id=message_id),
            f"messages.get {message_id}"
        )

    def get_attachment(self, message_id: str, attachment_id: str) -> str:
        """
        Fetch an attachment body.

        Returns:
            Attachment data, base64url encoded
        """
        result = self._execute(
            self.service.users().messages().attachments().get(
                userId='me',
                messageId=message_id,
                id=attachment_id
            ),
            f"attachments.get {attachment_id}",
            isolated=True
        )
        return result.get('data', '')

    def modify_labels(self, message_id: str, add_label_ids: List[str]) -> Dict[str, Any]:
        """Apply labels (e.g. STARRED) to a message."""
        result = self._execute(
            self.service.users().messages().modify(
                userId='me',
                id=message_id,
                body={'addLabelIds': add_label_ids}
            ),
            f"messages.modify {message_id}"
        )
        logger.info(f"Applied {add_label_ids} to message {message_id} for {self.session.identity}")
        return result

    def watch(self, topic_name: str, label_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Register a push subscription for the mailbox.

        Args:
            topic_name: Full Pub/Sub topic name (projects/<p>/topics/<t>)
            label_ids: Label filter (default: INBOX)

        Returns:
            Watch response with historyId and expiration
        """
        result = self._execute(
            self.service.users().watch(
                userId='me',
                body={
                    'labelIds': label_ids or ['INBOX'],
                    'topicName': topic_name
                }
            ),
            "watch"
        )
        logger.info(f"Watch initialized for {self.session.identity} on {topic_name}")
        return result
