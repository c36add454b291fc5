"""
OAuth Session Manager for Birdwatch.

Handles the Google OAuth web flow, token refresh, and resolution of a
per-request Session from the credential store.
"""

import time
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Callable, List

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from google.auth.transport.requests import Request

from .credential_store import CredentialRecord, CredentialStore
from .errors import UnknownIdentity, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _expiry_to_millis(expiry: Optional[datetime]) -> Optional[int]:
    # google-auth keeps expiry as a naive UTC datetime
    if expiry is None:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return int(expiry.timestamp() * 1000)


def _millis_to_expiry(expiry_date: Optional[int]) -> Optional[datetime]:
    if not expiry_date:
        return None
    return datetime.fromtimestamp(expiry_date / 1000, tz=timezone.utc).replace(tzinfo=None)


def record_from_credentials(
    identity: str,
    credentials: Credentials,
    previous: Optional[CredentialRecord] = None
) -> CredentialRecord:
    """
    Build a credential record from google-auth credentials.

    The refresh token of the previous record is kept when the provider
    did not issue a new one.
    """
    scopes = getattr(credentials, "granted_scopes", None) or credentials.scopes
    id_token = credentials.id_token if isinstance(credentials.id_token, str) else None
    record = CredentialRecord(
        identity=identity,
        access_token=credentials.token,
        refresh_token=credentials.refresh_token,
        expiry_date=_expiry_to_millis(credentials.expiry),
        token_type="Bearer",
        scope=" ".join(scopes) if scopes else None,
        id_token=id_token,
    )
    if previous is not None:
        record.refresh_token = record.refresh_token or previous.refresh_token
        record.scope = record.scope or previous.scope
        record.id_token = record.id_token or previous.id_token
    return record


@dataclass(frozen=True)
class Session:
    """Authorization material for one mailbox, valid for one request."""
    identity: str
    record: CredentialRecord
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    token_uri: str = DEFAULT_TOKEN_URI

    def credentials(self) -> Credentials:
        """google-auth credentials for the Gmail API client."""
        return Credentials(
            token=self.record.access_token,
            refresh_token=self.record.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            expiry=_millis_to_expiry(self.record.expiry_date),
        )


class OAuthClient:
    """
    Google OAuth 2.0 web client.

    Builds consent URLs, exchanges authorization codes, and refreshes
    access tokens against the provider token endpoint.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: List[str],
        auth_uri: str = "https://accounts.google.com/o/oauth2/auth",
        token_uri: str = DEFAULT_TOKEN_URI
    ):
        """
        Initialize OAuth client.

        Args:
            client_id: Google OAuth client ID
            client_secret: Google OAuth client secret
            redirect_uri: OAuth redirect URI (the oauth2callback endpoint)
            scopes: Scopes requested on the consent screen
            auth_uri: Provider authorization endpoint
            token_uri: Provider token endpoint
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.auth_uri = auth_uri
        self.token_uri = token_uri

    def _flow(self) -> Flow:
        flow = Flow.from_client_config(
            {
                "web": {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "auth_uri": self.auth_uri,
                    "token_uri": self.token_uri,
                    "redirect_uris": [self.redirect_uri]
                }
            },
            scopes=self.scopes,
            # Callback runs in a separate request, so no PKCE verifier survives
            autogenerate_code_verifier=False
        )
        flow.redirect_uri = self.redirect_uri
        return flow

    def authorization_url(self, state: Optional[str] = None) -> str:
        """
        Create the consent screen URL.

        Offline access plus a forced consent prompt make Google reissue a
        refresh token every time.
        """
        kwargs = {"access_type": "offline", "prompt": "consent"}
        if state:
            kwargs["state"] = state
        authorization_url, _ = self._flow().authorization_url(**kwargs)
        return authorization_url

    def exchange_code(self, code: str) -> Credentials:
        """Exchange an authorization code for credentials."""
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            raise ProviderError(f"Failed to exchange authorization code: {e}") from e
        return flow.credentials

    def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Exchange the stored refresh token for a new access token."""
        if not record.refresh_token:
            raise ProviderError(f"No refresh token stored for {record.identity}")

        credentials = Credentials(
            token=record.access_token,
            refresh_token=record.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
        try:
            credentials.refresh(Request())
        except Exception as e:
            raise ProviderError(f"Failed to refresh tokens for {record.identity}: {e}") from e

        return record_from_credentials(record.identity, credentials, previous=record)


class SessionManager:
    """
    Resolves per-request sessions from stored credentials.

    Each call returns a new Session value; nothing is shared between
    requests. The read-then-refresh sequence is not atomic, so concurrent
    refreshes for one mailbox are last-write-wins.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: OAuthClient,
        refresh_margin_seconds: int = 60,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.oauth = oauth_client
        self.refresh_margin_seconds = refresh_margin_seconds
        self.clock = clock

    def _session(self, record: CredentialRecord) -> Session:
        return Session(
            identity=record.identity,
            record=record,
            client_id=self.oauth.client_id,
            client_secret=self.oauth.client_secret,
            token_uri=self.oauth.token_uri,
        )

    def resolve_session(self, identity: str) -> Session:
        """
        Get a valid session for a mailbox, refreshing the token if needed.

        Raises:
            UnknownIdentity: No credential is stored for the address
            ProviderError: Store access or token refresh failed
        """
        record = self.store.get(identity)
        if record is None:
            logger.info(f"No OAuth tokens found for {identity}")
            raise UnknownIdentity(identity)

        if record.is_stale(now=self.clock(), margin_seconds=self.refresh_margin_seconds):
            record = self.oauth.refresh(record)
            self.store.put(record)
            logger.info(f"Refreshed OAuth tokens for {identity}")

        return self._session(record)

    def authorize(self, code: str, profile_lookup: Callable[[Session], str]) -> Session:
        """
        Complete the OAuth callback: exchange the code, find out whose
        mailbox it is, and store the tokens under that address.

        Args:
            code: Authorization code from the callback
            profile_lookup: Returns the mailbox address for a session

        Returns:
            Session for the newly authorized mailbox
        """
        credentials = self.oauth.exchange_code(code)
        record = record_from_credentials("", credentials)

        identity = profile_lookup(self._session(record))
        record = replace(record, identity=identity)
        self.store.put(record)

        return self._session(record)
