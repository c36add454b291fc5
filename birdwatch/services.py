"""
Service wiring for Birdwatch.

Lazily builds the shared, stateless service objects used by the HTTP
routes and the Cloud Function entry point. Sessions are never cached here.
"""

import os
import logging
from typing import Optional

from .config.settings import AppConfig, get_app_config
from .core.credential_store import CredentialStore, FirestoreCredentialStore, InMemoryCredentialStore
from .core.gmail_client import GmailClient
from .core.label_classifier import VisionLabelClassifier
from .core.oauth_manager import OAuthClient, Session, SessionManager
from .core.pipeline import MessagePipeline

logger = logging.getLogger(__name__)

_config: Optional[AppConfig] = None
_credential_store: Optional[CredentialStore] = None
_session_manager: Optional[SessionManager] = None
_pipeline: Optional[MessagePipeline] = None


def reset_services():
    """Drop cached services (config changes, tests)."""
    global _config, _credential_store, _session_manager, _pipeline
    _config = None
    _credential_store = None
    _session_manager = None
    _pipeline = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = get_app_config()
    return _config


def get_oauth_client() -> OAuthClient:
    """Build the OAuth client; raises ValueError if client credentials are missing."""
    config = get_config()
    if not config.oauth.is_configured:
        raise ValueError("GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET must be configured")

    return OAuthClient(
        client_id=config.oauth.client_id,
        client_secret=config.oauth.client_secret,
        redirect_uri=config.redirect_uri,
        scopes=config.oauth.scopes,
        auth_uri=config.oauth.auth_uri,
        token_uri=config.oauth.token_uri
    )


def get_credential_store() -> CredentialStore:
    """Firestore by default; CREDENTIAL_STORE_BACKEND=memory for local runs."""
    global _credential_store
    if _credential_store is None:
        config = get_config()
        backend = os.getenv("CREDENTIAL_STORE_BACKEND", "firestore").lower()
        if backend == "memory":
            logger.warning("Using in-memory credential store - tokens are lost on restart")
            _credential_store = InMemoryCredentialStore()
        else:
            _credential_store = FirestoreCredentialStore(
                project_id=config.gcp_project_id,
                collection_name=config.firestore_collection
            )
    return _credential_store


def get_session_manager() -> SessionManager:
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager(
            store=get_credential_store(),
            oauth_client=get_oauth_client(),
            refresh_margin_seconds=get_config().refresh_margin_seconds
        )
    return _session_manager


def get_gmail_client(session: Session) -> GmailClient:
    return GmailClient(session)


def lookup_profile_email(session: Session) -> str:
    """Mailbox address for a freshly authorized session."""
    return get_gmail_client(session).get_profile_email()


def get_pipeline() -> MessagePipeline:
    global _pipeline
    if _pipeline is None:
        config = get_config()
        _pipeline = MessagePipeline(
            session_manager=get_session_manager(),
            classifier=VisionLabelClassifier(max_concurrent=config.vision.max_concurrent_requests),
            gmail_factory=get_gmail_client,
            target_label=config.target_label,
            mutation_label_ids=config.gmail.mutation_label_ids
        )
    return _pipeline
