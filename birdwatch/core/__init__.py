"""Core components for Birdwatch."""

from .errors import BirdwatchError, UnknownIdentity, InvalidInput, ProviderError
from .credential_store import CredentialRecord, FirestoreCredentialStore, InMemoryCredentialStore
from .oauth_manager import OAuthClient, Session, SessionManager
from .gmail_client import GmailClient
from .image_extractor import ImageExtractor
from .label_classifier import VisionLabelClassifier
from .pipeline import MessagePipeline, PipelineOutcome, PipelineResult, PipelineStage

__all__ = [
    "BirdwatchError",
    "UnknownIdentity",
    "InvalidInput",
    "ProviderError",
    "CredentialRecord",
    "FirestoreCredentialStore",
    "InMemoryCredentialStore",
    "OAuthClient",
    "Session",
    "SessionManager",
    "GmailClient",
    "ImageExtractor",
    "VisionLabelClassifier",
    "MessagePipeline",
    "PipelineOutcome",
    "PipelineResult",
    "PipelineStage",
]
