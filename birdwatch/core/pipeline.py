"""
Message Pipeline for Birdwatch.

Coordinates session resolution, Gmail access, image extraction and
labeling for one push notification.
"""

import asyncio
import base64
import binascii
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union, Dict, Any

from pydantic import ValidationError

from ..models.schemas import GmailNotification
from .errors import BirdwatchError, InvalidInput, UnknownIdentity
from .gmail_client import GmailClient
from .image_extractor import ImageExtractor
from .label_classifier import VisionLabelClassifier
from .oauth_manager import Session, SessionManager

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Last step a pipeline run completed."""
    START = "start"
    SESSION_RESOLVED = "session_resolved"
    MESSAGE_LISTED = "message_listed"
    MESSAGE_FETCHED = "message_fetched"
    IMAGES_EXTRACTED = "images_extracted"
    LABELED = "labeled"


class PipelineOutcome(str, Enum):
    """How a pipeline run terminated."""
    MUTATED = "mutated"   # target label found, message starred
    SKIPPED = "skipped"   # no label match (or nothing to look at)
    FAILED = "failed"     # any error; never retried


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""
    identity: Optional[str] = None
    outcome: Optional[PipelineOutcome] = None
    stage: PipelineStage = PipelineStage.START
    message_id: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "outcome": self.outcome.value if self.outcome else None,
            "stage": self.stage.value,
            "message_id": self.message_id,
            "labels": self.labels,
            "error": str(self.error) if self.error else None,
        }


def decode_event(data: Union[str, bytes]) -> str:
    """
    Decode a Gmail push notification payload.

    Args:
        data: Base64-encoded JSON, e.g. {"emailAddress": ..., "historyId": ...}

    Returns:
        The mailbox address

    Raises:
        InvalidInput: Payload is not base64 JSON or has no emailAddress
    """
    if not data:
        raise InvalidInput("Empty notification payload")
    try:
        notification = GmailNotification.model_validate_json(base64.b64decode(data))
    except (binascii.Error, ValidationError) as e:
        raise InvalidInput(f"Malformed notification payload: {e}") from e

    if not notification.emailAddress:
        raise InvalidInput("Notification payload has no emailAddress")
    return notification.emailAddress


class MessagePipeline:
    """
    Stars the newest message of a mailbox if one of its images shows the target label.

    Workflow:
    1. Resolve a session for the mailbox
    2. List message IDs and take the first (newest)
    3. Fetch the message
    4. Extract URL and attachment images
    5. Label the images with Cloud Vision
    6. Apply the mutation labels iff the target label is present
    """

    def __init__(
        self,
        session_manager: SessionManager,
        classifier: VisionLabelClassifier,
        gmail_factory: Callable[[Session], GmailClient] = GmailClient,
        extractor: Optional[ImageExtractor] = None,
        target_label: str = "bird",
        mutation_label_ids: Optional[List[str]] = None
    ):
        """
        Initialize message pipeline.

        Args:
            session_manager: Resolves per-request sessions
            classifier: Image labeling service
            gmail_factory: Builds a Gmail client for a session
            extractor: Image extractor
            target_label: Exact (case-sensitive) label that triggers the mutation
            mutation_label_ids: Labels applied on a match (default: STARRED)
        """
        self.sessions = session_manager
        self.classifier = classifier
        self.gmail_factory = gmail_factory
        self.extractor = extractor or ImageExtractor()
        self.target_label = target_label
        self.mutation_label_ids = mutation_label_ids or ['STARRED']

    async def handle_event(self, data: Union[str, bytes]) -> PipelineResult:
        """Process a base64 push notification payload."""
        try:
            identity = decode_event(data)
        except InvalidInput as e:
            logger.error(f"Rejected notification: {e}")
            return PipelineResult(outcome=PipelineOutcome.FAILED, error=e)

        return await self.run(identity)

    async def run(self, identity: str) -> PipelineResult:
        """
        Process the newest message of a mailbox.

        Never raises; the outcome and the error (if any) are on the result.
        """
        result = PipelineResult(identity=identity)

        try:
            await self._run(result)

        except UnknownIdentity as e:
            logger.warning(f"Skipping notification for uninitialized address {identity}")
            result.outcome = PipelineOutcome.FAILED
            result.error = e

        except BirdwatchError as e:
            logger.error(f"Pipeline failed for {identity} after {result.stage.value}: {e}", exc_info=True)
            result.outcome = PipelineOutcome.FAILED
            result.error = e

        except Exception as e:
            logger.error(f"Unexpected pipeline error for {identity}: {e}", exc_info=True)
            result.outcome = PipelineOutcome.FAILED
            result.error = e

        return result

    async def _run(self, result: PipelineResult) -> None:
        # Session, Gmail and Firestore clients are blocking; keep them off the loop
        loop = asyncio.get_event_loop()

        session = await loop.run_in_executor(None, self.sessions.resolve_session, result.identity)
        result.stage = PipelineStage.SESSION_RESOLVED
        gmail = self.gmail_factory(session)

        message_ids = await loop.run_in_executor(None, gmail.list_message_ids)
        result.stage = PipelineStage.MESSAGE_LISTED
        if not message_ids:
            logger.info(f"No messages listed for {result.identity}")
            result.outcome = PipelineOutcome.SKIPPED
            return

        # Provider order; the first ID is the most recent message
        message = await loop.run_in_executor(None, gmail.get_message, message_ids[0])
        result.message_id = message.get('id', message_ids[0])
        result.stage = PipelineStage.MESSAGE_FETCHED

        images = await self.extractor.get_all_images(gmail, message)
        result.stage = PipelineStage.IMAGES_EXTRACTED

        result.labels = await self.classifier.get_image_labels(images)
        result.stage = PipelineStage.LABELED

        if self.target_label not in result.labels:
            logger.info(f"Message {result.message_id} doesn't match label '{self.target_label}'")
            result.outcome = PipelineOutcome.SKIPPED
            return

        await loop.run_in_executor(None, gmail.modify_labels, result.message_id, self.mutation_label_ids)
        result.outcome = PipelineOutcome.MUTATED
