"""
Cloud Vision Label Classifier for Birdwatch.

Runs label detection on every image of a message and flattens the results
into one label list.
"""

import asyncio
import logging
from typing import List, Optional, Any

from google.cloud import vision

from .errors import ProviderError
from .image_extractor import Image

logger = logging.getLogger(__name__)


def _has_error(response: Any) -> bool:
    error = getattr(response, 'error', None)
    return bool(error and (error.code or error.message))


def flatten_labels(responses: List[Any]) -> List[str]:
    """Label descriptions per response, concatenated in input order."""
    return [
        label.description
        for response in responses
        for label in response.label_annotations
    ]


class VisionLabelClassifier:
    """
    Image labeling service using Cloud Vision label detection.

    One request is issued per image; requests run concurrently.
    """

    def __init__(self, client=None, max_concurrent: int = 10):
        """
        Initialize Vision classifier.

        Args:
            client: Optional ImageAnnotatorClient (built with default credentials if None)
            max_concurrent: Maximum concurrent API requests
        """
        self.client = client or vision.ImageAnnotatorClient()
        self.max_concurrent = max_concurrent

    @staticmethod
    def to_vision_image(image: Image) -> vision.Image:
        """URLs are fetched by Vision itself; bytes are sent inline."""
        if isinstance(image, bytes):
            return vision.Image(content=image)
        return vision.Image(source=vision.ImageSource(image_uri=image))

    async def label_batch(self, images: List[Image], max_concurrent: Optional[int] = None) -> List[Any]:
        """
        Run label detection for every image.

        Returns:
            Vision responses, parallel to the input list
        """
        semaphore = asyncio.Semaphore(max_concurrent or self.max_concurrent)
        loop = asyncio.get_event_loop()

        async def detect(image: Image) -> Any:
            async with semaphore:
                return await loop.run_in_executor(
                    None,
                    lambda: self.client.label_detection(image=self.to_vision_image(image))
                )

        try:
            return list(await asyncio.gather(*(detect(image) for image in images)))
        except Exception as e:
            raise ProviderError(f"Vision API error: {e}") from e

    async def get_image_labels(self, images: List[Image]) -> List[str]:
        """
        Get labels for a series of images.

        Only the first response is checked for an error. Errors reported for
        any later image are not surfaced; that image just contributes no labels.

        Returns:
            Flattened list of label descriptions
        """
        if not images:
            return []

        responses = await self.label_batch(images)

        if _has_error(responses[0]):
            raise ProviderError(f"Vision API error: {responses[0].error.message}")

        labels = flatten_labels(responses)
        logger.info(f"Labeled {len(images)} images: {labels}")
        return labels
