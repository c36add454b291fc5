"""
Image Extractor for Birdwatch.

Pulls images out of a Gmail message: URLs referenced by <img> tags in the
HTML body, and image attachments decoded to raw bytes.
"""

import base64
import binascii
import asyncio
import logging
from typing import List, Dict, Any, Iterator, Union

from bs4 import BeautifulSoup

from .errors import ProviderError
from .gmail_client import GmailClient

logger = logging.getLogger(__name__)

Image = Union[str, bytes]


def decode_base64(data: str) -> bytes:
    """
    Decode base64 or base64url data, tolerating missing padding.

    Raises:
        ProviderError: Data is not valid base64
    """
    # Convert from base64url to base64
    data = data.replace('-', '+').replace('_', '/')
    data += '=' * (-len(data) % 4)
    try:
        return base64.b64decode(data)
    except binascii.Error as e:
        raise ProviderError(f"Undecodable base64 body: {e}") from e


def iter_parts(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Walk the MIME parts below a payload in document order."""
    for part in payload.get('parts') or []:
        yield part
        yield from iter_parts(part)


class ImageExtractor:
    """
    Collects URL and attachment images from a message.

    Output order is all URL images first, then all attachment images.
    """

    def get_message_html(self, message: Dict[str, Any]) -> str:
        """Concatenate the decoded body of every part, then the top-level payload."""
        payload = message.get('payload', {})

        chunks = [self._unpack(part) for part in iter_parts(payload)]
        chunks.append(self._unpack(payload))
        return ''.join(chunks)

    def _unpack(self, part: Dict[str, Any]) -> str:
        data = part.get('body', {}).get('data') or ''
        return decode_base64(data).decode('utf-8', errors='replace')

    def get_image_urls(self, message: Dict[str, Any]) -> List[str]:
        """
        Get URL-referenced images in a message.

        No deduplication and no check that the URLs are fetchable.
        """
        soup = BeautifulSoup(self.get_message_html(message), 'html.parser')
        return [img['src'] for img in soup.find_all('img', src=True)]

    async def get_image_attachments(self, gmail: GmailClient, message: Dict[str, Any]) -> List[bytes]:
        """
        Get image attachments of a message as raw bytes.

        Attachments are fetched concurrently.
        """
        image_parts = [
            part for part in iter_parts(message.get('payload', {}))
            if 'image' in (part.get('mimeType') or '')
        ]
        if not image_parts:
            return []

        loop = asyncio.get_event_loop()

        async def fetch(part: Dict[str, Any]) -> bytes:
            body = part.get('body', {})
            attachment_id = body.get('attachmentId')
            if not attachment_id:
                # Small inline images carry their data directly
                return decode_base64(body.get('data') or '')
            data = await loop.run_in_executor(
                None,
                lambda: gmail.get_attachment(message['id'], attachment_id)
            )
            return decode_base64(data)

        images = await asyncio.gather(*(fetch(part) for part in image_parts))
        logger.debug(f"Fetched {len(images)} image attachments from message {message.get('id')}")
        return list(images)

    async def get_all_images(self, gmail: GmailClient, message: Dict[str, Any]) -> List[Image]:
        """Get all images from a message: URL images, then attachment bytes."""
        url_images = self.get_image_urls(message)
        attachment_images = await self.get_image_attachments(gmail, message)
        return url_images + attachment_images
