"""
Cloud Function entry points for Birdwatch.

on_new_message is triggered by the Pub/Sub topic that Gmail publishes
mailbox notifications to.
"""

import json
import asyncio
import logging
from datetime import datetime, UTC

import functions_framework
from dotenv import load_dotenv

from birdwatch import services

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@functions_framework.cloud_event
def on_new_message(cloud_event):
    """
    Process new messages as they are received.

    CloudEvent data:
    {
        "message": {
            "data": "<base64 {\"emailAddress\": ..., \"historyId\": ...}>"
        }
    }
    """
    message = (cloud_event.data or {}).get("message") or {}

    try:
        pipeline = services.get_pipeline()
    except Exception as e:
        logger.error(f"Pipeline unavailable, dropping notification: {e}", exc_info=True)
        return

    result = asyncio.run(pipeline.handle_event(message.get("data", "")))
    logger.info(f"Notification processed: {json.dumps(result.to_dict())}")


@functions_framework.http
def health_check(request):
    """Health check endpoint for the Cloud Function."""
    return json.dumps({
        "status": "healthy",
        "service": "birdwatch",
        "timestamp": datetime.now(UTC).isoformat()
    }), 200, {"Content-Type": "application/json"}
