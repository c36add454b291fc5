"""
Birdwatch

Watches a Gmail inbox for new messages, labels their images with Cloud
Vision, and stars the messages that contain a bird.
"""

__version__ = "1.0.0"
