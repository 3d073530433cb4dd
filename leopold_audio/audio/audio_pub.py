"""Progress publisher bridging session listeners to pypubsub topics."""

import logging
from pubsub import pub
from ..models.session import SessionProgress

logger = logging.getLogger(__name__)


class ProgressPublisher:
    """Publishes session progress snapshots using pubsub.pub."""

    def __init__(self, topic: str = "recording.progress"):
        """Initialize progress publisher.

        Args:
            topic: Pub/sub topic name for progress events
        """
        self.topic = topic
        logger.info(f"ProgressPublisher initialized with topic: {topic}")

    def publish_progress(self, progress: SessionProgress) -> None:
        """Publish a progress snapshot to the pub/sub topic.

        Can be registered directly as a session controller listener.
        """
        pub.sendMessage(self.topic, progress=progress)
