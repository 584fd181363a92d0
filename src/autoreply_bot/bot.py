"""Auto-reply bot: routes inbound text to canned replies."""

import asyncio
import logging
from typing import Optional

from .config import BotConfig, get_config
from .models import InboundMessage
from .router import MessageRouter
from .session import SessionManager

logger = logging.getLogger(__name__)


class AutoReplyBot:
    """
    Answers every inbound text message with the router's reply.

    Before replying the bot subscribes to the sender's presence, shows
    "composing" for ``typing_delay_seconds`` and switches back to
    "available" afterwards. Sends within one reply are sequential.
    """

    def __init__(
        self,
        session: SessionManager,
        router: Optional[MessageRouter] = None,
        config: Optional[BotConfig] = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.router = router or MessageRouter(catalog_url=self.config.catalog_url)
        session.on_message(self.handle_message)

    async def handle_message(self, message: InboundMessage) -> None:
        """Reply to one inbound message."""
        sender = message.sender
        text = message.text
        logger.info(f"📨 Message from {message.push_name or sender} ({sender}): {text!r}")

        reply = self.router.route(text)

        await self.session.presence_subscribe(sender)
        await self.session.send_presence("composing", sender)
        if self.config.typing_delay_seconds > 0:
            await asyncio.sleep(self.config.typing_delay_seconds)

        await self.session.send_text(sender, reply)
        await self.session.send_presence("available", sender)

        logger.debug(f"Replied to {sender}")
