"""
Telegram Log Handler

Custom logging handler that forwards warnings and errors to an ops chat.
"""

import asyncio
import logging
from typing import Optional

import httpx

MAX_BATCH = 10
MAX_TEXT = 4000


class TelegramLogHandler(logging.Handler):
    """
    Logging handler that sends logs to a Telegram chat.
    Only sends WARNING level and above to avoid spam.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        level: int = logging.WARNING,
        batch_delay: float = 2.0,
    ):
        super().__init__(level=level)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.batch_delay = batch_delay
        self._queue: list[str] = []
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def emit(self, record: logging.LogRecord):
        # Never forward our own HTTP client logs
        if record.name.startswith("httpx") or record.name.startswith("httpcore"):
            return

        try:
            msg = self.format(record)
            self._queue.append(
                f"*{record.levelname}* `{record.name}`\n```\n{msg[:1000]}```"
            )

            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # No event loop running; message stays queued for the next batch
                return

            if self._task is None or self._task.done():
                self._task = loop.create_task(self._send_batch())

        except Exception:
            self.handleError(record)

    def take_batch(self) -> Optional[str]:
        """Pop up to MAX_BATCH queued messages joined into one text."""
        if not self._queue:
            return None

        messages = self._queue[:MAX_BATCH]
        self._queue = self._queue[MAX_BATCH:]

        combined = "\n\n".join(messages)
        if len(combined) > MAX_TEXT:
            combined = combined[:MAX_TEXT] + "...[truncated]"
        return combined

    async def _send_batch(self):
        """Send queued messages in batch."""
        await asyncio.sleep(self.batch_delay)

        async with self._lock:
            combined = self.take_batch()
            if combined is None:
                return

            try:
                url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
                async with httpx.AsyncClient(timeout=10.0) as client:
                    await client.post(url, json={
                        "chat_id": self.chat_id,
                        "text": combined,
                        "parse_mode": "Markdown"
                    })
            except httpx.HTTPError:
                pass  # Logging from here would recurse into this handler


def setup_telegram_logging(bot_token: Optional[str], chat_id: str) -> Optional[TelegramLogHandler]:
    """
    Set up Telegram logging for the application.
    Attaches handler to root logger.
    """
    if not bot_token or not chat_id:
        return None

    handler = TelegramLogHandler(bot_token, chat_id, level=logging.WARNING)
    handler.setFormatter(logging.Formatter('%(message)s'))

    # Add to root logger
    logging.getLogger().addHandler(handler)

    # uvicorn does not propagate to root; uvicorn.error propagates here
    logging.getLogger('uvicorn').addHandler(handler)

    return handler
