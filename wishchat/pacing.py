from __future__ import annotations

import asyncio


class Pacer:
    """Humanlike pauses between the typing indicator and the answer.

    Pauses are awaited, so other senders' turns keep running while one sender
    waits, and cancelling the turn's task cancels the pause with it.
    """

    def __init__(self, reply_delay_ms: int = 500, reprompt_delay_ms: int = 1000) -> None:
        self.reply_delay = max(reply_delay_ms, 0) / 1000.0
        self.reprompt_delay = max(reprompt_delay_ms, 0) / 1000.0

    async def pause(self) -> None:
        await self._sleep(self.reply_delay)

    async def pause_reprompt(self) -> None:
        await self._sleep(self.reprompt_delay)

    @staticmethod
    async def _sleep(seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
