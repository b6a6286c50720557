from __future__ import annotations

import asyncio
import logging
import shutil

logger = logging.getLogger(__name__)


class DesktopNotifier:
    """Pops a local desktop notification through ``notify-send``.

    Delivery is fire-and-forget: the helper process is started and not awaited.
    """

    def __init__(self, command: str = "notify-send") -> None:
        self.command = command
        self._executable = shutil.which(command)
        if self._executable is None:
            logger.warning("%s not found, desktop notifications will only be logged", command)

    async def close(self) -> None:
        return None

    async def send(self, title: str, body: str) -> None:
        if self._executable is None:
            logger.info("Desktop notification: %s | %s", title, body.replace("\n", " | "))
            return
        await asyncio.create_subprocess_exec(
            self._executable,
            "--app-name=solana-trade-alerts",
            title,
            body,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
