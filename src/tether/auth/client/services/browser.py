"""Best-effort launch of the system browser for user authorization."""

from __future__ import annotations

import asyncio
import logging
import webbrowser

logger = logging.getLogger(__name__)


async def open_browser(url: str) -> None:
    """Open ``url`` with the OS default handler without blocking the loop.

    Failure is not an error: the URL is logged so the user can open it.
    """
    logger.info(f"Opening browser for authorization: {url}")
    try:
        opened = await asyncio.to_thread(webbrowser.open, url)
    except webbrowser.Error as e:
        logger.warning(f"Failed to open browser automatically: {e}")
        opened = False

    if not opened:
        logger.warning(f"Please open this URL in your browser: {url}")
