"""Fire-and-forget notification helpers."""

from __future__ import annotations

import logging

from ocontinue.schemas import ToastVariant
from ocontinue.transport import Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Notifier for headless hosts: writes notices to the ``logging`` tree."""

    _LEVELS = {
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    async def show_toast(
        self,
        title: str,
        message: str,
        variant: ToastVariant = "info",
        duration_ms: int = 3000,
    ) -> None:
        logger.log(self._LEVELS.get(variant, logging.INFO), "[%s] %s", title, message)


async def safe_notify(
    notifier: Notifier | None,
    title: str,
    message: str,
    variant: ToastVariant = "info",
    *,
    duration_ms: int = 3000,
) -> bool:
    """Show a notification, swallowing any failure. Returns True when shown."""
    if notifier is None:
        return False
    try:
        await notifier.show_toast(title, message, variant, duration_ms)
    except Exception as exc:
        # Headless hosts have no toast UI.
        logger.debug("Notification %r not shown: %s", message, exc)
        return False
    return True
