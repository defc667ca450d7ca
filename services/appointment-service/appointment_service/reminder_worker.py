import asyncio
import logging
from datetime import timedelta

from . import config
from .reminders import dispatch_due_reminders

log = logging.getLogger(__name__)


async def reminder_loop(container, stop_event: asyncio.Event):
    window = timedelta(hours=config.REMINDER_HOURS)
    while not stop_event.is_set():
        try:
            marked = await dispatch_due_reminders(
                container.reminders,
                container.identity,
                container.notifications,
                container.clock(),
                window,
            )
            if marked:
                log.info("reminder pass marked %d booking(s)", len(marked))
        except Exception:
            # keep polling; the next tick retries whatever was not marked
            log.exception("reminder pass failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=config.REMINDER_POLL_SECONDS)
        except asyncio.TimeoutError:
            continue
