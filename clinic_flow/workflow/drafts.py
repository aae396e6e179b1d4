"""Debounced section drafts for collaborators that stream keystrokes.

Each edit bumps a per-section counter and (re)schedules a flush after the
quiescence window. Timer cancellation is only an optimization: every flush
carries the edit counter, and the coordinator decides by version whether it
lands, so a timer that fires late can never overwrite a newer save.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SaveCallable = Callable[[str, str, int], Awaitable[object]]


@dataclass
class _Draft:
    content: str
    version: int


def _stored_version(result: object) -> Optional[int]:
    """Version the store holds after a discarded save, if the result says."""
    if getattr(result, "outcome", None) != "discarded":
        return None
    section = getattr(result, "section", None)
    return getattr(section, "last_edit_version", None)


class SectionDraftBuffer:
    """Coalesces edits per section and saves them through *save*.

    ``save(section_id, content, edit_version)`` is usually a partial of
    ``WorkflowEngine.save_section`` bound to one encounter and actor.

    A section has at most one sleeping timer in ``_timers`` and at most one
    running background save in ``_inflight``. ``flush`` waits for the running
    save before writing whatever draft is still pending, so it only returns
    once the section's latest content has been handed to *save*.
    """

    def __init__(
        self,
        save: SaveCallable,
        quiescence_seconds: float = 1.5,
        known_versions: Optional[dict[str, int]] = None,
    ):
        self._save = save
        self.quiescence_seconds = quiescence_seconds
        self._versions: dict[str, int] = dict(known_versions or {})
        self._drafts: dict[str, _Draft] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self.results: dict[str, object] = {}

    def edit(self, section_id: str, content: str) -> int:
        """Record the latest content for *section_id*; returns its edit version."""
        version = self.version_of(section_id) + 1
        self._versions[section_id] = version
        self._drafts[section_id] = _Draft(content, version)
        self._schedule(section_id)
        return version

    def _schedule(self, section_id: str) -> None:
        timer = self._timers.pop(section_id, None)
        if timer is not None:
            timer.cancel()
        self._timers[section_id] = asyncio.ensure_future(self._flush_later(section_id))

    async def _flush_later(self, section_id: str) -> None:
        await asyncio.sleep(self.quiescence_seconds)
        task = asyncio.current_task()
        if self._timers.get(section_id) is not task:
            return
        # From here on the task is a running save, not a cancellable timer
        del self._timers[section_id]
        previous = self._inflight.get(section_id)
        self._inflight[section_id] = task
        try:
            if previous is not None:
                await asyncio.wait({previous})
            await self._write(section_id)
        except Exception:
            logger.exception("Background save of section %s failed", section_id)
            if section_id in self._drafts and section_id not in self._timers:
                self._schedule(section_id)
        finally:
            if self._inflight.get(section_id) is task:
                del self._inflight[section_id]

    async def _write(self, section_id: str) -> Optional[object]:
        draft = self._drafts.pop(section_id, None)
        if draft is None:
            return None
        try:
            result = await self._save(section_id, draft.content, draft.version)
        except BaseException:
            # Keep the draft unless a newer edit replaced it meanwhile
            self._drafts.setdefault(section_id, draft)
            raise
        stored = _stored_version(result)
        if stored is not None and stored > self.version_of(section_id):
            self._versions[section_id] = stored
        self.results[section_id] = result
        return result

    async def flush(self, section_id: str) -> Optional[object]:
        """Save the pending draft for *section_id* now, if there is one.

        Waits for a background save that is already running. Returns that
        save's result when nothing newer was left to write.
        """
        waited = False
        while True:
            timer = self._timers.pop(section_id, None)
            if timer is not None:
                timer.cancel()
            running = self._inflight.get(section_id)
            if running is None:
                break
            await asyncio.wait({running})
            waited = True
        if waited and section_id not in self._drafts:
            return self.results.get(section_id)
        return await self._write(section_id)

    async def flush_all(self) -> dict[str, object]:
        flushed = {}
        for section_id in sorted(set(self._drafts) | set(self._timers) | set(self._inflight)):
            flushed[section_id] = await self.flush(section_id)
        return flushed

    async def switch_section(self, from_section_id: str) -> Optional[object]:
        """Flush the section being left before the caller moves on."""
        return await self.flush(from_section_id)

    async def close(self) -> dict[str, object]:
        """Flush everything, waiting for background saves still running."""
        return await self.flush_all()

    def pending(self) -> list[str]:
        return sorted(self._drafts)

    def version_of(self, section_id: str) -> int:
        return self._versions.get(section_id, 0)
