"""
Debounced, optimistic block sync.

Every edit is applied to the block store immediately. The persistence call is
deferred: each block id has at most one scheduled flush, and edits arriving
before it fires are merged into it. When the flush fires it re-reads the
block from the store, so the saved record always reflects the latest local
state rather than the state at the time of the first edit.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from ..config import config
from ..errors import ScriptoriumError
from ..models import (
    Block,
    BlockPatch,
    DataLossWarning,
    FlushOutcome,
    FlushResult,
    SaveStatus,
    SaveStatusEvent,
)
from ..store import BlockStore
from ..api import PersistenceAPI
from .guard import DataLossGuard

StatusListener = Callable[[SaveStatusEvent], Any]
WarningListener = Callable[[DataLossWarning], Any]

# Fields the server fills in on its own; always taken from its answer.
_SERVER_FIELDS = ("created_at", "updated_at")


class PendingFlush:
    """
    The scheduled save of one block.

    Holds the merged patch, a cancellable timer task, and a future that
    completes with the ``FlushResult`` once the save has run (or been dropped).
    """

    def __init__(self, block_id: str, patch: BlockPatch, base_text: Optional[str]):
        self.block_id = block_id
        self.patch = patch
        # text before the first edit of this cycle; what the guard compares against
        self.base_text = base_text
        self.skip_guard = False
        self.done: asyncio.Future = asyncio.get_running_loop().create_future()
        self.timer: Optional[asyncio.Task] = None

    def schedule(self, delay: float, fire: Callable[["PendingFlush"], Any]) -> None:
        """(Re)start the timer; ``fire`` is awaited with this entry when it expires."""
        self.cancel_timer()
        self.timer = asyncio.ensure_future(self._wait_then_fire(delay, fire))

    async def _wait_then_fire(self, delay: float, fire: Callable[["PendingFlush"], Any]) -> None:
        await asyncio.sleep(delay)
        await fire(self)

    def cancel_timer(self) -> None:
        if self.timer is not None and not self.timer.done():
            self.timer.cancel()
        self.timer = None

    def resolve(self, result: FlushResult) -> None:
        if not self.done.done():
            self.done.set_result(result)


class SyncPipeline:
    """
    Per-block debouncing, patch merging and reconciliation for one page.

    Observers follow progress through ``on_status_change``
    (``idle -> dirty -> saving -> saved | error``) and get a
    ``DataLossWarning`` through ``on_data_loss`` when the guard refuses a save.
    """

    def __init__(self, store: BlockStore, api: PersistenceAPI, guard: Optional[DataLossGuard] = None,
                 delay: Optional[float] = None):
        """
        Initialize the pipeline.

        Args:
            store: The page's block store
            api: Persistence backend
            guard: Data-loss guard (a default one is created when omitted)
            delay: Debounce delay in seconds (defaults to config value)
        """
        self.store = store
        self.api = api
        self.guard = guard or DataLossGuard()
        self.delay = config.debounce_seconds if delay is None else delay

        self._pending: Dict[str, PendingFlush] = {}
        self._inflight: Set[PendingFlush] = set()
        self._refused: Dict[str, PendingFlush] = {}
        self._status = SaveStatus.IDLE
        self._cycle_failed = False
        self._status_listeners: List[StatusListener] = []
        self._warning_listeners: List[WarningListener] = []

    # -- observers -------------------------------------------------------

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def pending_count(self) -> int:
        return len(self._pending) + len(self._inflight)

    @property
    def refused_ids(self) -> List[str]:
        return list(self._refused)

    def get_status(self) -> SaveStatusEvent:
        return SaveStatusEvent(status=self._status, pending_count=self.pending_count)

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Subscribe to status events; returns an unsubscribe function."""
        self._status_listeners.append(listener)
        return lambda: self._status_listeners.remove(listener) if listener in self._status_listeners else None

    def on_data_loss(self, listener: WarningListener) -> Callable[[], None]:
        """Subscribe to data-loss refusals; returns an unsubscribe function."""
        self._warning_listeners.append(listener)
        return lambda: self._warning_listeners.remove(listener) if listener in self._warning_listeners else None

    def _notify(self, listeners: List[Callable[[Any], Any]], event: Any) -> None:
        for listener in list(listeners):
            try:
                listener(event)
            except Exception as e:
                logging.error(f"Sync listener {listener!r} failed: {e}")

    def _set_status(self, status: SaveStatus) -> None:
        if status != self._status:
            logging.debug(f"Save status {self._status.value} -> {status.value}")
        self._status = status
        # listeners also hear about pending-count changes without a status flip
        self._notify(self._status_listeners, self.get_status())

    def mark_dirty(self) -> None:
        """Flag unsaved changes without touching any timer."""
        if self._status not in (SaveStatus.SAVING, SaveStatus.ERROR):
            self._set_status(SaveStatus.DIRTY)

    # -- scheduling ------------------------------------------------------

    def patch(self, block_id: str, patch: Any, delay: Optional[float] = None) -> asyncio.Future:
        """
        Apply ``patch`` to the store now and schedule its persistence.

        Must be called from a running event loop.

        Args:
            block_id: Target block
            patch: A ``BlockPatch`` or a mapping of its fields
            delay: Debounce delay in seconds for this call (0 flushes on the next loop turn)

        Returns:
            Future completing with the ``FlushResult`` of the flush this patch joined

        Raises:
            BlockValidationError: If the patched block no longer matches its type schema
        """
        patch = BlockPatch.coerce(patch)
        current = self.store.get(block_id)
        if current is None:
            logging.warning(f"Ignoring patch for unknown block {block_id}")
            future = asyncio.get_running_loop().create_future()
            future.set_result(FlushResult(block_id=block_id, outcome=FlushOutcome.FAILED,
                                          error="block is not in the store"))
            return future

        # raises BlockValidationError before anything is scheduled
        self.store.update_block(block_id, patch.apply_to)

        entry = self._pending.get(block_id)
        if entry is None:
            refused = self._refused.get(block_id)
            # keep guarding against the text that was last accepted
            base_text = refused.base_text if refused is not None else current.text
            entry = PendingFlush(block_id, patch, base_text)
            self._pending[block_id] = entry
        else:
            entry.patch = entry.patch.merged(patch)
        if patch.touches_text:
            # newer text replaces whatever was refused
            self._refused.pop(block_id, None)

        entry.schedule(self.delay if delay is None else delay, self._fire)

        if self._status in (SaveStatus.SAVING, SaveStatus.ERROR):
            self._notify(self._status_listeners, self.get_status())
        else:
            self._set_status(SaveStatus.DIRTY)
        return entry.done

    def confirm_refused(self, block_id: str, delay: float = 0.0) -> Optional[asyncio.Future]:
        """
        Persist a patch the guard refused, after the user acknowledged the loss.

        Returns:
            The flush future, or None if nothing was refused for ``block_id``
        """
        refused = self._refused.pop(block_id, None)
        if refused is None:
            return None
        entry = self._pending.get(block_id)
        if entry is None:
            entry = PendingFlush(block_id, refused.patch, refused.base_text)
            self._pending[block_id] = entry
        else:
            entry.patch = refused.patch.merged(entry.patch)
        entry.skip_guard = True
        logging.info(f"Saving block {block_id} despite dropped annotations (confirmed)")
        entry.schedule(delay, self._fire)
        return entry.done

    def discard(self, block_id: Optional[str] = None) -> None:
        """
        Drop scheduled flushes (all of them when ``block_id`` is None) without saving.

        Refused patches for the same blocks are forgotten as well.
        """
        ids = list(self._pending) if block_id is None else [block_id]
        for bid in ids:
            entry = self._pending.pop(bid, None)
            if entry is not None:
                entry.cancel_timer()
                entry.resolve(FlushResult(block_id=bid, outcome=FlushOutcome.DISCARDED))
        if block_id is None:
            self._refused.clear()
        else:
            self._refused.pop(block_id, None)
        if not self.pending_count and self._status in (SaveStatus.DIRTY, SaveStatus.ERROR):
            self._cycle_failed = False
            self._set_status(SaveStatus.IDLE)

    # -- flushing --------------------------------------------------------

    async def _fire(self, entry: PendingFlush) -> FlushResult:
        if self._pending.get(entry.block_id) is entry:
            del self._pending[entry.block_id]
        entry.timer = None
        self._inflight.add(entry)
        if self._status != SaveStatus.ERROR:
            self._set_status(SaveStatus.SAVING)

        try:
            result = await self._flush(entry)
        except Exception as e:
            logging.error(f"Unexpected error saving block {entry.block_id}: {e}")
            result = FlushResult(block_id=entry.block_id, outcome=FlushOutcome.FAILED, error=str(e))
        finally:
            self._inflight.discard(entry)

        entry.resolve(result)
        self._finish(result)
        return result

    async def _flush(self, entry: PendingFlush) -> FlushResult:
        block_id = entry.block_id
        current = self.store.get(block_id)
        if current is None:
            logging.warning(f"Block {block_id} left the store before its save; dropping patch")
            return FlushResult(block_id=block_id, outcome=FlushOutcome.DISCARDED)

        outgoing = entry.patch.complete_against(current)

        if entry.patch.touches_text and not entry.skip_guard:
            verdict = self.guard.check(entry.base_text, (outgoing.content or {}).get("text"))
            if not verdict.allowed:
                self._refused[block_id] = entry
                warning = DataLossWarning(
                    block_id=block_id,
                    previous_count=verdict.previous_count,
                    message=f"Not saved: this edit would remove every annotation in the block "
                            f"({verdict.previous_count} found). Reload the page to recover.",
                )
                logging.warning(f"Refused save of block {block_id}: {verdict.reason}")
                self._notify(self._warning_listeners, warning)
                return FlushResult(block_id=block_id, outcome=FlushOutcome.REFUSED, error=verdict.reason)

        try:
            saved = await self.api.patch_block(block_id, outgoing)
        except ScriptoriumError as e:
            logging.error(f"Patch of block {block_id} failed: {e}")
            return FlushResult(block_id=block_id, outcome=FlushOutcome.FAILED, error=str(e))

        self._reconcile(saved, outgoing)
        return FlushResult(block_id=block_id, outcome=FlushOutcome.SAVED, block=self.store.get(block_id))

    def _reconcile(self, saved: Block, sent: BlockPatch) -> None:
        """Copy the server's answer into the store, field by field."""
        newer = self._pending.get(saved.id)
        fields = [name for name in sent.fields] + list(_SERVER_FIELDS)
        update = {
            name: getattr(saved, name)
            for name in fields
            if newer is None or not newer.patch.touches(name)
        }
        self.store.update_block(saved.id, lambda block: block.model_copy(update=update))

    def _finish(self, result: FlushResult) -> None:
        if result.outcome in (FlushOutcome.FAILED, FlushOutcome.REFUSED):
            self._cycle_failed = True
        if self.pending_count == 0:
            self._set_status(SaveStatus.ERROR if self._cycle_failed else SaveStatus.SAVED)
            self._cycle_failed = False
        elif self._cycle_failed:
            self._set_status(SaveStatus.ERROR)
        else:
            self._notify(self._status_listeners, self.get_status())

    async def flush(self, block_id: str) -> Optional[FlushResult]:
        """Save one block's scheduled patch right away and wait for it."""
        entry = self._pending.get(block_id)
        if entry is None:
            return None
        entry.cancel_timer()
        return await self._fire(entry)

    async def flush_all(self) -> SaveStatus:
        """
        Cancel every timer and save everything now, concurrently.

        Flushes already in flight are awaited too.

        Returns:
            ``saved`` unless any of the flushes failed or was refused, then ``error``
        """
        entries = list(self._pending.values())
        inflight = list(self._inflight)
        if not entries and not inflight:
            return self._status

        for entry in entries:
            entry.cancel_timer()
        self._cycle_failed = False
        self._set_status(SaveStatus.SAVING)

        results = await asyncio.gather(
            *(self._fire(entry) for entry in entries),
            *(asyncio.shield(entry.done) for entry in inflight),
        )
        failed = [r for r in results if r.outcome in (FlushOutcome.FAILED, FlushOutcome.REFUSED)]
        if failed:
            logging.error(f"Flush finished with {len(failed)} unsaved block(s) of {len(results)}")
        self._cycle_failed = False
        self._set_status(SaveStatus.ERROR if failed else SaveStatus.SAVED)
        return self._status
