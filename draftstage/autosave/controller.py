"""Autosave controller - periodically persists live job-form state."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from ..models import BindingState, SaveOutcome
from ..storage import RecordStore, StorageError
from ..storage.database import serialize_json, deserialize_json

logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 30.0


class AutoSaveController:
    """
    Saves a job's form data to the record store on a timer.

    The controller is bound to one job at a time together with a live
    reference to its form data: a mutable object (dict, list, pydantic
    model) or a zero-argument callable returning the current value. On
    every tick the data is serialized and compared with the last saved
    snapshot; only a change triggers a write.

    The value present at bind time is the baseline, so a form that is never
    edited is never written. Rebinding a job whose draft was discarded has
    no baseline, so its current data is saved on the next tick. A failed tick write is not retried; the
    snapshot still advances and the error goes to the ``on_save_error``
    callback.

    Usage:
        controller = AutoSaveController(record_store)
        await controller.bind("job-1", form_data)
        ...
        form_data["notes"] = "updated"   # picked up on the next tick
        ...
        await controller.unbind()
    """

    def __init__(
        self,
        record_store: RecordStore,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.record_store = record_store
        self.interval_seconds = interval_seconds

        self._job_id: Optional[str] = None
        self._data_ref: Any = None
        self._last_saved: Optional[str] = None
        self._discarded: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._lock = asyncio.Lock()

        self._on_save_error: Optional[Callable[[str, Exception], Awaitable[None]]] = None

    async def __aenter__(self) -> "AutoSaveController":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.unbind()
        return False

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def state(self) -> BindingState:
        if self._task is not None and not self._task.done():
            return BindingState.BOUND
        return BindingState.IDLE

    def on_save_error(self, callback: Callable[[str, Exception], Awaitable[None]]) -> None:
        """Register callback for when a timed save fails."""
        self._on_save_error = callback

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    async def bind(
        self,
        job_id: Optional[str],
        data_ref: Any,
        interval_seconds: Optional[float] = None,
    ) -> None:
        """Bind to a job's form data and start the autosave timer.

        Any previous binding is cancelled before the new one starts. A
        missing job id or data reference leaves the controller idle.
        """
        await self.unbind()

        if not job_id or data_ref is None:
            logger.debug("Autosave not scheduled: no job id or data")
            return

        interval = self.interval_seconds if interval_seconds is None else interval_seconds
        if interval <= 0:
            raise ValueError(f"Autosave interval must be positive, got {interval}")

        self._job_id = job_id
        self._data_ref = data_ref
        # A discarded job has no draft, so its current data is not a baseline.
        self._last_saved = None if job_id == self._discarded else self._serialize()
        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation, interval))

        logger.info(f"Autosave bound to job {job_id} every {interval}s")

    async def unbind(self) -> None:
        """Stop the autosave timer. Safe to call when idle."""
        self._generation += 1
        task, self._task = self._task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._job_id is not None:
            logger.info(f"Autosave unbound from job {self._job_id}")
        self._job_id = None
        self._data_ref = None

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def tick(self) -> SaveOutcome:
        """Run one autosave pass. Write failures are reported, not raised."""
        return await self._tick(self._generation)

    async def save_now(self) -> bool:
        """Save immediately if the data changed. Returns True if a write was issued.

        Unlike a timed tick, a failed write raises to the caller.
        """
        outcome = await self._save(self._generation)
        return outcome == SaveOutcome.SAVED

    async def load(self) -> Optional[Any]:
        """Load the saved draft for the bound job."""
        if not self._job_id:
            return None
        return await self.record_store.get(self._job_id)

    async def discard(self) -> bool:
        """Delete the bound job's draft and forget the last saved snapshot."""
        if not self._job_id:
            return False

        async with self._lock:
            await self.record_store.delete(self._job_id)
            self._last_saved = None
            self._discarded = self._job_id

        logger.info(f"Discarded draft for job {self._job_id}")
        return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(self, generation: int, interval: float) -> None:
        """Timer loop for one binding."""
        try:
            while generation == self._generation:
                await asyncio.sleep(interval)
                if generation != self._generation:
                    break
                try:
                    await self._tick(generation)
                except Exception as e:
                    logger.error(f"Error in autosave loop: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.debug(f"Autosave timer cancelled (generation {generation})")

    async def _tick(self, generation: int) -> SaveOutcome:
        job_id = self._job_id
        try:
            outcome = await self._save(generation)
        except StorageError as e:
            logger.error(f"Autosave failed for job {job_id}: {e}")
            await self._emit_error(job_id, e)
            return SaveOutcome.FAILED

        if outcome == SaveOutcome.SAVED:
            logger.info(f"Auto-saved draft for job {job_id}")
        return outcome

    async def _save(self, generation: int) -> SaveOutcome:
        async with self._lock:
            # A stale timer must not write after an unbind or rebind.
            if generation != self._generation or not self._job_id:
                return SaveOutcome.NOT_BOUND

            current = self._serialize()
            if current == self._last_saved:
                return SaveOutcome.UNCHANGED

            self._last_saved = current
            await self.record_store.put(self._job_id, deserialize_json(current))
            if self._discarded == self._job_id:
                self._discarded = None
            return SaveOutcome.SAVED

    def _serialize(self) -> Optional[str]:
        """Serialize the current value behind the data reference."""
        value = self._data_ref() if callable(self._data_ref) else self._data_ref
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        # JSON turns every key into a string; do that first so mixed
        # int and str keys can be sorted.
        plain = deserialize_json(serialize_json(value))
        return serialize_json(plain, sort_keys=True)

    async def _emit_error(self, job_id: Optional[str], error: Exception) -> None:
        if self._on_save_error:
            try:
                await self._on_save_error(job_id, error)
            except Exception as e:
                logger.error(f"Error in autosave error callback: {e}", exc_info=True)
