"""
Single-record synchronization controller.

Holds the last known value of the singleton "last person" record,
saves, fetches and deletes it through a record store, and publishes
the value to observers (typically a presentation layer).

Known race: operations are not serialized against each other. If
save, refresh and delete overlap, the store's own per-record ordering
is the only guarantee and the mirror reflects whichever successful
fetch completes last.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from .exceptions import RecordStoreError, RecordStoreErrorCode
from .logging_utils import RecordLoggerAdapter, get_sync_logger
from .records import (
    LAST_PERSON_RECORD_NAME,
    LAST_PERSON_TEST_RECORD_NAME,
    NAME_FIELD,
    PERSON_RECORD_TYPE,
    Record,
    RecordID,
    SavePolicy,
)
from .reporting import ErrorReport, report_error
from .store.base import RecordStore

logger = get_sync_logger("controller")

Observer = Callable[[str], None]


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class RecordSyncController:
    """Keeps an observable mirror of one remote record.

    The mirror (``last_person``) only changes after a successful fetch;
    saving goes through a second round trip rather than updating the
    mirror optimistically, and deleting never touches it.

    Example:
        >>> controller = RecordSyncController.create(store, use_test_identifier=True)
        >>> unsubscribe = controller.subscribe(lambda name: print(f"Last person: {name}"))
        >>> await controller.save_record("Alice")
        >>> controller.last_person
        'Alice'
    """

    def __init__(self, store: RecordStore, use_test_identifier: bool = False) -> None:
        """Initialize the controller and schedule the initial refresh.

        The initial refresh only runs when an event loop is running;
        its failures are reported but never raised.

        Args:
            store: Record store holding the account's private database
            use_test_identifier: Use the test record instead of the production one
        """
        self._store = store
        self._record_id = RecordID(
            LAST_PERSON_TEST_RECORD_NAME if use_test_identifier else LAST_PERSON_RECORD_NAME
        )
        self._last_person = ""
        self._observers: list[Observer] = []
        self._logger = RecordLoggerAdapter(logger, {"record_name": self._record_id.record_name})

        self._loop = _running_loop()
        self._initial_refresh: asyncio.Task[None] | None = None
        if self._loop is not None:
            self._initial_refresh = self._loop.create_task(self._refresh_in_background())
        else:
            self._logger.debug("No running event loop, initial refresh not scheduled")

    @classmethod
    def create(cls, store: RecordStore, use_test_identifier: bool = False) -> RecordSyncController:
        """Create a controller for the production or the test record."""
        return cls(store, use_test_identifier=use_test_identifier)

    @property
    def record_id(self) -> RecordID:
        """ID of the record this controller mirrors."""
        return self._record_id

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def last_person(self) -> str:
        """Last known name; empty when unknown or known to be empty."""
        return self._last_person

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer called with the new value on every mirror update.

        Returns:
            Callable that removes the observer again
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _set_last_person(self, name: str) -> None:
        # Off-loop callers (worker threads) hand the write to the owning loop
        running = _running_loop()
        if running is None and self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._apply_last_person, name)
            return
        if running is not None:
            self._loop = running
        self._apply_last_person(name)

    def _apply_last_person(self, name: str) -> None:
        self._last_person = name
        for observer in list(self._observers):
            try:
                observer(name)
            except Exception:
                self._logger.exception("Observer failed while handling last person update")

    def _bind_loop(self) -> None:
        # A loop closed by a previous asyncio.run() cannot take callbacks
        if self._loop is None or self._loop.is_closed():
            self._loop = _running_loop()

    # =========================================================================
    # Operations
    # =========================================================================

    async def save_record(self, name: str) -> None:
        """Save ``name`` as the last person, overwriting whatever the server has.

        On success the record is fetched again to update the mirror. If
        that fetch fails the save is still durable and its failure is
        raised.

        Raises:
            RecordStoreError: If the save or the follow-up fetch failed
        """
        self._bind_loop()
        record = Record(
            record_type=PERSON_RECORD_TYPE,
            record_id=self._record_id,
            fields={NAME_FIELD: name},
        )

        try:
            save_results, _ = await self._store.modify_records(
                saving=[record], deleting=[], save_policy=SavePolicy.ALL_KEYS
            )
        except Exception as e:
            self.report_error(e)
            raise

        # Exactly one record was submitted, so exactly one result is expected
        result = save_results.get(self._record_id)
        if result is None:
            error = RecordStoreError(
                RecordStoreErrorCode.INTERNAL_ERROR,
                f"No save result returned for record {self._record_id}",
            )
            self.report_error(error)
            raise error
        if isinstance(result, RecordStoreError):
            self.report_error(result)
            raise result

        self._logger.info(f"Record with ID {result.record_id.record_name} was saved.")
        await self.refresh_last_person()

    async def refresh_last_person(self) -> None:
        """Fetch the record and publish its name.

        A record without a text ``name`` field leaves the mirror as it is.

        Raises:
            RecordStoreError: UNKNOWN_ITEM before the first save, or any
                other store failure
        """
        self._bind_loop()
        try:
            record = await self._store.fetch_record(self._record_id)
        except Exception as e:
            self.report_error(e)
            raise

        self._logger.info(f"Record with ID {record.record_id.record_name} was fetched.")
        name = record[NAME_FIELD]
        if isinstance(name, str):
            self._set_last_person(name)

    async def delete_last_person(self) -> None:
        """Delete the record. The mirror keeps showing the last known name.

        Raises:
            RecordStoreError: UNKNOWN_ITEM if there is no record, or any
                other store failure
        """
        self._bind_loop()
        try:
            record_id = await self._store.delete_record(self._record_id)
        except Exception as e:
            self.report_error(e)
            raise

        self._logger.info(f"Record with ID {record_id.record_name} was deleted.")

    async def wait_until_ready(self) -> None:
        """Wait for the initial refresh to settle, successfully or not."""
        if self._initial_refresh is not None:
            await asyncio.wait([self._initial_refresh])

    def report_error(self, error: BaseException) -> list[ErrorReport]:
        """Classify and log a failure, stamped with this controller's record."""
        return report_error(error, self._logger)

    async def _refresh_in_background(self) -> None:
        try:
            await self.refresh_last_person()
        except Exception:
            # Already reported; nobody is waiting on the initial refresh
            self._logger.debug("Initial refresh did not complete")
