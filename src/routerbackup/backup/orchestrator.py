"""
Fleet backup orchestration.

Drives a run over the whole inventory or a selection of addresses:
retrieve each router's snapshots, commit both kinds, stamp the inventory,
and report failures. Devices are processed by a fixed pool of worker
coroutines; outcomes are always reported in inventory order.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable, Sequence

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)
from tenacity.stop import stop_base

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.credentials import CredentialResolver, CredentialVault
from routerbackup.backup.errors import (
    CommitFailed,
    DeviceNotFound,
    InventoryUnavailable,
    RetrievalError,
)
from routerbackup.backup.models import (
    ArtifactKind,
    ArtifactSet,
    DeviceRecord,
    OutcomeStatus,
    RunOutcome,
    RunSummary,
)
from routerbackup.backup.notify import NotificationSink, get_notification_sink
from routerbackup.backup.retriever import RemoteRetriever
from routerbackup.backup.store import ArtifactStore
from routerbackup.backup.targets.base import VersionedRepository

if TYPE_CHECKING:
    from routerbackup.inventory.database import DeviceInventory

logger = logging.getLogger(__name__)

FLEET_ADDRESS = "*"


class stop_when_set(stop_base):
    """Stop retrying once the event is set."""

    def __init__(self, event: asyncio.Event):
        self.event = event

    def __call__(self, retry_state) -> bool:
        return self.event.is_set()


class BackupOrchestrator:
    """Coordinates inventory, retrieval, commit and notification."""

    def __init__(
        self,
        config: BackupConfig,
        inventory: "DeviceInventory",
        retriever: RemoteRetriever,
        store: ArtifactStore,
        notifier: NotificationSink,
        cancel_event: asyncio.Event | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Backup configuration (worker count, retry policy)
            inventory: Source of device records and timestamp sink
            retriever: Fetches artifacts from one device
            store: Commits artifacts to the versioned destination
            notifier: Receives outcomes when any device failed
            cancel_event: Optional externally owned cancellation signal.
                An owned signal is cleared when a new run starts; an
                external one is left to its owner.
        """
        self.config = config
        self.inventory = inventory
        self.retriever = retriever
        self.store = store
        self.notifier = notifier
        self._owns_cancel = cancel_event is None
        self._cancel = cancel_event or asyncio.Event()
        self._inventory_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: BackupConfig,
        inventory: "DeviceInventory",
        repository: VersionedRepository,
        vault: CredentialVault | None = None,
    ) -> "BackupOrchestrator":
        """Wire the default collaborators for a config."""
        return cls(
            config=config,
            inventory=inventory,
            retriever=RemoteRetriever(config, CredentialResolver(config, vault)),
            store=ArtifactStore(config, repository),
            notifier=get_notification_sink(config),
        )

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop dispatching new devices; in-flight devices still finish."""
        if not self._cancel.is_set():
            logger.warning("Cancellation requested, waiting for in-flight devices")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _begin(self) -> datetime:
        if self._owns_cancel:
            self._cancel.clear()
        self._inventory_lock = asyncio.Lock()
        return datetime.now()

    async def _inventory_call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking inventory call in the default executor, one at a time."""
        loop = asyncio.get_running_loop()
        async with self._inventory_lock:
            return await loop.run_in_executor(None, func, *args)

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    async def run_fleet(self) -> RunSummary:
        """Back up every router in the inventory."""
        started_at = self._begin()

        detail = "inventory returned no devices"
        try:
            devices = await self._inventory_call(self.inventory.list_devices)
        except InventoryUnavailable as e:
            detail = str(e)
            devices = []

        if not devices:
            logger.error(
                "Get IP addresses from the database failed! Backup is not available. Try later."
            )
            outcome = RunOutcome(
                device_address=FLEET_ADDRESS,
                status=OutcomeStatus.INVENTORY_UNAVAILABLE,
                detail=detail,
                error=InventoryUnavailable.__name__,
            )
            return self._finish([outcome], started_at)

        return await self._run(devices, started_at)

    async def run_selected(self, addresses: Iterable[str]) -> RunSummary:
        """Back up the routers with the given addresses.

        Unknown addresses are reported as failed outcomes without any
        remote call; the rest of the batch still runs.

        Raises:
            ValueError: if no addresses are given
        """
        started_at = self._begin()
        requested = list(dict.fromkeys(addresses))
        if not requested:
            raise ValueError("No addresses given")

        slots: list[DeviceRecord | RunOutcome] = []
        for address in requested:
            try:
                slots.append(await self._inventory_call(self.inventory.get_device, address))
            except DeviceNotFound:
                logger.error(
                    f"IP address {address} does not exist in the database! Add this IP address first."
                )
                slots.append(RunOutcome(
                    device_address=address,
                    status=OutcomeStatus.RETRIEVAL_FAILED,
                    detail="unknown device",
                    error=DeviceNotFound.__name__,
                ))
            except InventoryUnavailable as e:
                logger.error(f"{e}")
                slots.append(RunOutcome(
                    device_address=address,
                    status=OutcomeStatus.RETRIEVAL_FAILED,
                    detail=str(e),
                    error=InventoryUnavailable.__name__,
                ))

        return await self._run(slots, started_at)

    async def _run(
        self,
        slots: Sequence[DeviceRecord | RunOutcome],
        started_at: datetime,
    ) -> RunSummary:
        results: dict[int, RunOutcome] = {}
        queue: asyncio.Queue[tuple[int, DeviceRecord]] = asyncio.Queue()
        seen: set[tuple[str, str]] = set()

        for index, slot in enumerate(slots):
            if isinstance(slot, RunOutcome):
                results[index] = slot
            elif slot.natural_key in seen:
                logger.debug(f"Skipping duplicate {slot.identity} ({slot.address})")
            else:
                seen.add(slot.natural_key)
                queue.put_nowait((index, slot))

        worker_count = min(self.config.max_workers, queue.qsize())
        logger.info(f"Backing up {queue.qsize()} router(s) with {worker_count} worker(s)")

        workers = [
            asyncio.create_task(self._worker(queue, results))
            for _ in range(worker_count)
        ]
        await asyncio.gather(*workers)

        outcomes = [results[index] for index in sorted(results)]
        return self._finish(outcomes, started_at)

    async def _worker(
        self,
        queue: "asyncio.Queue[tuple[int, DeviceRecord]]",
        results: dict[int, RunOutcome],
    ) -> None:
        while not self._cancel.is_set():
            try:
                index, device = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await self.backup_device(device)
            queue.task_done()

    def _finish(self, outcomes: Sequence[RunOutcome], started_at: datetime) -> RunSummary:
        summary = RunSummary(
            outcomes=tuple(outcomes),
            started_at=started_at,
            completed_at=datetime.now(),
            cancelled=self._cancel.is_set(),
        )

        if summary.failed:
            summary.notified = self._notify(summary.outcomes)

        logger.info(
            f"Backup run finished: {len(summary.succeeded)} succeeded, "
            f"{len(summary.failed)} failed"
            + (" (cancelled)" if summary.cancelled else "")
        )
        return summary

    def _notify(self, outcomes: Sequence[RunOutcome]) -> bool:
        try:
            self.notifier.notify(outcomes)
        except Exception as e:
            logger.error(f"Failure report could not be delivered: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # One device
    # -------------------------------------------------------------------------

    async def backup_device(self, device: DeviceRecord) -> RunOutcome:
        """Retrieve, commit and stamp one router. Never raises for device failures."""
        address = device.address

        try:
            artifacts = await self._retrieve(device)
        except RetrievalError as e:
            logger.error(f"Backup of the router {address} failed: {e}")
            return RunOutcome(
                device_address=address,
                status=OutcomeStatus.RETRIEVAL_FAILED,
                detail=str(e),
                device_identity=device.identity,
                error=RetrievalError.__name__,
            )

        try:
            await self._commit(artifacts)
        except CommitFailed as e:
            logger.error(f"Commit for the router {address} failed: {e}")
            return RunOutcome(
                device_address=address,
                status=OutcomeStatus.COMMIT_FAILED,
                detail=str(e),
                device_identity=device.identity,
                error=CommitFailed.__name__,
            )

        detail = ""
        try:
            updated = await self._inventory_call(
                self.inventory.update_timestamp, device.identity, device.address
            )
            if not updated:
                detail = f"backup time not recorded: {device.identity} ({address}) not in inventory"
        except Exception as e:
            detail = f"backup time not recorded: {e}"
        if detail:
            logger.error(f"{address}: {detail}")

        logger.info(f"Backup of the router {address} has been successful.")
        return RunOutcome(
            device_address=address,
            status=OutcomeStatus.SUCCESS,
            detail=detail,
            device_identity=device.identity,
        )

    def _retrying(self) -> AsyncRetrying:
        """Retry policy for one device's retrieval."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.retrieve_attempts) | stop_when_set(self._cancel),
            wait=wait_fixed(self.config.retry_delay),
            retry=retry_if_exception_type(RetrievalError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _retrieve(self, device: DeviceRecord) -> ArtifactSet:
        try:
            async for attempt in self._retrying():
                with attempt:
                    artifacts = await self.retriever.retrieve(device)
        except RetrievalError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error retrieving from {device.address}")
            raise RetrievalError(device.address, e) from e
        return artifacts

    async def _commit(self, artifacts: ArtifactSet) -> None:
        for kind in (ArtifactKind.BINARY, ArtifactKind.TEXT):
            await self.store.commit(artifacts, kind)
