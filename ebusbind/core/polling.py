"""Deduplicated, jittered polling of linked capabilities."""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from functools import partial
from typing import Protocol

from ebusbind.core.addressing import hex_dump
from ebusbind.core.bridge import POLL_PRIORITY, Bridge
from ebusbind.core.config import DeviceConfig
from ebusbind.core.errors import ControllerError, EncodeError, TransportSendError
from ebusbind.core.model import CapabilityNode
from ebusbind.core.projector import ADVANCED_PREFIX
from ebusbind.core.timer import JobHandle, Timer

MAX_INITIAL_DELAY = 30
LOGGER = logging.getLogger(__name__)


class PollingOwner(Protocol):
    """The device instance whose capabilities are polled."""

    collection_id: str

    @property
    def config(self) -> DeviceConfig | None:
        """Parsed device configuration, None while unconfigured."""

    def capability(self, capability_id: str) -> CapabilityNode | None:
        """Capability node behind a device-local capability id."""

    def capability_ids(self) -> list[str]:
        """All capability ids of the device, linked or not."""

    def is_linked(self, capability_id: str) -> bool:
        """True if a consumer is linked to the capability."""


@dataclass(eq=False)
class PollingJob:
    key: bytes
    period: float
    initial_delay: float
    origin: str
    handle: JobHandle | None = None


def effective_polling_period(value_name: str, capability_period: float, device_period: float) -> float:
    """Capability period if set, else the device default; never for advanced values."""
    period = capability_period or device_period
    # values starting with _ are internal and never polled
    if value_name.startswith(ADVANCED_PREFIX):
        return 0
    return period


class PollingScheduler:
    """Maps linked capabilities to poll telegrams and runs one job per unique telegram.

    Both maps are only mutated while holding ``_lock``. Job ticks run on timer
    threads and call the bridge without holding the lock. A fatal controller
    error unlinks only the capability that created the job; the removal is
    skipped while a link or relink holds the lock and retried on the next
    failing tick.
    """

    def __init__(
        self,
        owner: PollingOwner,
        bridge: Bridge,
        timer: Timer,
        *,
        rng: random.Random | None = None,
        max_initial_delay: int = MAX_INITIAL_DELAY,
    ) -> None:
        self._owner = owner
        self._bridge = bridge
        self._timer = timer
        self._rng = rng or random.Random()
        self._max_initial_delay = max_initial_delay
        self._lock = threading.RLock()
        self._capability_requests: dict[str, bytes] = {}
        self._jobs: dict[bytes, PollingJob] = {}

    @property
    def jobs(self) -> dict[bytes, PollingJob]:
        with self._lock:
            return dict(self._jobs)

    @property
    def capability_requests(self) -> dict[str, bytes]:
        with self._lock:
            return dict(self._capability_requests)

    def polling_period(self, capability_id: str) -> float:
        if not self._owner.is_linked(capability_id):
            return 0
        node = self._owner.capability(capability_id)
        config = self._owner.config
        if node is None or config is None:
            return 0
        return effective_polling_period(
            node.value_name,
            config.channel_polling.get(capability_id, 0),
            config.polling,
        )

    def link_capability(self, capability_id: str) -> None:
        with self._lock:
            self._link(capability_id)

    def unlink_capability(self, capability_id: str) -> None:
        with self._lock:
            self._unlink(capability_id)

    def relink_all(self) -> None:
        with self._lock:
            LOGGER.info("(Re)Initialize all eBUS pollings for %s ...", self._owner.collection_id)
            capability_ids = dict.fromkeys([*self._owner.capability_ids(), *self._capability_requests])
            for capability_id in capability_ids:
                self._link(capability_id)

    def unlink_all(self) -> None:
        with self._lock:
            for capability_id in list(self._capability_requests):
                self._unlink(capability_id)

    def dispose(self) -> None:
        with self._lock:
            for job in self._jobs.values():
                LOGGER.info("Remove polling job for %s", hex_dump(job.key))
                if job.handle is not None:
                    job.handle.cancel()
            self._jobs.clear()
            self._capability_requests.clear()

    def _link(self, capability_id: str) -> None:
        # linking replaces any previous mapping of this capability
        self._unlink(capability_id)

        period = self.polling_period(capability_id)
        if period == 0:
            return

        node = self._owner.capability(capability_id)
        config = self._owner.config
        if node is None or config is None or not node.polling:
            return

        try:
            telegram = self._bridge.build_poll_request(self._owner.collection_id, node.command_id, config.slave_address)
        except EncodeError as exc:
            LOGGER.error("Unable to build polling telegram for \"%s\": %s", capability_id, exc)
            return

        if telegram is None:
            LOGGER.info("Unable to create raw polling telegram for \"%s\" !", node.command_id)
            return

        if telegram in self._jobs:
            LOGGER.info("Raw telegram already in use for polling, skip additional polling for \"%s\"!", capability_id)
        else:
            # random first execution spreads many pollings over time
            initial_delay = self._rng.randrange(self._max_initial_delay) if self._max_initial_delay > 0 else 0
            job = PollingJob(key=telegram, period=period, initial_delay=initial_delay, origin=capability_id)
            job.handle = self._timer.schedule(partial(self._tick, job), initial_delay, period)
            self._jobs[telegram] = job
            LOGGER.info(
                "Register polling for \"%s\" every %s sec. (initial delay %s sec.)",
                node.command_id,
                period,
                initial_delay,
            )

        self._capability_requests[capability_id] = telegram

    def _unlink(self, capability_id: str) -> None:
        telegram = self._capability_requests.pop(capability_id, None)
        if telegram is None:
            return

        if telegram in self._capability_requests.values():
            LOGGER.debug("Polling job still in use for \"%s\" ...", capability_id)
            return

        job = self._jobs.pop(telegram, None)
        if job is not None and job.handle is not None:
            job.handle.cancel()
        LOGGER.debug("Cancel polling job for \"%s\" ...", capability_id)

    def _release_origin(self, job: PollingJob) -> None:
        # never wait for a running link/relink; a later failing tick retries
        if not self._lock.acquire(blocking=False):
            LOGGER.debug("Polling maps busy, defer removal of \"%s\"", job.origin)
            return
        try:
            if self._jobs.get(job.key) is not job:
                return
            if self._capability_requests.get(job.origin) != job.key:
                return
            self._unlink(job.origin)
        finally:
            self._lock.release()

    def _tick(self, job: PollingJob) -> None:
        LOGGER.debug("Poll command \"%s\" with \"%s\" ...", job.origin, hex_dump(job.key))
        try:
            if self._bridge.is_connected():
                self._bridge.send(job.key, POLL_PRIORITY)
            else:
                LOGGER.debug("Unable to send polling command due to an unconnected controller")
        except TransportSendError as exc:
            LOGGER.debug("Unable to send polling command for \"%s\": %s", job.origin, exc)
        except ControllerError as exc:
            LOGGER.debug("Remove polling for \"%s\" due to controller exception: %s", job.origin, exc)
            self._release_origin(job)
