import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

from ape.logging import logger

from rollout.constants import POLL_BACKOFF, POLL_INITIAL_INTERVAL, POLL_MAX_INTERVAL
from rollout.exceptions import RolloutError


class WaitCancelled(RolloutError):
    """Raised when a pending wait is cancelled."""


class ConfirmationWaiter:
    """
    Suspends the rollout until the network, or the block explorer indexing it,
    has caught up with a stage.

    Waits block the calling thread; `cancel` may be called from another
    thread to abort the current and any later wait.
    """

    def __init__(
        self,
        indexer=None,
        initial_interval: float = POLL_INITIAL_INTERVAL,
        max_interval: float = POLL_MAX_INTERVAL,
        backoff: float = POLL_BACKOFF,
    ):
        self.indexer = indexer
        self.initial_interval = initial_interval
        self.max_interval = max_interval
        self.backoff = backoff
        self._cancelled = threading.Event()

    def _now(self) -> float:
        return time.monotonic()

    def _sleep(self, seconds: float) -> None:
        if self._cancelled.wait(seconds):
            raise WaitCancelled("Confirmation wait cancelled")

    def cancel(self) -> None:
        self._cancelled.set()

    def wait(self, seconds: float) -> None:
        """Waits a fixed number of seconds."""
        if seconds <= 0:
            return
        print(f"(i) Waiting {seconds}s for confirmations...")
        self._sleep(seconds)

    def wait_until(self, condition: Callable[[], bool], timeout: float) -> bool:
        """
        Polls condition with exponential backoff until it holds or timeout
        seconds have elapsed. Returns whether the condition was met.
        """
        deadline = self._now() + timeout
        interval = self.initial_interval
        while True:
            if condition():
                return True
            remaining = deadline - self._now()
            if remaining <= 0:
                return False
            self._sleep(min(interval, remaining))
            interval = min(interval * self.backoff, self.max_interval)

    def settle(self, address: str, timeout: float) -> bool:
        """
        Waits up to timeout seconds for the explorer to index address.
        Without an indexer this is a plain fixed wait.
        """
        if timeout <= 0:
            return True
        if self.indexer is None:
            self.wait(timeout)
            return True

        print(f"(i) Waiting up to {timeout}s for {address} to be indexed...")
        indexed = self.wait_until(lambda: self.indexer.is_indexed(address), timeout=timeout)
        if not indexed:
            logger.warning(f"{address} not indexed after {timeout}s; continuing.")
        return indexed


class Indexer(ABC):
    """Reports whether a block explorer has indexed a contract address."""

    @abstractmethod
    def is_indexed(self, address: str) -> bool:
        raise NotImplementedError

