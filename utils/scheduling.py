from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional

import schedule

LOGGER = logging.getLogger(__name__)


def random_interval(min_ms: int, max_ms: int, rng: Optional[random.Random] = None) -> int:
    """Return a whole number of milliseconds drawn uniformly from [min_ms, max_ms]."""

    if min_ms < 0 or max_ms < 0:
        raise ValueError("Interval bounds must not be negative")
    if min_ms > max_ms:
        raise ValueError(f"Minimum interval {min_ms} is greater than maximum {max_ms}")
    return (rng or random).randint(min_ms, max_ms)


class RandomIntervalScheduler:
    """Run ``task`` repeatedly, waiting a freshly randomized delay before each run.

    Every tick cancels its own ``schedule`` job and arms a new one with a new
    delay. Ticks never overlap: a tick that fires while a run is still in
    progress is skipped.
    """

    def __init__(
        self,
        task: Callable[[], object],
        min_ms: int,
        max_ms: int,
        scheduler: Optional[schedule.Scheduler] = None,
        rng: Optional[random.Random] = None,
    ):
        random_interval(min_ms, max_ms)  # validate bounds up front
        self._task = task
        self._min_ms = min_ms
        self._max_ms = max_ms
        self._scheduler = scheduler or schedule.Scheduler()
        self._rng = rng
        self._running = threading.Lock()
        self._job: Optional[schedule.Job] = None

    @property
    def scheduler(self) -> schedule.Scheduler:
        return self._scheduler

    @property
    def next_delay_ms(self) -> int | None:
        if self._job is None:
            return None
        return round(self._job.period.total_seconds() * 1000)

    def start(self) -> int:
        """Arm the first run and return its delay in milliseconds."""

        return self._arm()

    def _arm(self) -> int:
        delay_ms = random_interval(self._min_ms, self._max_ms, self._rng)
        self._job = self._scheduler.every(delay_ms / 1000).seconds.do(self._tick)
        LOGGER.info("Next check in %.1f seconds", delay_ms / 1000)
        return delay_ms

    def _tick(self):
        self.fire()
        self._arm()
        return schedule.CancelJob

    def fire(self) -> bool:
        """Run the task now unless a run is already in progress.

        Returns False when the run was skipped. Errors raised by the task are
        logged and swallowed so the polling loop keeps going.
        """

        if not self._running.acquire(blocking=False):
            LOGGER.warning("Previous run still in progress, skipping this tick")
            return False
        try:
            self._task()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Scheduled run failed")
        finally:
            self._running.release()
        return True

    def run_forever(self, poll_seconds: float = 1.0, sleep: Callable[[float], None] = time.sleep) -> None:
        if self._job is None:
            self.start()
        while True:
            self._scheduler.run_pending()
            sleep(poll_seconds)
