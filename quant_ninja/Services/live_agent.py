"""
Live Agent
==========
Autonomous viewport monitoring:
1. Grab a frame from the frame source every SCAN_INTERVAL_SECONDS
2. Ask the oracle for +EV lines in it
3. Admit whatever survives into the ledger

Capture mechanics live outside this module; the agent only needs an async
callable that returns image bytes (or None when nothing is available).
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Literal, Optional, Protocol

from quant_ninja.LedgerEngine.service import LedgerService
from quant_ninja.Oracle.parsing import ExtractionResult
from . import config

logger = logging.getLogger("LiveAgent")

LogLevel = Literal["info", "success", "warn"]
FrameSource = Callable[[], Awaitable[Optional[bytes]]]


class ExtractionOracle(Protocol):
    async def extract_candidates(self, image: bytes) -> ExtractionResult: ...


@dataclass
class AgentLogEntry:
    msg: str
    level: LogLevel = "info"
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RepeatingTask:
    """
    Cancellable periodic runner for an async callback.
    Callback errors are logged and the schedule keeps going.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], first_delay: float = 0.0):
        self.interval = interval
        self.callback = callback
        self.first_delay = first_delay
        self._task: Optional[asyncio.Task] = None
        self._next_run_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def seconds_until_next(self) -> Optional[float]:
        if not self.running or self._next_run_at is None:
            return None
        return max(0.0, self._next_run_at - time.monotonic())

    async def _loop(self):
        delay = self.first_delay
        while True:
            self._next_run_at = time.monotonic() + delay
            await asyncio.sleep(delay)
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Scheduled run failed: {e}")
            delay = self.interval

    def start(self):
        if self.running:
            return
        self._next_run_at = time.monotonic() + self.first_delay
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self):
        task, self._task = self._task, None
        self._next_run_at = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class LiveAgent:
    """Arms a repeating scan of the viewport and feeds the ledger."""

    def __init__(
        self,
        oracle: ExtractionOracle,
        service: LedgerService,
        frame_source: FrameSource,
        interval: float = config.SCAN_INTERVAL_SECONDS,
        first_delay: float = config.FIRST_SCAN_DELAY_SECONDS,
        log_limit: int = config.AGENT_LOG_LIMIT,
    ):
        self.oracle = oracle
        self.service = service
        self.frame_source = frame_source
        self.logs: deque[AgentLogEntry] = deque(maxlen=log_limit)
        self.scanning = False
        self.last_frame: Optional[bytes] = None
        self._stopping: Optional[asyncio.Task] = None
        self._task = RepeatingTask(interval, self.scan_once, first_delay=first_delay)

    @property
    def active(self) -> bool:
        return self._task.running

    def next_scan_in(self) -> Optional[float]:
        return self._task.seconds_until_next()

    def log(self, msg: str, level: LogLevel = "info"):
        self.logs.appendleft(AgentLogEntry(msg=msg, level=level))
        if level == "warn":
            logger.warning(msg)
        else:
            logger.info(msg)

    def start(self):
        if self.active:
            return
        self._task.start()
        self.log("Handshake complete. Vision online.", "success")

    async def stop(self):
        await self._task.stop()
        self.log("System disarmed.", "info")

    async def scan_once(self) -> int:
        """
        One viewport pass. Returns positions placed.

        Skipped while a previous scan is still in flight.
        """
        if self.scanning:
            return 0

        self.scanning = True
        try:
            frame = await self.frame_source()
            if not frame:
                return 0
            self.last_frame = frame
            self.log("Scanning viewport...", "info")

            result = await self.oracle.extract_candidates(frame)
            if not result.valid:
                self.log("Invalid viewport detected. Auto-terminating link.", "warn")
                # Disarm without awaiting our own task from inside it
                self._stopping = asyncio.get_running_loop().create_task(self.stop())
                return 0

            if not result.candidates:
                self.log("No new +EV lines found.", "info")
                return 0

            placed = self.service.admit(result.candidates, source="live")
            if placed:
                self.log(f"Auto-placed {placed} positions.", "success")
            else:
                self.log("No new +EV lines found.", "info")
            return placed
        except Exception as e:
            self.log(f"Vision error: {e}", "warn")
            return 0
        finally:
            self.scanning = False
