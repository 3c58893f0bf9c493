"""
Retransmission Timers for Selective Repeat ARQ

This module keeps one logical timer per in-flight packet and drives all
of them from a single time-ordered heap. The scheduler can be stepped
by hand with pop_expired(now), as the simulator does, or run on its own
thread, as the node does.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable
from enum import Enum
import heapq
import threading
import time


class TimerState(Enum):
    """Timer state enumeration."""
    STOPPED = 0
    RUNNING = 1
    EXPIRED = 2


@dataclass(order=True)
class TimerEvent:
    """Heap entry, ordered by expiry time then sequence number."""
    expiry_time: float
    seq_num: int
    generation: int = field(compare=False)  # To invalidate restarted timers


@dataclass
class PacketTimer:
    """
    Per-packet timer.

    Attributes:
        seq_num: Sequence number of the packet
        timeout: Timeout duration in seconds
        start_time: Time of the last (re)transmission
        state: Current timer state
        retransmit_count: Number of restarts after the first start
    """
    seq_num: int
    timeout: float
    start_time: float = 0.0
    state: TimerState = TimerState.STOPPED
    retransmit_count: int = 0
    generation: int = 0

    def start(self, current_time: float):
        self.start_time = current_time
        self.state = TimerState.RUNNING
        self.generation += 1

    def stop(self):
        self.state = TimerState.STOPPED

    def restart(self, current_time: float):
        """Restart the timer (for retransmission)."""
        self.start(current_time)
        self.retransmit_count += 1

    def check_expired(self, current_time: float) -> bool:
        if self.state != TimerState.RUNNING:
            return False

        if current_time >= self.start_time + self.timeout:
            self.state = TimerState.EXPIRED
            return True

        return False

    def get_expiry_time(self) -> float:
        """Get the absolute expiry time."""
        return self.start_time + self.timeout


class RetransmissionScheduler:
    """
    Single scheduler for every per-packet retransmission timer.

    The delay is fixed: each timer fires `timeout` seconds after the
    packet was last (re)transmitted. A fired timer is not rearmed here;
    the sender decides, on its own thread, whether the packet is still
    unacknowledged and calls start_timer() again after retransmitting.

    Attributes:
        timeout: Retransmission interval in seconds
        timers: Active timers by sequence number
        timer_queue: Min-heap of timer events
    """

    def __init__(
        self,
        timeout: float,
        on_expire: Optional[Callable[[int], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        logger=None
    ):
        """
        Initialize the scheduler.

        Args:
            timeout: Retransmission interval in seconds
            on_expire: Called with the sequence number of each expired timer
                when the scheduler runs on its own thread
            clock: Monotonic clock in seconds
            logger: NodeLogger for failures raised by on_expire
        """
        if timeout <= 0:
            raise ValueError("Timeout must be positive")

        self.timeout = timeout
        self.on_expire = on_expire
        self.clock = clock
        self.logger = logger

        self.timers: Dict[int, PacketTimer] = {}
        self.timer_queue: List[TimerEvent] = []

        # Condition over an RLock; public methods nest freely
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False

        # Statistics
        self.total_timeouts = 0
        self.total_timers_started = 0

    def start_timer(self, seq_num: int, current_time: Optional[float] = None):
        """
        Start, or restart, the timer of a packet.

        Args:
            seq_num: Sequence number
            current_time: Time of the (re)transmission (default: clock())
        """
        if current_time is None:
            current_time = self.clock()

        with self._condition:
            timer = self.timers.get(seq_num)
            if timer is None:
                timer = PacketTimer(seq_num=seq_num, timeout=self.timeout)
                timer.start(current_time)
                self.timers[seq_num] = timer
                self.total_timers_started += 1
            else:
                timer.restart(current_time)

            heapq.heappush(self.timer_queue, TimerEvent(
                expiry_time=timer.get_expiry_time(),
                seq_num=seq_num,
                generation=timer.generation
            ))
            self._condition.notify()

    def cancel_timer(self, seq_num: int):
        """Cancel and remove a timer. Stale heap entries are skipped on pop."""
        with self._condition:
            self.timers.pop(seq_num, None)
            self._condition.notify()

    def pop_expired(self, current_time: float) -> List[int]:
        """
        Collect the timers that expired at or before current_time.

        Args:
            current_time: Current time

        Returns:
            Sequence numbers in expiry order
        """
        expired = []

        with self._condition:
            while self.timer_queue:
                event = self.timer_queue[0]
                if event.expiry_time > current_time:
                    break

                heapq.heappop(self.timer_queue)

                timer = self.timers.get(event.seq_num)
                if timer is None or timer.generation != event.generation:
                    continue

                if timer.check_expired(current_time):
                    self.total_timeouts += 1
                    expired.append(event.seq_num)

        return expired

    def get_next_expiry(self) -> Optional[float]:
        """
        Get the time of the next live timer expiry.

        Returns:
            Next expiry time or None if no running timers
        """
        with self._condition:
            while self.timer_queue:
                event = self.timer_queue[0]
                timer = self.timers.get(event.seq_num)

                if (timer is not None and timer.generation == event.generation
                        and timer.state == TimerState.RUNNING):
                    return event.expiry_time

                heapq.heappop(self.timer_queue)

        return None

    def get_retransmit_count(self, seq_num: int) -> int:
        timer = self.timers.get(seq_num)
        return timer.retransmit_count if timer else 0

    def get_active_count(self) -> int:
        """Get number of running timers."""
        with self._condition:
            return sum(1 for t in self.timers.values()
                       if t.state == TimerState.RUNNING)

    def get_statistics(self) -> dict:
        return {
            'total_timers_started': self.total_timers_started,
            'total_timeouts': self.total_timeouts,
            'active_timers': self.get_active_count(),
        }

    def clear_all(self):
        with self._condition:
            self.timers.clear()
            self.timer_queue.clear()
            self._condition.notify()

    # Threaded mode
    def start(self):
        """Run the scheduler on a daemon thread."""
        if self.on_expire is None:
            raise ValueError("Threaded scheduler needs an on_expire callback")

        with self._condition:
            if self._running:
                return
            self._running = True

        self._thread = threading.Thread(
            target=self._run, name="retransmission-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0):
        with self._condition:
            self._running = False
            self._condition.notify()

        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _run(self):
        while True:
            with self._condition:
                if not self._running:
                    return

                now = self.clock()
                expired = self.pop_expired(now)
                if not expired:
                    next_expiry = self.get_next_expiry()
                    wait = None if next_expiry is None else max(0.0, next_expiry - now)
                    self._condition.wait(wait)
                    continue

            # Fire outside the lock so callbacks may restart timers freely
            for seq_num in expired:
                self._fire(seq_num)

    def _fire(self, seq_num: int):
        try:
            self.on_expire(seq_num)
        except Exception as e:
            if self.logger:
                self.logger.error(f"Timer callback failed for packet {seq_num}: {e}", "TIMER")
