"""
Selective Repeat ARQ Sender

This module implements the sender side of the Selective Repeat ARQ protocol,
including sliding window management, the overflow queue and timeout-driven
retransmission.

SRSender is not thread-safe. The node gives it a single owning thread
(see actor.py); the simulator drives it from its event loop.
"""

from typing import Optional, List, Callable, Set
from dataclasses import dataclass
from collections import deque
from enum import Enum

from .frame import Packet, Endpoint
from .timer import RetransmissionScheduler


class AckResult(Enum):
    """Outcome of an ACK arriving at the sender."""
    IGNORED = 0     # duplicate or outside the window
    ACKED = 1       # accepted, window did not move
    ADVANCED = 2    # accepted, window base moved


@dataclass
class SendWindow:
    """
    Sliding window for the sender.

    Attributes:
        base: Oldest unacknowledged sequence number
        next_seq: Next sequence number to assign
        size: Window size
    """
    base: int = 0
    next_seq: int = 0
    size: int = 8

    @property
    def end(self) -> int:
        """First sequence number past the window."""
        return self.base + self.size

    def in_window(self, seq_num: int) -> bool:
        """Check if sequence number is within the window."""
        return self.base <= seq_num < self.end

    def get_next_seq(self) -> int:
        """Get next sequence number and increment counter."""
        seq = self.next_seq
        self.next_seq += 1
        return seq


class SRSender:
    """
    Selective Repeat ARQ Sender.

    Implements the sender side of SR-ARQ with:
    - Admission: transmit while the window has room, queue otherwise
    - Individual ACKs and multi-step window advancement
    - Per-packet timers with fixed-interval retransmission, forever

    Attributes:
        window: Send window state
        acknowledged: ACKed sequence numbers inside the window
        in_flight: Transmitted, unacknowledged packets by sequence number
        pending: Admitted packets waiting for the window to reach them
        timer_manager: Shared retransmission scheduler
    """

    def __init__(
        self,
        window_size: int,
        timer_manager: RetransmissionScheduler,
        transmit: Callable[[Packet], None],
        logger=None,
        metrics=None,
        source: Optional[Endpoint] = None,
        destination: Optional[Endpoint] = None
    ):
        """
        Initialize SR sender.

        Args:
            window_size: Send window size
            timer_manager: Scheduler holding the per-packet timers
            transmit: Fire-and-forget send of one DATA packet
            logger: NodeLogger for protocol traces
            metrics: MetricsCollector
            source: Local endpoint stamped on admitted packets
            destination: Peer endpoint stamped on admitted packets
        """
        if window_size <= 0:
            raise ValueError("Window size must be positive")

        self.window_size = window_size
        self.timer_manager = timer_manager
        self.transmit = transmit
        self.logger = logger
        self.metrics = metrics
        self.source = source
        self.destination = destination

        self.window = SendWindow(size=window_size)
        self.acknowledged: Set[int] = set()
        self.in_flight: dict[int, Packet] = {}
        self.pending: deque = deque()

    def admit(self, payload: str) -> Packet:
        """
        Admit one data unit.

        Assigns the next sequence number, then transmits at once if the
        number falls inside the window or queues the packet otherwise.

        Args:
            payload: Application data unit

        Returns:
            The created packet
        """
        seq_num = self.window.get_next_seq()
        packet = Packet(seq_num, payload, self.source, self.destination)

        if self.metrics is not None:
            self.metrics.record('packets_admitted')

        if seq_num < self.window.end:
            self._send_new(packet)
        else:
            self.pending.append(packet)
            if self.metrics is not None:
                self.metrics.record('packets_queued')

        return packet

    def on_ack(self, ack_num: int) -> AckResult:
        """
        Process a received ACK.

        Args:
            ack_num: Acknowledged sequence number

        Returns:
            IGNORED, ACKED or ADVANCED
        """
        if self.metrics is not None:
            self.metrics.record('acks_received')

        # Out-of-window ACKs cannot happen with equal window sizes on both ends
        if ack_num in self.acknowledged or not self.window.in_window(ack_num):
            if self.metrics is not None:
                self.metrics.record('acks_ignored')
            if self.logger:
                self.logger.debug(
                    f"Ignoring ACK {ack_num}, window [{self.window.base},{self.window.end})",
                    "ACK"
                )
            return AckResult.IGNORED

        self.acknowledged.add(ack_num)
        self.in_flight.pop(ack_num, None)
        self.timer_manager.cancel_timer(ack_num)

        if ack_num != self.window.base:
            if self.logger:
                self.logger.ack_received(ack_num)
            return AckResult.ACKED

        self._slide_window()

        if self.metrics is not None:
            self.metrics.record('acks_advanced')
        if self.logger:
            self.logger.ack_received(ack_num, (self.window.base, self.window.end))

        # Send all pending packets that are inside the new window
        while self.pending and self.pending[0].seq_num < self.window.end:
            self._send_new(self.pending.popleft())

        return AckResult.ADVANCED

    def on_timeout(self, seq_num: int) -> bool:
        """
        Handle the expiry of a packet timer.

        Args:
            seq_num: Sequence number whose timer fired

        Returns:
            True if the packet was retransmitted and its timer rearmed,
            False if it is already acknowledged and the timer is done
        """
        packet = self.in_flight.get(seq_num)
        if self.is_acknowledged(seq_num) or packet is None:
            return False

        if self.metrics is not None:
            self.metrics.record('timeouts')
            self.metrics.record('retransmissions')
        if self.logger:
            self.logger.timeout(seq_num)

        self._transmit(packet)
        self.timer_manager.start_timer(seq_num)
        return True

    def is_acknowledged(self, seq_num: int) -> bool:
        """ACKed packets are either in the set or already below the base."""
        return seq_num < self.window.base or seq_num in self.acknowledged

    def _send_new(self, packet: Packet):
        self.in_flight[packet.seq_num] = packet
        self._transmit(packet)
        self.timer_manager.start_timer(packet.seq_num)

    def _transmit(self, packet: Packet):
        if self.metrics is not None:
            self.metrics.record('transmissions')
        if self.logger:
            self.logger.packet_sent(packet.seq_num, packet.payload)
        self.transmit(packet)

    def _slide_window(self):
        """Slide the window forward past consecutive acknowledged packets."""
        while self.window.base in self.acknowledged:
            self.acknowledged.discard(self.window.base)
            self.window.base += 1

    @property
    def base(self) -> int:
        return self.window.base

    @property
    def next_seq(self) -> int:
        return self.window.next_seq

    @property
    def pending_sequence_numbers(self) -> List[int]:
        return [p.seq_num for p in self.pending]

    def is_complete(self) -> bool:
        """Check if every admitted packet has been acknowledged."""
        return self.window.base == self.window.next_seq

    def get_window_state(self) -> dict:
        """Get current window state."""
        return {
            'base': self.window.base,
            'next_seq': self.window.next_seq,
            'size': self.window.size,
            'acknowledged': sorted(self.acknowledged),
            'in_flight': sorted(self.in_flight),
            'pending': self.pending_sequence_numbers
        }
