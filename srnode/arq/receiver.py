"""
Selective Repeat ARQ Receiver

This module implements the receiver side of the Selective Repeat ARQ protocol,
including sliding window management, out-of-order buffering, in-order
delivery and per-packet ACK generation.
"""

from typing import Optional, List, Tuple, Callable
from dataclasses import dataclass
from enum import Enum

from .frame import Frame, Packet, Endpoint


class ReceiveResult(Enum):
    """Outcome of a DATA packet arriving at the receiver."""
    DROPPED = 0     # beyond the window, no ACK
    DISCARDED = 1   # duplicate or already delivered, ACK sent
    BUFFERED = 2    # accepted out of order, ACK sent
    DELIVERED = 3   # accepted at the base, window advanced, ACK sent


@dataclass
class ReceiveWindow:
    """
    Sliding window for the receiver.

    Attributes:
        base: Next expected in-order sequence number
        size: Window size
    """
    base: int = 0
    size: int = 8

    @property
    def end(self) -> int:
        return self.base + self.size

    def in_window(self, seq_num: int) -> bool:
        """Check if sequence number is within the receive window."""
        return self.base <= seq_num < self.end

    def is_before_window(self, seq_num: int) -> bool:
        """Check if sequence number is before (already delivered)."""
        return seq_num < self.base


class SRReceiver:
    """
    Selective Repeat ARQ Receiver.

    Implements the receiver side of SR-ARQ with:
    - Out-of-order buffering inside the window
    - In-order delivery to the upper layer
    - An ACK for every in-range arrival, duplicates included, so a lost
      ACK is repaired by the next copy of the packet

    Not thread-safe; owned by a single thread like SRSender.

    Attributes:
        window: Receive window state
        buffer: Received, undelivered packets by sequence number
    """

    def __init__(
        self,
        window_size: int,
        send_ack: Callable[[Frame, Optional[Endpoint]], None],
        on_data_delivered: Optional[Callable[[str, int], None]] = None,
        logger=None,
        metrics=None,
        keep_history: bool = False
    ):
        """
        Initialize SR receiver.

        Args:
            window_size: Receive window size
            send_ack: Fire-and-forget send of an ACK frame to an endpoint
            on_data_delivered: Callback with (payload, seq_num) per delivery
            logger: NodeLogger for protocol traces
            metrics: MetricsCollector
            keep_history: Keep every delivered payload for get_delivered_text()
        """
        if window_size <= 0:
            raise ValueError("Window size must be positive")

        self.window_size = window_size
        self.send_ack = send_ack
        self.on_data_delivered = on_data_delivered
        self.logger = logger
        self.metrics = metrics

        self.window = ReceiveWindow(size=window_size)
        self.buffer: dict[int, Packet] = {}

        # None unless keep_history
        self.delivered_data: Optional[List[Tuple[int, str]]] = [] if keep_history else None

    def on_data(self, packet: Packet) -> ReceiveResult:
        """
        Process a received DATA packet.

        Args:
            packet: Decoded packet; its source is where the ACK goes

        Returns:
            What happened to the packet
        """
        seq_num = packet.seq_num
        self._record('data_received')

        # Beyond the window: cannot happen with equal window sizes on both ends
        if seq_num >= self.window.end:
            self._record('data_out_of_window')
            if self.logger:
                self.logger.debug(
                    f"Dropping packet {seq_num}, window [{self.window.base},{self.window.end})",
                    "RX"
                )
            return ReceiveResult.DROPPED

        if self.window.is_before_window(seq_num) or seq_num in self.buffer:
            self._record('data_discarded')
            if self.logger:
                self.logger.packet_discarded(seq_num, packet.payload)
            result = ReceiveResult.DISCARDED
        else:
            self.buffer[seq_num] = packet

            if seq_num == self.window.base:
                self._deliver_in_order()
                if self.logger:
                    self.logger.packet_received(
                        seq_num, packet.payload, (self.window.base, self.window.end)
                    )
                result = ReceiveResult.DELIVERED
            else:
                self._record('data_buffered')
                if self.logger:
                    self.logger.packet_received(seq_num, packet.payload)
                result = ReceiveResult.BUFFERED

        # ACK no matter what
        self._generate_ack(seq_num, packet.source)
        return result

    def _deliver_in_order(self):
        """Deliver buffered packets that are now in-order."""
        while self.window.base in self.buffer:
            packet = self.buffer.pop(self.window.base)

            if self.delivered_data is not None:
                self.delivered_data.append((packet.seq_num, packet.payload))
            if self.metrics is not None:
                self.metrics.record_delivery(packet.payload)
            if self.logger:
                self.logger.data_delivered(packet.seq_num, packet.payload)
            if self.on_data_delivered:
                self.on_data_delivered(packet.payload, packet.seq_num)

            self.window.base += 1

    def _generate_ack(self, seq_num: int, destination: Optional[Endpoint]):
        self._record('acks_sent')
        self.send_ack(Frame.create_ack_frame(seq_num), destination)
        if self.logger:
            self.logger.ack_sent(seq_num)

    def _record(self, counter: str):
        if self.metrics is not None:
            self.metrics.record(counter)

    @property
    def base(self) -> int:
        return self.window.base

    def get_delivered_text(self) -> str:
        """All delivered payloads, concatenated in delivery order."""
        if self.delivered_data is None:
            raise RuntimeError("Delivery history is off; create the receiver with keep_history=True")
        return ''.join(data for _, data in self.delivered_data)

    def get_window_state(self) -> dict:
        """Get current window state."""
        return {
            'base': self.window.base,
            'size': self.window.size,
            'buffered': sorted(self.buffer.keys())
        }
