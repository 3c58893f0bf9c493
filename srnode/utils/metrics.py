"""
Metrics Collection and Calculation

This module tracks the protocol counters of a node or a simulation
run and derives efficiency and goodput from them.
"""

from typing import Optional, Dict
import threading


class MetricsCollector:
    """
    Collects protocol counters.

    Primary metric: Efficiency = Unique Packets Delivered / Total DATA Transmissions

    Counters are updated from the sender actor, the receiver actor and
    the listener thread, so every update takes the collector lock.
    """

    COUNTERS = (
        'packets_admitted',
        'packets_queued',
        'transmissions',
        'retransmissions',
        'timeouts',
        'acks_received',
        'acks_advanced',
        'acks_ignored',
        'data_received',
        'data_buffered',
        'data_discarded',
        'data_out_of_window',
        'packets_delivered',
        'acks_sent',
        'dropped_data',
        'dropped_acks',
        'malformed_frames',
        'send_failures',
    )

    def __init__(self):
        self._lock = threading.Lock()

        # Time tracking
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        self.counters: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self.characters_delivered = 0

    def start(self, time: float):
        """Mark run start."""
        self.start_time = time

    def finish(self, time: float):
        """Mark run end."""
        self.end_time = time

    def record(self, counter: str, amount: int = 1):
        """
        Increment a named counter.

        Args:
            counter: One of COUNTERS
            amount: Increment
        """
        with self._lock:
            self.counters[counter] += amount

    def record_delivery(self, payload: str):
        with self._lock:
            self.counters['packets_delivered'] += 1
            self.characters_delivered += len(payload)

    def __getitem__(self, counter: str) -> int:
        return self.counters[counter]

    def calculate_efficiency(self) -> float:
        """
        Calculate transmission efficiency.

        Returns:
            Ratio of delivered packets to DATA transmissions (0-1)
        """
        transmissions = self.counters['transmissions']
        if transmissions <= 0:
            return 0.0
        return self.counters['packets_delivered'] / transmissions

    def calculate_retransmission_rate(self) -> float:
        """Retransmissions per originally transmitted packet."""
        originals = self.counters['transmissions'] - self.counters['retransmissions']
        if originals <= 0:
            return 0.0
        return self.counters['retransmissions'] / originals

    def calculate_goodput(self) -> float:
        """
        Calculate goodput.

        Returns:
            Delivered characters per second
        """
        if self.start_time is None or self.end_time is None:
            return 0.0
        total_time = self.end_time - self.start_time
        if total_time <= 0:
            return 0.0
        return self.characters_delivered / total_time

    def get_summary(self) -> Dict:
        """
        Get metrics summary.

        Returns:
            Flat dictionary with counters and derived metrics
        """
        total_time = 0.0
        if self.start_time is not None and self.end_time is not None:
            total_time = self.end_time - self.start_time

        with self._lock:
            summary = dict(self.counters)

        summary.update({
            'total_time': total_time,
            'characters_delivered': self.characters_delivered,
            'efficiency': self.calculate_efficiency(),
            'retransmission_rate': self.calculate_retransmission_rate(),
            'goodput': self.calculate_goodput(),
        })
        return summary

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self.start_time = None
            self.end_time = None
            self.counters = {name: 0 for name in self.COUNTERS}
            self.characters_delivered = 0
