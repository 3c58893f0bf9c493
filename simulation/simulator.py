"""
Event-Driven Simulator

This module runs one sender window and one receiver window against
each other over a simulated lossy link, in virtual time. It uses the
same SRSender, SRReceiver, RetransmissionScheduler and loss models as
the node, so a run is a deterministic replay of what two nodes would
do for a given seed.
"""

from typing import Optional, Dict, List
from dataclasses import dataclass, field
from enum import Enum
import heapq
import itertools
import string
import time

from config import (
    RNG_SEED_BASE, SIM_ONE_WAY_DELAY, MAX_SIMULATION_TIME,
    SWEEP_MESSAGE_LENGTH, DEFAULT_SEGMENT_SIZE, LOSS_MODEL_BERNOULLI
)
from srnode.arq.frame import Frame, Packet, FrameType
from srnode.arq.sender import SRSender
from srnode.arq.receiver import SRReceiver
from srnode.arq.timer import RetransmissionScheduler
from srnode.channel.loss import LossModel, create_loss_model
from srnode.commands import split_message
from srnode.utils.metrics import MetricsCollector
from srnode.utils.logger import NodeLogger, LogLevel

# Endpoints stamped on simulated packets, for readable diagnostics only
SENDER_ENDPOINT = ("sim", 1)
RECEIVER_ENDPOINT = ("sim", 2)

# Seed offset for the ACK direction
ACK_SEED_OFFSET = 1000


class EventType(Enum):
    """Types of simulation events."""
    DATA_ARRIVAL = 0      # DATA packet reaches the receiver node
    ACK_ARRIVAL = 1       # ACK reaches the sender node


@dataclass(order=True)
class SimEvent:
    """Simulation event; ties on time keep scheduling order."""
    time: float
    order: int
    event_type: EventType = field(compare=False)
    data: dict = field(compare=False, default_factory=dict)


@dataclass
class SimulatorConfig:
    """Configuration for the simulator."""
    # ARQ parameters
    window_size: int = 8
    timeout: float = 0.1          # seconds
    segment_size: int = DEFAULT_SEGMENT_SIZE

    # Link
    loss_probability: float = 0.1
    loss_model: str = LOSS_MODEL_BERNOULLI
    loss_applies_to: str = "both"
    one_way_delay: float = SIM_ONE_WAY_DELAY

    # Simulation parameters
    seed: int = RNG_SEED_BASE
    max_time: float = MAX_SIMULATION_TIME
    log_level: int = LogLevel.WARNING
    trace: bool = False


def generate_message(length: int = SWEEP_MESSAGE_LENGTH) -> str:
    """Deterministic lowercase test message."""
    letters = string.ascii_lowercase
    return ''.join(letters[i % len(letters)] for i in range(length))


class Simulator:
    """
    Virtual-time Selective Repeat transfer.

    Each direction has its own loss model, applied when a datagram
    arrives, as the node does. Either model can be injected, e.g. a
    ScriptedLoss for reproducible scenarios.
    """

    def __init__(
        self,
        config: SimulatorConfig,
        data_loss: Optional[LossModel] = None,
        ack_loss: Optional[LossModel] = None,
        logger: Optional[NodeLogger] = None
    ):
        """
        Initialize simulator.

        Args:
            config: SimulatorConfig
            data_loss: Loss model for DATA reaching the receiver
            ack_loss: Loss model for ACKs reaching the sender
            logger: Logger (default: one built from config)
        """
        self.config = config
        self._data_loss = data_loss
        self._ack_loss = ack_loss

        self.logger = logger or NodeLogger(
            name="Sim",
            level=config.log_level,
            trace_enabled=config.trace
        )
        self.metrics = MetricsCollector()

        # Simulation state
        self.current_time = 0.0
        self.event_queue: List[SimEvent] = []
        self._order = itertools.count()

        self.message = ''
        self._build()

    def _build(self):
        """Create fresh windows, timers and loss models for a run."""
        config = self.config

        self.data_loss = self._data_loss or create_loss_model(
            config.loss_model, config.loss_probability,
            seed=config.seed, applies_to=config.loss_applies_to
        )
        self.ack_loss = self._ack_loss or create_loss_model(
            config.loss_model, config.loss_probability,
            seed=config.seed + ACK_SEED_OFFSET, applies_to=config.loss_applies_to
        )

        self.scheduler = RetransmissionScheduler(
            config.timeout,
            clock=lambda: self.current_time,
            logger=self.logger
        )
        self.sender = SRSender(
            config.window_size,
            self.scheduler,
            self._transmit,
            logger=self.logger,
            metrics=self.metrics,
            source=SENDER_ENDPOINT,
            destination=RECEIVER_ENDPOINT
        )
        self.receiver = SRReceiver(
            config.window_size,
            self._send_ack,
            logger=self.logger,
            metrics=self.metrics,
            keep_history=True
        )

    def _schedule_event(self, delay: float, event_type: EventType, data: dict):
        """Schedule an event delay seconds from now."""
        heapq.heappush(self.event_queue, SimEvent(
            time=self.current_time + delay,
            order=next(self._order),
            event_type=event_type,
            data=data
        ))

    def _transmit(self, packet: Packet):
        self._schedule_event(self.config.one_way_delay, EventType.DATA_ARRIVAL, {'packet': packet})

    def _send_ack(self, frame: Frame, destination):
        self._schedule_event(self.config.one_way_delay, EventType.ACK_ARRIVAL, {'ack_num': frame.seq_num})

    def _handle_data_arrival(self, packet: Packet):
        if self.data_loss.should_drop(FrameType.DATA, packet.seq_num):
            self.metrics.record('dropped_data')
            self.logger.debug(f"Lost packet {packet.seq_num}", "LINK")
            return
        self.receiver.on_data(packet)

    def _handle_ack_arrival(self, ack_num: int):
        if self.ack_loss.should_drop(FrameType.ACK, ack_num):
            self.metrics.record('dropped_acks')
            self.logger.debug(f"Lost ACK {ack_num}", "LINK")
            return
        self.sender.on_ack(ack_num)

    def _handle_timeouts(self):
        for seq_num in self.scheduler.pop_expired(self.current_time):
            self.sender.on_timeout(seq_num)

    def _advance_clock(self, now: float):
        self.current_time = now
        self.logger.set_sim_time(now)

    def _is_complete(self) -> bool:
        """Check if transfer is complete."""
        return (self.sender.is_complete() and
                len(self.receiver.get_delivered_text()) >= len(self.message))

    def step(self) -> bool:
        """
        Process the next timer expiry or link event.

        Timers due at the same instant as an arrival fire first.

        Returns:
            False when nothing is left to do
        """
        next_timer = self.scheduler.get_next_expiry()
        next_event = self.event_queue[0].time if self.event_queue else None

        if next_timer is None and next_event is None:
            return False

        if next_event is None or (next_timer is not None and next_timer <= next_event):
            self._advance_clock(next_timer)
            self._handle_timeouts()
            return True

        event = heapq.heappop(self.event_queue)
        self._advance_clock(event.time)

        if event.event_type == EventType.DATA_ARRIVAL:
            self._handle_data_arrival(event.data['packet'])
        elif event.event_type == EventType.ACK_ARRIVAL:
            self._handle_ack_arrival(event.data['ack_num'])

        return True

    def run(self, message: Optional[str] = None) -> Dict:
        """
        Transfer a message and report what happened.

        Args:
            message: Text to send (default: generated test message)

        Returns:
            Dictionary with config, completion, delivered text and metrics
        """
        if message is None:
            message = generate_message()

        # Reset
        self.message = message
        self.event_queue.clear()
        self._order = itertools.count()
        self._advance_clock(0.0)
        self.metrics.reset()
        self._build()

        self.metrics.start(0.0)
        sim_start_real = time.time()

        for unit in split_message(message, self.config.segment_size):
            self.sender.admit(unit)

        while not self._is_complete() and self.current_time < self.config.max_time:
            if not self.step():
                break

        self.metrics.finish(self.current_time)
        sim_end_real = time.time()

        delivered = self.receiver.get_delivered_text()
        complete = self._is_complete()

        if not complete:
            self.logger.warning(
                f"Transfer incomplete after {self.current_time:.3f}s: "
                f"{len(delivered)}/{len(message)} characters delivered",
                "SIM"
            )

        return {
            'config': {
                'window_size': self.config.window_size,
                'timeout': self.config.timeout,
                'loss_probability': self.config.loss_probability,
                'loss_model': self.config.loss_model,
                'loss_applies_to': self.config.loss_applies_to,
                'seed': self.config.seed,
                'message_length': len(message)
            },
            'complete': complete,
            'delivered': delivered,
            'valid': delivered == message,
            'simulation_time': self.current_time,
            'real_time': sim_end_real - sim_start_real,
            'metrics': self.metrics.get_summary(),
            'loss': {
                'data': self.data_loss.get_statistics(),
                'ack': self.ack_loss.get_statistics()
            }
        }


if __name__ == "__main__":
    print("=" * 60)
    print("SIMULATOR TEST")
    print("=" * 60)

    config = SimulatorConfig(window_size=4, timeout=0.1, loss_probability=0.2, seed=42)

    print(f"\nConfiguration:")
    print(f"  Window size: {config.window_size}")
    print(f"  Timeout: {config.timeout * 1000:.0f} ms")
    print(f"  Loss probability: {config.loss_probability}")

    results = Simulator(config).run("hello, selective repeat")
    metrics = results['metrics']

    print(f"\nTransfer:")
    print(f"  Complete: {results['complete']}")
    print(f"  Delivered: {results['delivered']!r}")
    print(f"  Simulation time: {results['simulation_time']:.4f} s")
    print(f"\nMetrics:")
    print(f"  Transmissions: {metrics['transmissions']}")
    print(f"  Retransmissions: {metrics['retransmissions']}")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")
