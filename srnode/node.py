"""
Selective Repeat Node

This module wires one node together: a datagram channel, the inbound
loss model, the sender and receiver windows (each owned by its actor
thread), the retransmission scheduler and the listener thread.
"""

from dataclasses import dataclass
from concurrent.futures import Future
from typing import Callable, List, Optional, Sequence, TextIO
import sys
import threading

from config import (
    DEFAULT_HOST, DEFAULT_SEGMENT_SIZE, CODEC_TEXT, CODECS,
    LOSS_MODEL_BERNOULLI, LOSS_MODELS, LOSS_APPLIES_TO, RECEIVE_BUFFER_SIZE,
    UNRECOGNIZED_COMMAND
)
from .arq.actor import WindowActor
from .arq.frame import Frame, Packet, Endpoint, get_codec
from .arq.receiver import SRReceiver
from .arq.sender import SRSender
from .arq.timer import RetransmissionScheduler
from .channel.loss import LossModel, create_loss_model
from .channel.transport import TransportChannel, UdpChannel
from .commands import parse_command, split_message
from .exceptions import ConfigurationError, MalformedFrameError
from .utils.logger import NodeLogger, get_logger
from .utils.metrics import MetricsCollector


@dataclass
class NodeConfig:
    """Startup configuration of a node."""
    local_port: int
    remote_port: int
    window_size: int
    timeout_ms: int
    loss_rate: float

    host: str = DEFAULT_HOST
    seed: Optional[int] = None
    loss_model: str = LOSS_MODEL_BERNOULLI
    loss_applies_to: str = "both"
    codec: str = CODEC_TEXT
    segment_size: int = DEFAULT_SEGMENT_SIZE

    @classmethod
    def from_args(cls, values: Sequence[str], **options) -> 'NodeConfig':
        """
        Build a config from the five positional argument strings.

        Raises:
            ConfigurationError: wrong count or unparsable value
        """
        if len(values) != 5:
            raise ConfigurationError(f"Expected 5 arguments, got {len(values)}")
        try:
            config = cls(
                local_port=int(values[0]),
                remote_port=int(values[1]),
                window_size=int(values[2]),
                timeout_ms=int(values[3]),
                loss_rate=float(values[4]),
                **options
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        config.validate()
        return config

    def validate(self):
        """
        Check every field's range.

        Raises:
            ConfigurationError: first violation found
        """
        for name in ('local_port', 'remote_port'):
            port = getattr(self, name)
            if not 0 < port <= 65535:
                raise ConfigurationError(f"{name} must be in 1..65535, got {port}")
        if self.window_size <= 0:
            raise ConfigurationError(f"window_size must be positive, got {self.window_size}")
        if self.timeout_ms <= 0:
            raise ConfigurationError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if not 0.0 <= self.loss_rate <= 1.0:
            raise ConfigurationError(f"loss_rate must be in [0, 1], got {self.loss_rate}")
        if self.segment_size <= 0:
            raise ConfigurationError(f"segment_size must be positive, got {self.segment_size}")
        if self.loss_model not in LOSS_MODELS:
            raise ConfigurationError(f"Unknown loss model: {self.loss_model}")
        if self.loss_applies_to not in LOSS_APPLIES_TO:
            raise ConfigurationError(f"Unknown loss direction: {self.loss_applies_to}")
        if self.codec not in CODECS:
            raise ConfigurationError(f"Unknown codec: {self.codec}")

        frame_size = get_codec(self.codec).max_frame_size(self.segment_size)
        if frame_size > RECEIVE_BUFFER_SIZE:
            raise ConfigurationError(
                f"segment_size {self.segment_size} can encode to {frame_size} bytes, "
                f"more than the {RECEIVE_BUFFER_SIZE}-byte receive buffer"
            )

    @property
    def timeout(self) -> float:
        """Retransmission timeout in seconds."""
        return self.timeout_ms / 1000.0

    @property
    def remote_endpoint(self) -> Endpoint:
        return (self.host, self.remote_port)


class Node:
    """
    One Selective Repeat endpoint.

    Threads:
        - listener: reads datagrams, applies loss, routes frames
        - scheduler: fires retransmission timers
        - sender-window / receiver-window: sole owners of each window
        - the caller's thread, for console input

    Attributes:
        config: NodeConfig
        channel: Datagram channel
        loss_model: Inbound loss model
        sender: SRSender, touched only by sender_actor
        receiver: SRReceiver, touched only by receiver_actor
    """

    def __init__(
        self,
        config: NodeConfig,
        channel: Optional[TransportChannel] = None,
        loss_model: Optional[LossModel] = None,
        logger: Optional[NodeLogger] = None,
        metrics: Optional[MetricsCollector] = None,
        on_deliver: Optional[Callable[[str, int], None]] = None,
        keep_history: bool = False
    ):
        config.validate()

        self.config = config
        self.logger = logger or get_logger()
        self.metrics = metrics or MetricsCollector()
        self.on_deliver = on_deliver
        self.codec = get_codec(config.codec)

        self.loss_model = loss_model or create_loss_model(
            config.loss_model,
            config.loss_rate,
            seed=config.seed,
            applies_to=config.loss_applies_to
        )
        self.channel = channel or UdpChannel(config.local_port, config.host, logger=self.logger)
        self.remote_endpoint = config.remote_endpoint

        self.scheduler = RetransmissionScheduler(
            config.timeout,
            on_expire=self._on_timer_expired,
            logger=self.logger
        )
        self.sender = SRSender(
            config.window_size,
            self.scheduler,
            self._transmit_packet,
            logger=self.logger,
            metrics=self.metrics,
            source=self.channel.local_endpoint,
            destination=self.remote_endpoint
        )
        self.receiver = SRReceiver(
            config.window_size,
            self._send_ack,
            on_data_delivered=self._on_delivered,
            logger=self.logger,
            metrics=self.metrics,
            keep_history=keep_history
        )
        self.sender_actor = WindowActor("sender-window", self.sender, self.logger)
        self.receiver_actor = WindowActor("receiver-window", self.receiver, self.logger)

        self._running = threading.Event()
        self._listener: Optional[threading.Thread] = None

    def start(self):
        """Start actors, the scheduler and the listener."""
        if self._running.is_set():
            return
        self._running.set()

        self.sender_actor.start()
        self.receiver_actor.start()
        self.scheduler.start()

        self._listener = threading.Thread(target=self._listen, name="listener", daemon=True)
        self._listener.start()

        self.logger.info(
            f"Listening on {self.channel.local_endpoint}, peer {self.remote_endpoint}, "
            f"window={self.config.window_size}, timeout={self.config.timeout_ms}ms, "
            f"loss={self.config.loss_rate}",
            "NODE"
        )

    def stop(self):
        """Stop all threads and close the channel."""
        if not self._running.is_set():
            return
        self._running.clear()

        if self._listener is not None:
            self._listener.join(timeout=2.0)
        self.scheduler.stop()
        self.sender_actor.stop()
        self.receiver_actor.stop()
        self.channel.close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def send_message(self, message: str) -> List[Future]:
        """
        Admit a message, one data unit at a time, in input order.

        Returns:
            One future per admitted unit, resolved with its Packet
        """
        return [
            self.sender_actor.post('admit', unit)
            for unit in split_message(message, self.config.segment_size)
        ]

    def handle_datagram(self, data: bytes, source: Endpoint) -> Optional[Future]:
        """
        Decode, apply loss and route one inbound datagram.

        Returns:
            Future of the window operation, or None if the datagram was
            malformed or lost
        """
        try:
            frame = self.codec.decode(data)
        except MalformedFrameError as e:
            self.metrics.record('malformed_frames')
            self.logger.debug(f"Malformed datagram from {source}: {e}", "RX")
            return None

        if self.loss_model.should_drop(frame.frame_type, frame.seq_num):
            self.metrics.record('dropped_acks' if frame.is_ack() else 'dropped_data')
            self.logger.debug(f"Simulated loss of {frame!r}", "LOSS")
            return None

        if frame.is_ack():
            return self.sender_actor.post('on_ack', frame.seq_num)
        return self.receiver_actor.post(
            'on_data', frame.to_packet(source, self.channel.local_endpoint)
        )

    def run_console(self, stream: Optional[TextIO] = None, errors: Optional[TextIO] = None):
        """
        Read commands until end of input.

        Args:
            stream: Command source (default stdin)
            errors: Where unrecognized-command notices go (default stderr)
        """
        stream = stream or sys.stdin
        errors = errors or sys.stderr

        for line in stream:
            message = parse_command(line)
            if message is None:
                print(UNRECOGNIZED_COMMAND, file=errors, flush=True)
                continue
            self.send_message(message)

    def sender_state(self) -> dict:
        return self.sender_actor.inspect(lambda sender: sender.get_window_state())

    def receiver_state(self) -> dict:
        return self.receiver_actor.inspect(lambda receiver: receiver.get_window_state())

    def delivered_text(self) -> str:
        """Everything delivered so far; the node must be built with keep_history=True."""
        return self.receiver_actor.inspect(lambda receiver: receiver.get_delivered_text())

    def _listen(self):
        while self._running.is_set():
            datagram = self.channel.receive()
            if datagram is None:
                continue

            data, source = datagram
            try:
                self.handle_datagram(data, source)
            except Exception as e:
                self.logger.error(f"Failed to handle datagram from {source}: {e}", "RX")

    def _on_timer_expired(self, seq_num: int):
        # Runs on the scheduler thread; the sender decides on its own thread
        self.sender_actor.post('on_timeout', seq_num)

    def _transmit_packet(self, packet: Packet):
        data = self.codec.encode(packet.to_frame())
        if not self.channel.send(data, packet.destination or self.remote_endpoint):
            self.metrics.record('send_failures')

    def _send_ack(self, frame: Frame, destination: Optional[Endpoint]):
        if not self.channel.send(self.codec.encode(frame), destination or self.remote_endpoint):
            self.metrics.record('send_failures')

    def _on_delivered(self, payload: str, seq_num: int):
        if self.on_deliver:
            self.on_deliver(payload, seq_num)
