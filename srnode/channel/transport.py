"""
Datagram Transport Channels

The node only needs an unreliable primitive: send(bytes, destination)
and a receive() that blocks for the next (bytes, source). UdpChannel
wraps a real socket; LoopbackNetwork connects in-process channels for
tests and local demos.
"""

import queue
import socket
import threading
from typing import Dict, Optional, Tuple

from config import DEFAULT_HOST, RECEIVE_BUFFER_SIZE, SOCKET_POLL_INTERVAL
from ..arq.frame import Endpoint

Datagram = Tuple[bytes, Endpoint]


class TransportChannel:
    """
    Unreliable datagram channel.

    send() is fire-and-forget: a failure is reported only through its
    return value and never raised. receive() returns None unless a whole
    datagram was read within the timeout.
    """

    local_endpoint: Endpoint

    def send(self, data: bytes, destination: Endpoint) -> bool:
        raise NotImplementedError

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        raise NotImplementedError

    def close(self):
        pass


class UdpChannel(TransportChannel):
    """
    UDP socket bound on the local host.

    Attributes:
        local_endpoint: (host, port) the socket is bound to
        buffer_size: Largest datagram accepted; longer ones are dropped
        datagrams_oversized: Datagrams dropped for exceeding buffer_size
    """

    def __init__(
        self,
        port: int,
        host: str = DEFAULT_HOST,
        buffer_size: int = RECEIVE_BUFFER_SIZE,
        poll_interval: float = SOCKET_POLL_INTERVAL,
        logger=None
    ):
        self.buffer_size = buffer_size
        self.poll_interval = poll_interval
        self.logger = logger
        self.datagrams_oversized = 0

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind((host, port))
        self.sock.settimeout(poll_interval)
        self.local_endpoint = self.sock.getsockname()[:2]

    def send(self, data: bytes, destination: Endpoint) -> bool:
        try:
            self.sock.sendto(data, destination)
            return True
        except OSError as e:
            # Same as a lost datagram; retransmission recovers
            if self.logger:
                self.logger.debug(f"Send to {destination} failed: {e}", "CHANNEL")
            return False

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        if timeout is not None:
            self.sock.settimeout(timeout)
        try:
            # One spare byte shows whether the datagram was cut short
            data, address = self.sock.recvfrom(self.buffer_size + 1)
        except socket.timeout:
            return None
        except OSError as e:
            if self.logger:
                self.logger.debug(f"Receive failed: {e}", "CHANNEL")
            return None
        if len(data) > self.buffer_size:
            self.datagrams_oversized += 1
            if self.logger:
                self.logger.warning(
                    f"Dropping datagram from {address[:2]} larger than {self.buffer_size} bytes",
                    "CHANNEL"
                )
            return None
        return data, address[:2]

    def close(self):
        self.sock.close()


class LoopbackNetwork:
    """In-process datagram network keyed by endpoint."""

    def __init__(self, host: str = DEFAULT_HOST):
        self.host = host
        self._mailboxes: Dict[Endpoint, queue.Queue] = {}
        self._lock = threading.Lock()
        self.datagrams_delivered = 0
        self.datagrams_unroutable = 0

    def attach(self, port: int) -> 'LoopbackChannel':
        endpoint = (self.host, port)
        with self._lock:
            if endpoint in self._mailboxes:
                raise OSError(f"Endpoint {endpoint} already in use")
            self._mailboxes[endpoint] = queue.Queue()
        return LoopbackChannel(self, endpoint)

    def detach(self, endpoint: Endpoint):
        with self._lock:
            self._mailboxes.pop(endpoint, None)

    def deliver(self, data: bytes, source: Endpoint, destination: Endpoint) -> bool:
        with self._lock:
            mailbox = self._mailboxes.get(tuple(destination))
            if mailbox is None:
                self.datagrams_unroutable += 1
                return False
            self.datagrams_delivered += 1
        mailbox.put((bytes(data), source))
        return True

    def mailbox(self, endpoint: Endpoint) -> Optional[queue.Queue]:
        with self._lock:
            return self._mailboxes.get(endpoint)


class LoopbackChannel(TransportChannel):
    """Channel attached to a LoopbackNetwork."""

    def __init__(self, network: LoopbackNetwork, endpoint: Endpoint):
        self.network = network
        self.local_endpoint = endpoint
        self.closed = False
        self.fail_sends = False  # tests flip this to model send failures

    def send(self, data: bytes, destination: Endpoint) -> bool:
        if self.closed or self.fail_sends:
            return False
        return self.network.deliver(data, self.local_endpoint, destination)

    def receive(self, timeout: Optional[float] = SOCKET_POLL_INTERVAL) -> Optional[Datagram]:
        mailbox = self.network.mailbox(self.local_endpoint)
        if mailbox is None:
            return None
        try:
            return mailbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        self.closed = True
        self.network.detach(self.local_endpoint)
