"""
ARQ package - Selective Repeat ARQ protocol components.

Contains implementations for:
- Packet, frame and wire codecs
- Sender with window management and overflow queue
- Receiver with out-of-order buffering
- Retransmission scheduler
- Single-owner window actors
"""

from .frame import Frame, FrameType, Packet, TextCodec, BinaryCodec, get_codec
from .sender import SRSender, AckResult
from .receiver import SRReceiver, ReceiveResult
from .timer import RetransmissionScheduler, PacketTimer
from .actor import WindowActor

__all__ = [
    'Frame',
    'FrameType',
    'Packet',
    'TextCodec',
    'BinaryCodec',
    'get_codec',
    'SRSender',
    'AckResult',
    'SRReceiver',
    'ReceiveResult',
    'RetransmissionScheduler',
    'PacketTimer',
    'WindowActor'
]
