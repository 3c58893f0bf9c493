"""
Packet and Frame Structures for Selective Repeat ARQ

This module defines the packets handled by the windows, the tagged
DATA/ACK frame that travels on the wire, and the two wire codecs.
"""

import struct
import zlib
from enum import Enum
from typing import Optional, Tuple
from dataclasses import dataclass

from config import (
    ACK_PREFIX, DATA_SEPARATOR, CODEC_TEXT, CODEC_BINARY, MAX_SEQ_DIGITS, MAX_BYTES_PER_CHAR
)
from ..exceptions import ConfigurationError, MalformedFrameError

# (host, port)
Endpoint = Tuple[str, int]


class FrameType(Enum):
    """Frame type enumeration."""
    DATA = 0x01
    ACK = 0x02


@dataclass(frozen=True)
class Frame:
    """
    Tagged wire frame.

    Attributes:
        frame_type: DATA or ACK
        seq_num: Sequence number carried (acknowledged number for ACKs)
        payload: Application data unit (empty for ACKs)
    """

    frame_type: FrameType
    seq_num: int
    payload: str = ''

    def __post_init__(self):
        """Validate frame after initialization."""
        if self.seq_num < 0:
            raise ValueError("Sequence number must be non-negative")
        if self.frame_type == FrameType.ACK and self.payload:
            raise ValueError("ACK frames carry no payload")

    def is_ack(self) -> bool:
        return self.frame_type == FrameType.ACK

    @classmethod
    def create_data_frame(cls, seq_num: int, payload: str) -> 'Frame':
        """Create a DATA frame."""
        return cls(frame_type=FrameType.DATA, seq_num=seq_num, payload=payload)

    @classmethod
    def create_ack_frame(cls, ack_num: int) -> 'Frame':
        """Create an ACK frame."""
        return cls(frame_type=FrameType.ACK, seq_num=ack_num)

    def to_packet(
        self,
        source: Optional[Endpoint] = None,
        destination: Optional[Endpoint] = None
    ) -> 'Packet':
        """Turn a received DATA frame into a Packet bound to its endpoints."""
        if self.is_ack():
            raise ValueError("ACK frames do not carry packets")
        return Packet(self.seq_num, self.payload, source, destination)

    def __repr__(self) -> str:
        return (f"Frame(type={self.frame_type.name}, seq={self.seq_num}, "
                f"payload={self.payload!r})")


@dataclass(frozen=True)
class Packet:
    """
    One application data unit with its sequence number.

    Created at admission on the sending side and from a decoded DATA
    frame on the receiving side. Immutable.
    """

    seq_num: int
    payload: str
    source: Optional[Endpoint] = None
    destination: Optional[Endpoint] = None

    def __post_init__(self):
        if self.seq_num < 0:
            raise ValueError("Sequence number must be non-negative")

    def to_frame(self) -> Frame:
        return Frame.create_data_frame(self.seq_num, self.payload)


def _parse_seq(digits: str) -> int:
    """Parse a base-10 non-negative sequence number."""
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise MalformedFrameError(f"Invalid sequence number: {digits!r}")
    return int(digits)


class TextCodec:
    """
    ASCII framing compatible with existing peers.

    DATA frames are ``<seq>_<payload>``, ACK frames are ``ACK,<seq>``.
    A DATA frame always starts with a digit and an ACK frame with ``A``,
    so the two never collide.
    """

    name = CODEC_TEXT

    def max_frame_size(self, segment_size: int) -> int:
        """Largest encoded DATA frame for a segment of segment_size characters."""
        return MAX_SEQ_DIGITS + len(DATA_SEPARATOR) + MAX_BYTES_PER_CHAR * segment_size

    def encode(self, frame: Frame) -> bytes:
        if frame.is_ack():
            text = f"{ACK_PREFIX}{frame.seq_num}"
        else:
            text = f"{frame.seq_num}{DATA_SEPARATOR}{frame.payload}"
        return text.encode('utf-8')

    def decode(self, data: bytes) -> Frame:
        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedFrameError(f"Undecodable datagram: {e}") from e

        if text.startswith(ACK_PREFIX):
            return Frame.create_ack_frame(_parse_seq(text[len(ACK_PREFIX):]))

        head, separator, payload = text.partition(DATA_SEPARATOR)
        if not separator:
            raise MalformedFrameError(f"Missing separator in {text!r}")
        return Frame.create_data_frame(_parse_seq(head), payload)


class BinaryCodec:
    """
    Length-prefixed binary framing with a CRC32 trailer.

    Layout:
        - Frame Type: 1 byte
        - Sequence Number: 4 bytes (unsigned int)
        - Payload Length: 2 bytes (unsigned short)
        - Payload: UTF-8 bytes
        - CRC32: 4 bytes over everything before it
    """

    name = CODEC_BINARY

    HEADER_FORMAT = '!BIH'  # Network byte order
    HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
    CRC_FORMAT = '!I'
    CRC_SIZE = struct.calcsize(CRC_FORMAT)

    def max_frame_size(self, segment_size: int) -> int:
        return self.HEADER_SIZE + MAX_BYTES_PER_CHAR * segment_size + self.CRC_SIZE

    def encode(self, frame: Frame) -> bytes:
        payload = frame.payload.encode('utf-8')
        if len(payload) > 0xFFFF:
            raise ValueError("Payload too large (max 65535 bytes)")
        body = struct.pack(
            self.HEADER_FORMAT,
            frame.frame_type.value,
            frame.seq_num,
            len(payload)
        ) + payload
        return body + struct.pack(self.CRC_FORMAT, zlib.crc32(body) & 0xFFFFFFFF)

    def decode(self, data: bytes) -> Frame:
        if len(data) < self.HEADER_SIZE + self.CRC_SIZE:
            raise MalformedFrameError(f"Datagram too short ({len(data)} bytes)")

        frame_type_val, seq_num, payload_len = struct.unpack(
            self.HEADER_FORMAT, data[:self.HEADER_SIZE]
        )
        body_end = self.HEADER_SIZE + payload_len
        if len(data) != body_end + self.CRC_SIZE:
            raise MalformedFrameError("Payload length does not match datagram")

        (crc,) = struct.unpack(self.CRC_FORMAT, data[body_end:])
        if crc != zlib.crc32(data[:body_end]) & 0xFFFFFFFF:
            raise MalformedFrameError(f"CRC mismatch for seq {seq_num}")

        try:
            frame_type = FrameType(frame_type_val)
            payload = data[self.HEADER_SIZE:body_end].decode('utf-8')
            return Frame(frame_type, seq_num, payload)
        except ValueError as e:
            # UnicodeDecodeError is a ValueError
            raise MalformedFrameError(str(e)) from e


def get_codec(name: str):
    """Return a codec instance by name."""
    if name == CODEC_TEXT:
        return TextCodec()
    if name == CODEC_BINARY:
        return BinaryCodec()
    raise ConfigurationError(f"Unknown codec: {name}")
