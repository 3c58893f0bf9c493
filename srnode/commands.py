"""
Console command parsing.

The only recognized line is ``send <message>``; the message is
everything after the first space, kept verbatim.
"""

from typing import List, Optional

SEND_COMMAND = "send"


def parse_command(line: str) -> Optional[str]:
    """
    Parse one console line.

    Returns:
        The message to send, or None if the line is not a send command
    """
    command, separator, message = line.rstrip('\r\n').partition(' ')
    if not separator or command != SEND_COMMAND:
        return None
    return message


def split_message(message: str, segment_size: int = 1) -> List[str]:
    """Cut a message into ordered data units of segment_size characters."""
    if segment_size <= 0:
        raise ValueError("Segment size must be positive")
    return [message[i:i + segment_size] for i in range(0, len(message), segment_size)]
