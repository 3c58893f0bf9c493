"""
Exception hierarchy for the Selective Repeat node.
"""


class SRNodeError(Exception):
    """Base class for all node errors."""


class ConfigurationError(SRNodeError):
    """Startup arguments are malformed or out of range."""


class MalformedFrameError(SRNodeError):
    """An inbound datagram could not be decoded into a frame."""
