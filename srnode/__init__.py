"""
SRNode - Selective Repeat ARQ over UDP.

Contains:
- ARQ window engine (sender, receiver, timers, actors)
- Datagram channels and loss models
- Node orchestration
"""

from .exceptions import SRNodeError, ConfigurationError, MalformedFrameError
from .node import Node, NodeConfig

__all__ = [
    'SRNodeError',
    'ConfigurationError',
    'MalformedFrameError',
    'Node',
    'NodeConfig'
]
