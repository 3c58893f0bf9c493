"""
Channel package - Datagram channels and synthetic loss.

Contains implementations for:
- UDP and in-process loopback channels
- Bernoulli, Gilbert-Elliott and scripted loss models
"""

from .loss import (
    LossModel, BernoulliLoss, GilbertElliottLoss, ScriptedLoss,
    ChannelState, create_loss_model
)
from .transport import TransportChannel, UdpChannel, LoopbackNetwork, LoopbackChannel

__all__ = [
    'LossModel',
    'BernoulliLoss',
    'GilbertElliottLoss',
    'ScriptedLoss',
    'ChannelState',
    'create_loss_model',
    'TransportChannel',
    'UdpChannel',
    'LoopbackNetwork',
    'LoopbackChannel'
]
