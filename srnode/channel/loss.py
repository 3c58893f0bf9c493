"""
Synthetic Datagram Loss Models

Every inbound datagram passes through a loss model before the node
looks at it. Three models are provided:

- BernoulliLoss: independent drop with fixed probability p
- GilbertElliottLoss: two-state Markov chain, bursts of loss in the Bad state
- ScriptedLoss: deterministic drop pattern or rule, for reproducible runs
"""

import numpy as np
from typing import Callable, FrozenSet, Iterable, List, Optional, Tuple
from enum import Enum

from config import (
    LOSS_MODEL_BERNOULLI, LOSS_MODEL_BURST,
    BURST_GOOD_LOSS, BURST_P_GOOD_TO_BAD, BURST_P_BAD_TO_GOOD
)
from ..arq.frame import FrameType
from ..exceptions import ConfigurationError


def frame_types_for(applies_to: str) -> FrozenSet[FrameType]:
    """Map a direction policy name to the frame kinds it covers."""
    if applies_to == "both":
        return frozenset({FrameType.DATA, FrameType.ACK})
    if applies_to == "data":
        return frozenset({FrameType.DATA})
    if applies_to == "ack":
        return frozenset({FrameType.ACK})
    raise ConfigurationError(f"Unknown loss direction: {applies_to}")


def _check_probability(name: str, value: float):
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be in [0, 1], got {value}")


class LossModel:
    """
    Base class for inbound loss models.

    Attributes:
        frame_types: Frame kinds the model may drop; others always pass
    """

    def __init__(self, applies_to: str = "both"):
        self.applies_to = applies_to
        self.frame_types = frame_types_for(applies_to)

        # Statistics tracking
        self.datagrams_seen = 0
        self.datagrams_dropped = 0
        self.dropped_by_type = {frame_type: 0 for frame_type in FrameType}

    def should_drop(self, frame_type: FrameType, seq_num: Optional[int] = None) -> bool:
        """
        Decide the fate of one inbound datagram.

        Args:
            frame_type: Kind of the decoded frame
            seq_num: Its sequence number (used by scripted rules)

        Returns:
            True if the datagram is lost
        """
        self.datagrams_seen += 1
        if frame_type not in self.frame_types:
            return False

        dropped = self._decide(frame_type, seq_num)
        if dropped:
            self.datagrams_dropped += 1
            self.dropped_by_type[frame_type] += 1
        return dropped

    def _decide(self, frame_type: FrameType, seq_num: Optional[int]) -> bool:
        raise NotImplementedError

    def get_statistics(self) -> dict:
        return {
            'datagrams_seen': self.datagrams_seen,
            'datagrams_dropped': self.datagrams_dropped,
            'dropped_data': self.dropped_by_type[FrameType.DATA],
            'dropped_acks': self.dropped_by_type[FrameType.ACK],
            'observed_loss': (self.datagrams_dropped / self.datagrams_seen
                              if self.datagrams_seen > 0 else 0.0)
        }

    def reset_statistics(self):
        self.datagrams_seen = 0
        self.datagrams_dropped = 0
        self.dropped_by_type = {frame_type: 0 for frame_type in FrameType}


class BernoulliLoss(LossModel):
    """
    Independent per-datagram loss.

    Attributes:
        probability: Drop probability p in [0, 1]
        rng: Random number generator
    """

    def __init__(
        self,
        probability: float,
        seed: Optional[int] = None,
        applies_to: str = "both"
    ):
        super().__init__(applies_to)
        _check_probability("Loss probability", probability)
        self.probability = probability
        self.rng = np.random.default_rng(seed)

    def _decide(self, frame_type, seq_num) -> bool:
        if self.probability <= 0.0:
            return False
        if self.probability >= 1.0:
            return True
        return bool(self.rng.random() < self.probability)

    def reset(self, seed: Optional[int] = None):
        if seed is not None:
            self.rng = np.random.default_rng(seed)
        self.reset_statistics()


class ChannelState(Enum):
    """Channel state enumeration."""
    GOOD = 0
    BAD = 1


class GilbertElliottLoss(LossModel):
    """
    Gilbert-Elliott two-state Markov loss model, one step per datagram.

    The channel transitions between Good and Bad states with specified
    probabilities. Each state has its own datagram loss probability.

    Attributes:
        good_loss: Loss probability in Good state
        bad_loss: Loss probability in Bad state
        p_gb: Transition probability from Good to Bad
        p_bg: Transition probability from Bad to Good
        state: Current channel state
    """

    def __init__(
        self,
        bad_loss: float,
        good_loss: float = BURST_GOOD_LOSS,
        p_gb: float = BURST_P_GOOD_TO_BAD,
        p_bg: float = BURST_P_BAD_TO_GOOD,
        seed: Optional[int] = None,
        applies_to: str = "both"
    ):
        super().__init__(applies_to)
        for name, value in (("Bad-state loss", bad_loss), ("Good-state loss", good_loss),
                            ("P(G->B)", p_gb), ("P(B->G)", p_bg)):
            _check_probability(name, value)
        if p_gb + p_bg <= 0:
            raise ConfigurationError("At least one state transition probability must be positive")

        self.good_loss = good_loss
        self.bad_loss = bad_loss
        self.p_gb = p_gb
        self.p_bg = p_bg

        self.rng = np.random.default_rng(seed)
        self._initialize_state()

        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0

    def _initialize_state(self):
        """Initialize channel state based on steady-state probabilities."""
        pi_good, _ = self.get_steady_state_probabilities()
        if self.rng.random() < pi_good:
            self.state = ChannelState.GOOD
        else:
            self.state = ChannelState.BAD

    def get_steady_state_probabilities(self) -> Tuple[float, float]:
        """
        Calculate steady-state probabilities for Good and Bad states.

        Returns:
            Tuple of (pi_Good, pi_Bad)
        """
        sum_transitions = self.p_gb + self.p_bg
        return self.p_bg / sum_transitions, self.p_gb / sum_transitions

    def get_average_loss(self) -> float:
        """Long-run loss probability."""
        pi_good, pi_bad = self.get_steady_state_probabilities()
        return pi_good * self.good_loss + pi_bad * self.bad_loss

    def transition_state(self):
        """Perform one Markov step."""
        if self.state == ChannelState.GOOD:
            self.time_in_good += 1
            if self.rng.random() < self.p_gb:
                self.state = ChannelState.BAD
                self.state_transitions += 1
        else:
            self.time_in_bad += 1
            if self.rng.random() < self.p_bg:
                self.state = ChannelState.GOOD
                self.state_transitions += 1

    def _decide(self, frame_type, seq_num) -> bool:
        loss = self.good_loss if self.state == ChannelState.GOOD else self.bad_loss
        dropped = bool(self.rng.random() < loss)
        self.transition_state()
        return dropped

    def get_statistics(self) -> dict:
        stats = super().get_statistics()
        stats.update({
            'state_transitions': self.state_transitions,
            'time_in_good': self.time_in_good,
            'time_in_bad': self.time_in_bad,
            'theoretical_avg_loss': self.get_average_loss()
        })
        return stats

    def reset(self, seed: Optional[int] = None):
        if seed is not None:
            self.rng = np.random.default_rng(seed)
        self._initialize_state()
        self.reset_statistics()
        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0


class ScriptedLoss(LossModel):
    """
    Deterministic loss for reproducible runs.

    Either a fixed pattern (one bool per covered datagram, in arrival
    order; datagrams past the end of the pattern pass) or a rule
    called as rule(frame_type, seq_num, index).
    """

    def __init__(
        self,
        pattern: Optional[Iterable[bool]] = None,
        rule: Optional[Callable[[FrameType, Optional[int], int], bool]] = None,
        applies_to: str = "both"
    ):
        super().__init__(applies_to)
        if (pattern is None) == (rule is None):
            raise ValueError("Give exactly one of pattern or rule")
        self.pattern: List[bool] = list(pattern) if pattern is not None else []
        self.rule = rule
        self.index = 0

    def _decide(self, frame_type, seq_num) -> bool:
        index = self.index
        self.index += 1
        if self.rule is not None:
            return bool(self.rule(frame_type, seq_num, index))
        return index < len(self.pattern) and bool(self.pattern[index])


def create_loss_model(
    model: str,
    probability: float,
    seed: Optional[int] = None,
    applies_to: str = "both"
) -> LossModel:
    """
    Build a loss model by name.

    For the burst model the probability is the Bad-state loss.
    """
    if model == LOSS_MODEL_BERNOULLI:
        return BernoulliLoss(probability, seed=seed, applies_to=applies_to)
    if model == LOSS_MODEL_BURST:
        return GilbertElliottLoss(bad_loss=probability, seed=seed, applies_to=applies_to)
    raise ConfigurationError(f"Unknown loss model: {model}")


def simulate_loss_pattern(
    model: LossModel,
    num_datagrams: int,
    frame_type: FrameType = FrameType.DATA
) -> List[bool]:
    """
    Run a model over a number of datagrams and return the drop pattern.

    Args:
        model: Loss model instance
        num_datagrams: Number of datagrams to simulate
        frame_type: Kind of every datagram

    Returns:
        List of booleans (True = dropped)
    """
    return [model.should_drop(frame_type) for _ in range(num_datagrams)]


def analyze_burst_lengths(loss_pattern: List[bool]) -> dict:
    """
    Analyze burst lengths in a loss pattern.

    Args:
        loss_pattern: List of drop indicators

    Returns:
        Dictionary with burst statistics
    """
    bursts = []
    current_burst = 0

    for dropped in loss_pattern:
        if dropped:
            current_burst += 1
        elif current_burst > 0:
            bursts.append(current_burst)
            current_burst = 0

    if current_burst > 0:
        bursts.append(current_burst)

    if bursts:
        return {
            'avg_burst_length': float(np.mean(bursts)),
            'max_burst_length': max(bursts),
            'num_bursts': len(bursts),
            'burst_lengths': bursts
        }
    return {'avg_burst_length': 0, 'max_burst_length': 0, 'num_bursts': 0}
