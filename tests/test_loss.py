"""
Unit tests for the datagram loss models.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from srnode.arq.frame import FrameType
from srnode.channel.loss import (
    BernoulliLoss, GilbertElliottLoss, ScriptedLoss, ChannelState,
    create_loss_model, frame_types_for, simulate_loss_pattern, analyze_burst_lengths
)
from srnode.exceptions import ConfigurationError


class TestBernoulliLoss:
    """Tests for independent per-datagram loss."""

    def test_zero_never_drops(self):
        model = BernoulliLoss(0.0, seed=1)

        assert not any(simulate_loss_pattern(model, 1000))

    def test_one_always_drops(self):
        model = BernoulliLoss(1.0, seed=1)

        assert all(simulate_loss_pattern(model, 1000))

    def test_observed_rate(self):
        """Observed loss should be close to p over many datagrams."""
        model = BernoulliLoss(0.3, seed=42)

        pattern = simulate_loss_pattern(model, 10000)

        assert 0.27 < sum(pattern) / len(pattern) < 0.33
        assert model.get_statistics()['observed_loss'] == pytest.approx(sum(pattern) / 10000)

    @pytest.mark.parametrize("probability", [-0.1, 1.5])
    def test_invalid_probability(self, probability):
        with pytest.raises(ConfigurationError):
            BernoulliLoss(probability)

    def test_reproducibility(self):
        """Test that same seed produces same results."""
        pattern1 = simulate_loss_pattern(BernoulliLoss(0.5, seed=7), 200)
        pattern2 = simulate_loss_pattern(BernoulliLoss(0.5, seed=7), 200)

        assert pattern1 == pattern2

    def test_reset(self):
        model = BernoulliLoss(0.5, seed=7)
        first = simulate_loss_pattern(model, 50)

        model.reset(seed=7)

        assert model.get_statistics()['datagrams_seen'] == 0
        assert simulate_loss_pattern(model, 50) == first


class TestDirectionPolicy:
    """Loss can be limited to DATA or to ACK frames."""

    def test_frame_types(self):
        assert frame_types_for("both") == {FrameType.DATA, FrameType.ACK}
        assert frame_types_for("data") == {FrameType.DATA}
        assert frame_types_for("ack") == {FrameType.ACK}
        with pytest.raises(ConfigurationError):
            frame_types_for("sideways")

    def test_data_only(self):
        model = BernoulliLoss(1.0, applies_to="data")

        assert model.should_drop(FrameType.DATA, 0)
        assert not model.should_drop(FrameType.ACK, 0)

    def test_ack_only(self):
        model = BernoulliLoss(1.0, applies_to="ack")

        assert not model.should_drop(FrameType.DATA, 0)
        assert model.should_drop(FrameType.ACK, 0)

        stats = model.get_statistics()
        assert stats['datagrams_seen'] == 2
        assert stats['dropped_acks'] == 1
        assert stats['dropped_data'] == 0


class TestGilbertElliottLoss:
    """Tests for the two-state burst loss model."""

    def test_initialization(self):
        """Test model initialization with default parameters."""
        model = GilbertElliottLoss(bad_loss=0.5, seed=42)

        assert model.good_loss == 0.0
        assert model.p_gb == 0.05
        assert model.p_bg == 0.3
        assert model.state in [ChannelState.GOOD, ChannelState.BAD]

    def test_steady_state_probabilities(self):
        """Test steady-state probability calculation."""
        model = GilbertElliottLoss(bad_loss=0.5)

        pi_good, pi_bad = model.get_steady_state_probabilities()

        # Should sum to 1
        assert abs(pi_good + pi_bad - 1.0) < 1e-10
        assert pi_good == pytest.approx(0.3 / 0.35)

    def test_average_loss(self):
        model = GilbertElliottLoss(bad_loss=0.5)

        assert model.get_average_loss() == pytest.approx(0.5 * 0.05 / 0.35)

    def test_state_transitions(self):
        """Test that state transitions occur."""
        model = GilbertElliottLoss(bad_loss=0.5, seed=42)

        states_seen = set()
        for _ in range(1000):
            model.transition_state()
            states_seen.add(model.state)

        assert len(states_seen) == 2

    def test_losses_come_in_bursts(self):
        """With a sticky Bad state, drops cluster."""
        model = GilbertElliottLoss(bad_loss=1.0, p_gb=0.02, p_bg=0.2, seed=3)

        stats = analyze_burst_lengths(simulate_loss_pattern(model, 5000))

        assert stats['num_bursts'] > 0
        assert stats['avg_burst_length'] > 2

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            GilbertElliottLoss(bad_loss=2.0)
        with pytest.raises(ConfigurationError):
            GilbertElliottLoss(bad_loss=0.5, p_gb=0.0, p_bg=0.0)

    def test_statistics_and_reset(self):
        """Test that statistics are tracked and cleared."""
        model = GilbertElliottLoss(bad_loss=0.5, seed=42)
        simulate_loss_pattern(model, 100)

        stats = model.get_statistics()
        assert stats['datagrams_seen'] == 100
        assert stats['time_in_good'] + stats['time_in_bad'] == 100

        model.reset(seed=123)

        stats = model.get_statistics()
        assert stats['datagrams_seen'] == 0
        assert stats['state_transitions'] == 0

    def test_reproducibility(self):
        """Test that same seed produces same results."""
        pattern1 = simulate_loss_pattern(GilbertElliottLoss(bad_loss=0.5, seed=42), 300)
        pattern2 = simulate_loss_pattern(GilbertElliottLoss(bad_loss=0.5, seed=42), 300)

        assert pattern1 == pattern2


class TestScriptedLoss:
    """Tests for deterministic loss."""

    def test_pattern(self):
        """Pattern entries apply in arrival order; past the end nothing drops."""
        model = ScriptedLoss(pattern=[True, False, True])

        assert simulate_loss_pattern(model, 5) == [True, False, True, False, False]

    def test_rule(self):
        model = ScriptedLoss(rule=lambda frame_type, seq, index: seq == 2)

        assert [model.should_drop(FrameType.DATA, seq) for seq in range(4)] == [
            False, False, True, False
        ]

    def test_pattern_counts_only_covered_frames(self):
        model = ScriptedLoss(pattern=[True, True], applies_to="ack")

        assert not model.should_drop(FrameType.DATA, 0)
        assert model.should_drop(FrameType.ACK, 0)
        assert model.should_drop(FrameType.ACK, 0)
        assert not model.should_drop(FrameType.ACK, 0)

    def test_needs_exactly_one_source(self):
        with pytest.raises(ValueError):
            ScriptedLoss()
        with pytest.raises(ValueError):
            ScriptedLoss(pattern=[True], rule=lambda *args: True)


class TestFactoryAndAnalysis:
    """Tests for create_loss_model and burst analysis."""

    def test_create_loss_model(self):
        assert isinstance(create_loss_model("bernoulli", 0.1, seed=1), BernoulliLoss)
        burst = create_loss_model("burst", 0.4, seed=1, applies_to="data")
        assert isinstance(burst, GilbertElliottLoss)
        assert burst.bad_loss == 0.4
        assert burst.applies_to == "data"
        with pytest.raises(ConfigurationError):
            create_loss_model("gaussian", 0.1)

    def test_burst_analysis(self):
        """Test burst length analysis."""
        pattern = [False, False, True, True, True, False, True, False]

        stats = analyze_burst_lengths(pattern)

        assert stats['num_bursts'] == 2
        assert stats['max_burst_length'] == 3
        assert stats['burst_lengths'] == [3, 1]

    def test_no_bursts(self):
        assert analyze_burst_lengths([False] * 5)['num_bursts'] == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
