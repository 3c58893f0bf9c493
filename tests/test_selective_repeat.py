"""
Unit tests for the Selective Repeat ARQ protocol.
"""

import io
import itertools
import threading
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from srnode.arq.frame import Frame, FrameType, Packet, TextCodec, BinaryCodec, get_codec
from srnode.arq.sender import SRSender, AckResult
from srnode.arq.receiver import SRReceiver, ReceiveResult
from srnode.arq.timer import RetransmissionScheduler, PacketTimer, TimerState
from srnode.arq.actor import WindowActor
from srnode.exceptions import ConfigurationError, MalformedFrameError
from srnode.utils.logger import NodeLogger, LogLevel
from srnode.utils.metrics import MetricsCollector

PEER = ("127.0.0.1", 9001)


class ManualClock:
    """Clock the test moves by hand."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_logger():
    return NodeLogger(
        name="Test",
        level=LogLevel.DEBUG,
        use_colors=False,
        trace_stream=io.StringIO(),
        diag_stream=io.StringIO(),
        clock=lambda: 0
    )


def trace_events(logger):
    """Trace lines without their timestamps."""
    lines = logger.trace_stream.getvalue().splitlines()
    return [line.split(' ', 1)[1] for line in lines]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sender_setup(clock):
    """Sender with W=4, a manual-clock scheduler and a capture list."""
    sent = []
    logger = make_logger()
    metrics = MetricsCollector()
    scheduler = RetransmissionScheduler(1.0, clock=clock)
    sender = SRSender(4, scheduler, sent.append, logger=logger, metrics=metrics,
                      destination=PEER)
    return sender, sent, scheduler, logger, metrics


@pytest.fixture
def receiver_setup():
    """Receiver with W=4 and capture lists for ACKs and deliveries."""
    acks = []
    delivered = []
    logger = make_logger()
    metrics = MetricsCollector()
    receiver = SRReceiver(
        4,
        lambda frame, destination: acks.append((frame.seq_num, destination)),
        on_data_delivered=lambda payload, seq: delivered.append((seq, payload)),
        logger=logger,
        metrics=metrics,
        keep_history=True
    )
    return receiver, acks, delivered, logger, metrics


class TestFrame:
    """Tests for Frame and Packet."""

    def test_data_frame_creation(self):
        """Test creating a data frame."""
        frame = Frame.create_data_frame(seq_num=42, payload="x")

        assert frame.frame_type == FrameType.DATA
        assert frame.seq_num == 42
        assert frame.payload == "x"
        assert not frame.is_ack()

    def test_ack_frame_creation(self):
        """Test creating an ACK frame."""
        frame = Frame.create_ack_frame(ack_num=10)

        assert frame.frame_type == FrameType.ACK
        assert frame.seq_num == 10
        assert frame.is_ack()

    def test_negative_sequence_rejected(self):
        """Sequence numbers are non-negative."""
        with pytest.raises(ValueError):
            Frame.create_data_frame(-1, "a")
        with pytest.raises(ValueError):
            Packet(-1, "a")

    def test_ack_with_payload_rejected(self):
        with pytest.raises(ValueError):
            Frame(FrameType.ACK, 1, "a")

    def test_packet_frame_conversion(self):
        """A received DATA frame becomes a packet bound to its endpoints."""
        packet = Frame.create_data_frame(3, "c").to_packet(PEER, ("127.0.0.1", 9000))

        assert packet.seq_num == 3
        assert packet.payload == "c"
        assert packet.source == PEER
        assert packet.to_frame() == Frame.create_data_frame(3, "c")

    def test_ack_has_no_packet(self):
        with pytest.raises(ValueError):
            Frame.create_ack_frame(1).to_packet()


class TestTextCodec:
    """Tests for the text wire format."""

    def test_encode(self):
        codec = TextCodec()

        assert codec.encode(Frame.create_data_frame(3, "a")) == b"3_a"
        assert codec.encode(Frame.create_ack_frame(12)) == b"ACK,12"

    def test_decode(self):
        codec = TextCodec()

        assert codec.decode(b"7_z") == Frame.create_data_frame(7, "z")
        assert codec.decode(b"ACK,7") == Frame.create_ack_frame(7)

    def test_payload_keeps_separators(self):
        """Only the first separator splits sequence number from payload."""
        frame = TextCodec().decode(b"5_a_b")

        assert frame.seq_num == 5
        assert frame.payload == "a_b"

    def test_space_payload(self):
        codec = TextCodec()

        assert codec.decode(codec.encode(Frame.create_data_frame(0, " "))).payload == " "

    def test_max_frame_size_covers_wide_characters(self):
        """Four-byte characters at a ten-digit sequence number still fit the bound."""
        codec = TextCodec()
        frame = Frame.create_data_frame(4294967295, "\U0001F600" * 5)

        assert len(codec.encode(frame)) == codec.max_frame_size(5)


    @pytest.mark.parametrize("data", [
        b"", b"abc", b"ACK,", b"ACK,x", b"ACK,-1", b"x_a", b"-1_a", b"_a", b"\xff\xfe",
        "٣_a".encode('utf-8'),
    ])
    def test_malformed(self, data):
        """Anything that is not a well-formed frame is rejected."""
        with pytest.raises(MalformedFrameError):
            TextCodec().decode(data)


class TestBinaryCodec:
    """Tests for the binary wire format."""

    def test_round_trip(self):
        codec = BinaryCodec()
        for frame in (Frame.create_data_frame(70000, "héllo"), Frame.create_ack_frame(4)):
            assert codec.decode(codec.encode(frame)) == frame

    def test_crc_detection(self):
        """Test that CRC detects corruption."""
        data = bytearray(BinaryCodec().encode(Frame.create_data_frame(1, "data")))
        data[BinaryCodec.HEADER_SIZE] ^= 0xFF

        with pytest.raises(MalformedFrameError):
            BinaryCodec().decode(bytes(data))

    def test_truncated(self):
        data = BinaryCodec().encode(Frame.create_data_frame(1, "data"))

        with pytest.raises(MalformedFrameError):
            BinaryCodec().decode(data[:5])
        with pytest.raises(MalformedFrameError):
            BinaryCodec().decode(data[:-1])

    def test_get_codec(self):
        assert isinstance(get_codec("text"), TextCodec)
        assert isinstance(get_codec("binary"), BinaryCodec)
        with pytest.raises(ConfigurationError):
            get_codec("morse")

    def test_max_frame_size(self):
        codec = BinaryCodec()
        frame = Frame.create_data_frame(4294967295, "\U0001F600" * 5)

        assert len(codec.encode(frame)) == codec.max_frame_size(5)



class TestSender:
    """Tests for SR sender."""

    def test_initialization(self, sender_setup):
        """Test sender initialization."""
        sender, sent, _, _, _ = sender_setup

        assert sender.base == 0
        assert sender.next_seq == 0
        assert sender.is_complete()
        assert sent == []

    def test_invalid_window(self, clock):
        with pytest.raises(ValueError):
            SRSender(0, RetransmissionScheduler(1.0, clock=clock), lambda p: None)

    def test_admission_fills_window_then_queues(self, sender_setup):
        """Window=4, seq 0-5: 0-3 go out at once, 4-5 wait."""
        sender, sent, scheduler, logger, metrics = sender_setup

        packets = [sender.admit(c) for c in "abcdef"]

        assert [p.seq_num for p in packets] == [0, 1, 2, 3, 4, 5]
        assert [p.seq_num for p in sent] == [0, 1, 2, 3]
        assert sender.pending_sequence_numbers == [4, 5]
        assert scheduler.get_active_count() == 4
        assert trace_events(logger) == [
            "packet-0 a sent", "packet-1 b sent", "packet-2 c sent", "packet-3 d sent"
        ]
        assert metrics['packets_queued'] == 2
        assert all(p.destination == PEER for p in sent)

    def test_base_ack_advances_and_drains(self, sender_setup):
        """ACK(0) moves the window to [1,5] and sends seq 4 right away."""
        sender, sent, _, logger, _ = sender_setup
        for c in "abcdef":
            sender.admit(c)

        result = sender.on_ack(0)

        assert result == AckResult.ADVANCED
        assert sender.base == 1
        assert [p.seq_num for p in sent] == [0, 1, 2, 3, 4]
        assert sender.pending_sequence_numbers == [5]
        assert trace_events(logger)[-2:] == ["ACK-0 received; window = [1,5]", "packet-4 e sent"]

    def test_non_base_ack(self, sender_setup):
        """An ACK above the base is recorded without moving the window."""
        sender, _, scheduler, logger, _ = sender_setup
        for c in "abcd":
            sender.admit(c)

        result = sender.on_ack(2)

        assert result == AckResult.ACKED
        assert sender.base == 0
        assert sender.get_window_state()['acknowledged'] == [2]
        assert trace_events(logger)[-1] == "ACK-2 received"
        assert scheduler.get_active_count() == 3

    def test_multi_step_advance(self, sender_setup):
        """Filling the gap at the base slides past every ACKed number."""
        sender, sent, _, logger, _ = sender_setup
        for c in "abcdefgh":
            sender.admit(c)

        sender.on_ack(1)
        sender.on_ack(2)
        result = sender.on_ack(0)

        assert result == AckResult.ADVANCED
        assert sender.base == 3
        assert sender.get_window_state()['acknowledged'] == []
        assert [p.seq_num for p in sent] == [0, 1, 2, 3, 4, 5, 6]
        assert "ACK-0 received; window = [3,7]" in trace_events(logger)

    def test_ack_beyond_window_ignored(self, sender_setup):
        """ACK(5) with base 0 and W=4 changes nothing."""
        sender, sent, scheduler, _, metrics = sender_setup
        for c in "abcd":
            sender.admit(c)
        before = sender.get_window_state()

        result = sender.on_ack(5)

        assert result == AckResult.IGNORED
        assert sender.get_window_state() == before
        assert scheduler.get_active_count() == 4
        assert len(sent) == 4
        assert metrics['acks_ignored'] == 1

    def test_duplicate_ack_is_idempotent(self, sender_setup):
        """Applying the same ACK twice leaves the state of applying it once."""
        sender, _, _, _, _ = sender_setup
        for c in "abcdef":
            sender.admit(c)

        sender.on_ack(1)
        once = sender.get_window_state()
        assert sender.on_ack(1) == AckResult.IGNORED
        assert sender.get_window_state() == once

        sender.on_ack(0)
        advanced = sender.get_window_state()
        assert sender.on_ack(0) == AckResult.IGNORED
        assert sender.get_window_state() == advanced

    def test_timeout_retransmits(self, sender_setup, clock):
        """An expired timer retransmits and rearms at the fixed interval."""
        sender, sent, scheduler, logger, metrics = sender_setup
        sender.admit("a")

        clock.now = 1.0
        assert scheduler.pop_expired(clock.now) == [0]
        assert sender.on_timeout(0)

        assert [p.seq_num for p in sent] == [0, 0]
        assert trace_events(logger)[-2:] == ["packet-0 timeout", "packet-0 a sent"]
        assert scheduler.get_next_expiry() == pytest.approx(2.0)
        assert scheduler.get_retransmit_count(0) == 1
        assert metrics['retransmissions'] == 1

    def test_timeout_after_ack_is_noop(self, sender_setup, clock):
        """A timer that fires for an ACKed packet ends without a resend."""
        sender, sent, scheduler, _, _ = sender_setup
        sender.admit("a")
        sender.admit("b")

        sender.on_ack(1)

        assert not sender.on_timeout(1)
        assert len(sent) == 2
        clock.now = 5.0
        assert scheduler.pop_expired(clock.now) == [0]

    def test_complete(self, sender_setup):
        sender, _, scheduler, _, _ = sender_setup
        for c in "abc":
            sender.admit(c)
        for seq in (2, 0, 1):
            sender.on_ack(seq)

        assert sender.is_complete()
        assert scheduler.get_active_count() == 0


class TestReceiver:
    """Tests for SR receiver."""

    def test_initialization(self, receiver_setup):
        """Test receiver initialization."""
        receiver, _, _, _, _ = receiver_setup

        assert receiver.base == 0
        assert receiver.get_window_state()['buffered'] == []

    def test_in_order_delivery(self, receiver_setup):
        receiver, acks, delivered, logger, _ = receiver_setup

        result = receiver.on_data(Packet(0, "a", PEER))

        assert result == ReceiveResult.DELIVERED
        assert receiver.base == 1
        assert delivered == [(0, "a")]
        assert acks == [(0, PEER)]
        assert trace_events(logger) == ["packet-0 a received; window = [1,5]", "ACK-0 sent"]

    def test_gap_then_fill(self, receiver_setup):
        """Seq 2 first is buffered; 0 and 1 then release it in order."""
        receiver, acks, delivered, logger, _ = receiver_setup

        assert receiver.on_data(Packet(2, "c", PEER)) == ReceiveResult.BUFFERED
        assert receiver.base == 0
        assert acks == [(2, PEER)]
        assert trace_events(logger) == ["packet-2 c received", "ACK-2 sent"]

        assert receiver.on_data(Packet(0, "a", PEER)) == ReceiveResult.DELIVERED
        assert receiver.base == 1
        assert receiver.on_data(Packet(1, "b", PEER)) == ReceiveResult.DELIVERED

        assert receiver.base == 3
        assert delivered == [(0, "a"), (1, "b"), (2, "c")]
        assert receiver.get_delivered_text() == "abc"
        assert trace_events(logger)[-2:] == ["packet-1 b received; window = [3,7]", "ACK-1 sent"]

    def test_duplicate_of_delivered(self, receiver_setup):
        """A delivered packet arriving again is discarded but still ACKed."""
        receiver, acks, delivered, logger, metrics = receiver_setup
        receiver.on_data(Packet(0, "a", PEER))

        result = receiver.on_data(Packet(0, "a", PEER))

        assert result == ReceiveResult.DISCARDED
        assert delivered == [(0, "a")]
        assert acks == [(0, PEER), (0, PEER)]
        assert trace_events(logger)[-2:] == ["packet-0 a discarded", "ACK-0 sent"]
        assert metrics['data_discarded'] == 1

    def test_duplicate_of_buffered(self, receiver_setup):
        receiver, acks, _, _, _ = receiver_setup
        receiver.on_data(Packet(3, "d", PEER))
        state = receiver.get_window_state()

        assert receiver.on_data(Packet(3, "d", PEER)) == ReceiveResult.DISCARDED
        assert receiver.get_window_state() == state
        assert len(acks) == 2

    def test_beyond_window_dropped(self, receiver_setup):
        """Seq >= base + W is dropped without an ACK."""
        receiver, acks, delivered, logger, metrics = receiver_setup

        assert receiver.on_data(Packet(4, "e", PEER)) == ReceiveResult.DROPPED
        assert acks == []
        assert delivered == []
        assert trace_events(logger) == []
        assert metrics['data_out_of_window'] == 1

    @pytest.mark.parametrize("order", list(itertools.permutations(range(4)))[::5])
    def test_any_arrival_order_delivers_in_order(self, order):
        """Delivery order is strictly increasing whatever the arrival order."""
        delivered = []
        receiver = SRReceiver(4, lambda frame, destination: None,
                              on_data_delivered=lambda payload, seq: delivered.append(seq),
                              keep_history=True)

        for seq in order:
            receiver.on_data(Packet(seq, str(seq)))
            receiver.on_data(Packet(seq, str(seq)))

        assert delivered == [0, 1, 2, 3]
        assert receiver.get_delivered_text() == "0123"

    def test_history_off_by_default(self):
        """Without keep_history nothing is retained; the callback still sees every payload."""
        delivered = []
        receiver = SRReceiver(2, lambda frame, destination: None,
                              on_data_delivered=lambda payload, seq: delivered.append(payload))

        for seq in range(50):
            receiver.on_data(Packet(seq, "x"))

        assert len(delivered) == 50
        assert receiver.delivered_data is None
        with pytest.raises(RuntimeError):
            receiver.get_delivered_text()



class TestRetransmissionScheduler:
    """Tests for the shared timer scheduler."""

    def test_timer_expiry(self, clock):
        """Test basic timer expiry."""
        scheduler = RetransmissionScheduler(0.1, clock=clock)
        scheduler.start_timer(0)

        assert scheduler.pop_expired(0.05) == []
        assert scheduler.pop_expired(0.1) == [0]
        assert scheduler.pop_expired(1.0) == []

    def test_expiry_order(self, clock):
        """Timers fire by expiry time, then sequence number."""
        scheduler = RetransmissionScheduler(1.0, clock=clock)
        scheduler.start_timer(3, current_time=0.0)
        scheduler.start_timer(1, current_time=0.0)
        scheduler.start_timer(0, current_time=0.5)

        assert scheduler.pop_expired(2.0) == [1, 3, 0]

    def test_cancel(self, clock):
        scheduler = RetransmissionScheduler(1.0, clock=clock)
        scheduler.start_timer(0)
        scheduler.start_timer(1)

        scheduler.cancel_timer(0)

        assert scheduler.get_active_count() == 1
        assert scheduler.pop_expired(5.0) == [1]

    def test_restart_invalidates_old_expiry(self, clock):
        """Restarting moves the expiry; the old heap entry is skipped."""
        scheduler = RetransmissionScheduler(1.0, clock=clock)
        scheduler.start_timer(0, current_time=0.0)
        scheduler.start_timer(0, current_time=0.8)

        assert scheduler.pop_expired(1.0) == []
        assert scheduler.get_next_expiry() == pytest.approx(1.8)
        assert scheduler.pop_expired(1.8) == [0]

    def test_next_expiry_skips_cancelled(self, clock):
        scheduler = RetransmissionScheduler(1.0, clock=clock)
        scheduler.start_timer(0, current_time=0.0)
        scheduler.start_timer(1, current_time=0.5)
        scheduler.cancel_timer(0)

        assert scheduler.get_next_expiry() == pytest.approx(1.5)
        scheduler.clear_all()
        assert scheduler.get_next_expiry() is None

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            RetransmissionScheduler(0)

    def test_threaded_requires_callback(self):
        with pytest.raises(ValueError):
            RetransmissionScheduler(0.1).start()

    def test_threaded_mode_fires(self):
        """On its own thread the scheduler calls on_expire for each expiry."""
        fired = []
        done = threading.Event()

        def on_expire(seq):
            fired.append(seq)
            done.set()

        scheduler = RetransmissionScheduler(0.05, on_expire=on_expire)
        scheduler.start()
        try:
            scheduler.start_timer(7)
            assert done.wait(2.0)
        finally:
            scheduler.stop()

        assert fired == [7]

    def test_callback_failure_does_not_stop_scheduler(self):
        fired = []
        done = threading.Event()

        def on_expire(seq):
            fired.append(seq)
            if seq == 0:
                raise RuntimeError("boom")
            done.set()

        logger = make_logger()
        scheduler = RetransmissionScheduler(0.02, on_expire=on_expire, logger=logger)
        scheduler.start()
        try:
            scheduler.start_timer(0)
            scheduler.start_timer(1, current_time=scheduler.clock() + 0.05)
            assert done.wait(2.0)
        finally:
            scheduler.stop()

        assert fired == [0, 1]
        assert "boom" in logger.diag_stream.getvalue()


class TestPacketTimer:
    """Tests for a single packet timer."""

    def test_lifecycle(self):
        timer = PacketTimer(seq_num=0, timeout=1.0)
        assert timer.state == TimerState.STOPPED
        assert not timer.check_expired(10.0)

        timer.start(0.0)
        assert not timer.check_expired(0.5)
        assert timer.check_expired(1.0)
        assert timer.state == TimerState.EXPIRED

        timer.restart(1.0)
        assert timer.retransmit_count == 1
        assert timer.get_expiry_time() == pytest.approx(2.0)


class TestWindowActor:
    """Tests for the single-owner actor."""

    def test_calls_run_in_post_order(self):
        actor = WindowActor("test-actor", [])
        actor.start()
        try:
            for i in range(20):
                actor.post('append', i)
            assert actor.inspect(lambda target: list(target)) == list(range(20))
        finally:
            actor.stop()

    def test_call_returns_result(self):
        actor = WindowActor("test-actor", {'a': 1})
        actor.start()
        try:
            assert actor.call('get', 'a') == 1
        finally:
            actor.stop()

    def test_failure_keeps_actor_running(self):
        """An exception reaches the caller's future; later messages still run."""
        logger = make_logger()
        actor = WindowActor("test-actor", [], logger=logger)
        actor.start()
        try:
            with pytest.raises(ValueError):
                actor.call('remove', 42)
            assert actor.call('append', 1) is None
            assert actor.failures == 1
            assert actor.is_running
        finally:
            actor.stop()

        assert not actor.is_running
        assert "test-actor" in logger.diag_stream.getvalue()


class TestNodeLogger:
    """Tests for trace output shared by several threads."""

    def test_concurrent_traces_print_in_time_order(self):
        ticks = itertools.count()
        logger = NodeLogger(
            name="Test",
            use_colors=False,
            trace_stream=io.StringIO(),
            diag_stream=io.StringIO(),
            clock=lambda: next(ticks)
        )

        def trace_many(seq_num):
            for _ in range(200):
                logger.packet_sent(seq_num, "x")

        threads = [threading.Thread(target=trace_many, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stamps = [int(line.split(' ', 1)[0])
                  for line in logger.trace_stream.getvalue().splitlines()]
        assert len(stamps) == 1600
        assert stamps == sorted(stamps)



if __name__ == "__main__":
    pytest.main([__file__, "-v"])
