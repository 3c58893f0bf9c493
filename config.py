"""
Configuration file for the Selective Repeat ARQ node.
Contains the fixed defaults shared by the node, the simulator and the sweep.
"""

import os

# =============================================================================
# NETWORK PARAMETERS
# =============================================================================

# All peers run on the same machine
DEFAULT_HOST = "127.0.0.1"

# Largest datagram the listener accepts; anything longer is dropped, never
# truncated. 65507 is the largest UDP payload over IPv4.
RECEIVE_BUFFER_SIZE = 65507

# Digits of the largest sequence number a text frame is sized for
MAX_SEQ_DIGITS = 10

# Worst-case UTF-8 bytes per character
MAX_BYTES_PER_CHAR = 4

# Characters carried by one DATA packet
DEFAULT_SEGMENT_SIZE = 1

# Listener poll interval (seconds) so stop() is noticed
SOCKET_POLL_INTERVAL = 0.2

# =============================================================================
# WIRE FORMAT
# =============================================================================

DATA_SEPARATOR = "_"
ACK_PREFIX = "ACK,"

CODEC_TEXT = "text"
CODEC_BINARY = "binary"
CODECS = [CODEC_TEXT, CODEC_BINARY]

# =============================================================================
# LOSS MODELS
# =============================================================================

LOSS_MODEL_BERNOULLI = "bernoulli"
LOSS_MODEL_BURST = "burst"
LOSS_MODELS = [LOSS_MODEL_BERNOULLI, LOSS_MODEL_BURST]

# Which inbound frame kinds the loss model applies to
LOSS_APPLIES_TO = ["both", "data", "ack"]

# Gilbert-Elliott burst loss, per datagram
BURST_GOOD_LOSS = 0.0     # drop probability in Good state
BURST_P_GOOD_TO_BAD = 0.05
BURST_P_BAD_TO_GOOD = 0.3

# =============================================================================
# USAGE
# =============================================================================

USAGE = "SRNode <source-port> <destination-port> <window-size> <time-out> <loss-rate>"
UNRECOGNIZED_COMMAND = "Oops, I don't recognize that command, try again."

# =============================================================================
# SIMULATION SETTINGS
# =============================================================================

# Default RNG seed base (actual seed = base + run_id)
RNG_SEED_BASE = 42

# One-way link delay in the simulator (seconds)
SIM_ONE_WAY_DELAY = 0.010

# Simulated time limit (seconds) - failsafe
MAX_SIMULATION_TIME = 600.0

# Message transferred by each sweep run
SWEEP_MESSAGE_LENGTH = 200

# Sweep parameter space
WINDOW_SIZES = [1, 2, 4, 8, 16, 32]
LOSS_PROBABILITIES = [0.0, 0.1, 0.2, 0.3, 0.4, 0.5]
RUNS_PER_CONFIGURATION = 5

# Logging verbosity levels
LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

DEFAULT_LOG_LEVEL = LOG_LEVEL_INFO

# =============================================================================
# OUTPUT PATHS
# =============================================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, "data")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
PLOTS_DIR = os.path.join(OUTPUT_DIR, "plots")

RESULTS_CSV = os.path.join(OUTPUT_DIR, "results.csv")


def expected_transmissions(loss_probability):
    """
    Expected transmissions per packet when both DATA and ACK see loss p.
    A round trip survives with probability (1 - p)^2.
    """
    success = (1.0 - loss_probability) ** 2
    if success <= 0:
        return float('inf')
    return 1.0 / success


# Print configuration summary
if __name__ == "__main__":
    print("=" * 60)
    print("SELECTIVE REPEAT NODE - CONFIGURATION")
    print("=" * 60)
    print(f"\nNetwork:")
    print(f"  Host: {DEFAULT_HOST}")
    print(f"  Receive buffer: {RECEIVE_BUFFER_SIZE} bytes")
    print(f"  Segment size: {DEFAULT_SEGMENT_SIZE} chars")

    print(f"\nSweep:")
    print(f"  Window Sizes: {WINDOW_SIZES}")
    print(f"  Loss Probabilities: {LOSS_PROBABILITIES}")
    print(f"  Runs per config: {RUNS_PER_CONFIGURATION}")

    print(f"\nExpected transmissions per packet:")
    for p in LOSS_PROBABILITIES:
        print(f"  p={p:.1f}: {expected_transmissions(p):.2f}")
