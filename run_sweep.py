#!/usr/bin/env python3
"""
Selective Repeat Simulation - Sweep Entry Point

Runs the virtual-time simulator instead of real sockets. It provides
options for:
- Single simulation runs
- Window size x loss probability sweeps
- Heatmap generation from saved results

Usage:
    python run_sweep.py --single --window 8 --loss 0.2
    python run_sweep.py --sweep --runs 5 --parallel
    python run_sweep.py --visualize --csv results.csv
"""

import argparse
import os
import sys

from config import (
    WINDOW_SIZES, LOSS_PROBABILITIES, RUNS_PER_CONFIGURATION, RNG_SEED_BASE,
    SWEEP_MESSAGE_LENGTH, LOSS_MODELS, LOSS_MODEL_BERNOULLI, RESULTS_CSV, PLOTS_DIR,
    expected_transmissions
)


def run_single_simulation(args):
    """Run a single simulation with specified parameters."""
    from simulation.simulator import Simulator, SimulatorConfig, generate_message
    from srnode.utils.logger import LogLevel

    config = SimulatorConfig(
        window_size=args.window,
        timeout=args.timeout / 1000.0,
        loss_probability=args.loss,
        loss_model=args.loss_model,
        seed=args.seed,
        log_level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING,
        trace=args.trace
    )

    print("=" * 60)
    print("SELECTIVE REPEAT SIMULATION")
    print("=" * 60)
    print(f"\nConfiguration:")
    print(f"  Window size: {config.window_size}")
    print(f"  Timeout: {args.timeout} ms")
    print(f"  Loss: {config.loss_probability} ({config.loss_model})")
    print(f"  Message length: {args.length}")
    print(f"  Seed: {config.seed}")

    results = Simulator(config).run(generate_message(args.length))
    metrics = results['metrics']

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)
    print(f"  Complete: {results['complete']}")
    print(f"  Data valid: {results['valid']}")
    print(f"  Simulation time: {results['simulation_time']:.3f} s")
    print(f"  Transmissions: {metrics['transmissions']}")
    print(f"  Retransmissions: {metrics['retransmissions']}")
    print(f"  Discarded duplicates: {metrics['data_discarded']}")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")
    print(f"  Expected efficiency: {100 / expected_transmissions(config.loss_probability):.2f}%")

    return results


def run_parameter_sweep(args):
    """Run the window size x loss probability sweep."""
    from simulation.runner import BatchRunner

    print("=" * 60)
    print("PARAMETER SWEEP")
    print("=" * 60)

    if args.quick:
        window_sizes = [2, 8]
        loss_probabilities = [0.0, 0.2]
        runs = 2
    else:
        window_sizes = WINDOW_SIZES
        loss_probabilities = LOSS_PROBABILITIES
        runs = args.runs

    runner = BatchRunner(
        window_sizes=window_sizes,
        loss_probabilities=loss_probabilities,
        runs_per_config=runs,
        message_length=args.length,
        timeout=args.timeout / 1000.0,
        loss_model=args.loss_model,
        output_file=args.output or RESULTS_CSV,
        show_progress=True
    )

    print(f"\nConfiguration:")
    print(f"  Window sizes: {window_sizes}")
    print(f"  Loss probabilities: {loss_probabilities}")
    print(f"  Runs per config: {runs}")
    print(f"  Total simulations: {runner.total_runs}")

    if args.parallel:
        runner.run_parallel(max_workers=args.workers)
    else:
        runner.run_sequential()

    print(f"\nResults saved to: {runner.save_results()}")

    aggregated = runner.get_aggregated_results()
    if not aggregated.empty:
        table = aggregated.pivot(index='window_size', columns='loss_probability',
                                 values='efficiency_mean') * 100
        print("\nEFFICIENCY (%)")
        print(table.round(1).to_string())

    optimal = runner.get_optimal_configuration()
    if 'error' not in optimal:
        print("\n" + "=" * 60)
        print("BEST CONFIGURATION")
        print("=" * 60)
        print(f"  Window Size: {optimal['optimal_window_size']}")
        print(f"  Loss probability: {optimal['loss_probability']}")
        print(f"  Mean Efficiency: {optimal['mean_efficiency'] * 100:.2f}%")

    return runner


def generate_visualizations(args):
    """Generate heatmaps from a results CSV."""
    from visualization.heatmap import EfficiencyHeatmap

    csv_file = args.csv or RESULTS_CSV
    if not os.path.exists(csv_file):
        print(f"Error: Results file not found: {csv_file}", file=sys.stderr)
        print("Run a parameter sweep first: python run_sweep.py --sweep", file=sys.stderr)
        return None

    heatmap = EfficiencyHeatmap(csv_file=csv_file)
    os.makedirs(PLOTS_DIR, exist_ok=True)

    outputs = [
        heatmap.plot('efficiency', os.path.join(PLOTS_DIR, 'efficiency_heatmap.png'),
                     highlight_optimal=True),
        heatmap.plot('retransmissions', os.path.join(PLOTS_DIR, 'retransmissions_heatmap.png')),
    ]
    for output in outputs:
        print(f"Heatmap saved to: {output}")
    return outputs


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Selective Repeat ARQ simulation and parameter sweep",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Single simulation with protocol trace:
    python run_sweep.py --single --window 4 --loss 0.3 --trace

  Quick parameter sweep (for testing):
    python run_sweep.py --sweep --quick

  Parallel parameter sweep:
    python run_sweep.py --sweep --parallel --workers 4

  Generate heatmaps:
    python run_sweep.py --visualize
        """
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--single', action='store_true',
                      help='Run single simulation')
    mode.add_argument('--sweep', action='store_true',
                      help='Run parameter sweep')
    mode.add_argument('--visualize', action='store_true',
                      help='Generate heatmaps')

    # Single simulation options
    parser.add_argument('--window', '-w', type=int, default=8,
                        help='Window size (default: 8)')
    parser.add_argument('--loss', '-l', type=float, default=0.1,
                        help='Loss probability (default: 0.1)')
    parser.add_argument('--seed', '-s', type=int, default=RNG_SEED_BASE,
                        help=f'Random seed (default: {RNG_SEED_BASE})')
    parser.add_argument('--trace', action='store_true',
                        help='Print protocol trace lines')

    # Shared options
    parser.add_argument('--timeout', '-t', type=int, default=100,
                        help='Retransmission timeout in ms (default: 100)')
    parser.add_argument('--loss-model', choices=LOSS_MODELS, default=LOSS_MODEL_BERNOULLI,
                        help=f'Loss model (default: {LOSS_MODEL_BERNOULLI})')
    parser.add_argument('--length', type=int, default=SWEEP_MESSAGE_LENGTH,
                        help=f'Message length in characters (default: {SWEEP_MESSAGE_LENGTH})')

    # Parameter sweep options
    parser.add_argument('--runs', '-r', type=int, default=RUNS_PER_CONFIGURATION,
                        help=f'Runs per configuration (default: {RUNS_PER_CONFIGURATION})')
    parser.add_argument('--parallel', action='store_true',
                        help='Run simulations in parallel')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of parallel workers')
    parser.add_argument('--quick', action='store_true',
                        help='Quick test with reduced parameters')

    # Output options
    parser.add_argument('--output', '-o', type=str,
                        help='Output CSV path')
    parser.add_argument('--csv', type=str,
                        help='CSV file for visualization')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args(argv)

    if args.window <= 0:
        parser.error("--window must be positive")
    if args.timeout <= 0:
        parser.error("--timeout must be positive")
    if not 0.0 <= args.loss <= 1.0:
        parser.error("--loss must be in [0, 1]")

    if args.single:
        run_single_simulation(args)
    elif args.sweep:
        run_parameter_sweep(args)
    elif args.visualize:
        generate_visualizations(args)


if __name__ == "__main__":
    main()
