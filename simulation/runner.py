"""
Batch Runner for Parameter Sweep Simulations

This module runs the simulator over every (window size, loss probability)
pair, several seeded runs each, and collects the results in a pandas
DataFrame.
"""

import os
import time
from typing import Optional, Callable, List, Dict
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import multiprocessing

import pandas as pd
from tqdm import tqdm

from config import (
    WINDOW_SIZES, LOSS_PROBABILITIES, RUNS_PER_CONFIGURATION,
    RNG_SEED_BASE, OUTPUT_DIR, RESULTS_CSV, SWEEP_MESSAGE_LENGTH
)
from simulation.simulator import Simulator, SimulatorConfig, generate_message
from srnode.utils.logger import LogLevel

# Columns averaged per (window, loss) pair
AGGREGATED_METRICS = ['efficiency', 'goodput', 'transmissions', 'retransmissions',
                      'timeouts', 'dropped_data', 'dropped_acks', 'total_time']


@dataclass
class RunConfig:
    """Configuration for a single simulation run."""
    window_size: int
    loss_probability: float
    run_id: int
    seed: int
    message_length: int
    timeout: float = 0.1
    loss_model: str = "bernoulli"


def run_single_simulation(run_config: RunConfig) -> Dict:
    """
    Run a single simulation with given configuration.

    This function is designed to be called in a separate process.

    Args:
        run_config: Configuration for this run

    Returns:
        Flat dictionary with results
    """
    row = {
        'window_size': run_config.window_size,
        'loss_probability': run_config.loss_probability,
        'run_id': run_config.run_id,
        'seed': run_config.seed,
    }

    try:
        config = SimulatorConfig(
            window_size=run_config.window_size,
            timeout=run_config.timeout,
            loss_probability=run_config.loss_probability,
            loss_model=run_config.loss_model,
            seed=run_config.seed,
            log_level=LogLevel.ERROR  # Minimal logging for batch runs
        )
        results = Simulator(config).run(generate_message(run_config.message_length))
    except Exception as e:
        row['error'] = str(e)
        return row

    metrics = results['metrics']
    row.update({
        'efficiency': metrics['efficiency'],
        'goodput': metrics['goodput'],
        'transmissions': metrics['transmissions'],
        'retransmissions': metrics['retransmissions'],
        'retransmission_rate': metrics['retransmission_rate'],
        'timeouts': metrics['timeouts'],
        'acks_sent': metrics['acks_sent'],
        'acks_received': metrics['acks_received'],
        'data_discarded': metrics['data_discarded'],
        'dropped_data': metrics['dropped_data'],
        'dropped_acks': metrics['dropped_acks'],
        'total_time': results['simulation_time'],
        'data_valid': results['valid'],
        'complete': results['complete'],
        'error': None
    })
    return row


class BatchRunner:
    """
    Batch Runner for parameter sweep simulations.

    Executes all (W, p) combinations with multiple runs each.

    Attributes:
        window_sizes: List of window sizes to test
        loss_probabilities: List of loss probabilities to test
        runs_per_config: Number of runs per configuration
        message_length: Characters transferred per run
    """

    def __init__(
        self,
        window_sizes: Optional[List[int]] = None,
        loss_probabilities: Optional[List[float]] = None,
        runs_per_config: int = RUNS_PER_CONFIGURATION,
        message_length: int = SWEEP_MESSAGE_LENGTH,
        timeout: float = 0.1,
        loss_model: str = "bernoulli",
        output_file: str = RESULTS_CSV,
        on_progress: Optional[Callable[[int, int, dict], None]] = None,
        show_progress: bool = False
    ):
        """
        Initialize batch runner.

        Args:
            window_sizes: List of window sizes (default from config)
            loss_probabilities: List of loss probabilities (default from config)
            runs_per_config: Number of runs per (W, p) pair
            message_length: Characters transferred per run
            timeout: Retransmission timeout in seconds
            loss_model: Loss model name
            output_file: Path to output CSV file
            on_progress: Callback for progress updates
            show_progress: Draw a tqdm progress bar on stderr
        """
        self.window_sizes = window_sizes or WINDOW_SIZES
        self.loss_probabilities = (loss_probabilities if loss_probabilities is not None
                                   else LOSS_PROBABILITIES)
        self.runs_per_config = runs_per_config
        self.message_length = message_length
        self.timeout = timeout
        self.loss_model = loss_model
        self.output_file = output_file
        self.on_progress = on_progress
        self.show_progress = show_progress

        # Results storage
        self.results: List[Dict] = []

        # Progress tracking
        self.total_runs = (len(self.window_sizes) *
                           len(self.loss_probabilities) *
                           self.runs_per_config)
        self.completed_runs = 0
        self.start_time = 0.0

    def _generate_run_configs(self) -> List[RunConfig]:
        """Generate all run configurations."""
        configs = []

        for window_size in self.window_sizes:
            for loss_index, loss_probability in enumerate(self.loss_probabilities):
                for run_id in range(self.runs_per_config):
                    # Unique seed for each run
                    seed = (RNG_SEED_BASE +
                            window_size * 1000 +
                            loss_index * 100 +
                            run_id * 10000)

                    configs.append(RunConfig(
                        window_size=window_size,
                        loss_probability=loss_probability,
                        run_id=run_id,
                        seed=seed,
                        message_length=self.message_length,
                        timeout=self.timeout,
                        loss_model=self.loss_model
                    ))

        return configs

    def _record(self, result: Dict):
        self.results.append(result)
        self.completed_runs += 1
        if self.on_progress:
            self.on_progress(self.completed_runs, self.total_runs, result)

    def run_sequential(self) -> List[Dict]:
        """
        Run all simulations sequentially.

        Returns:
            List of result dictionaries
        """
        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        for config in tqdm(configs, desc="Simulations", disable=not self.show_progress):
            self._record(run_single_simulation(config))

        return self.results

    def run_parallel(self, max_workers: Optional[int] = None) -> List[Dict]:
        """
        Run simulations in parallel using multiprocessing.

        Args:
            max_workers: Number of parallel workers (default: CPU count)

        Returns:
            List of result dictionaries, in completion order
        """
        if max_workers is None:
            max_workers = multiprocessing.cpu_count()

        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(run_single_simulation, config) for config in configs]
            iterator = tqdm(as_completed(futures), total=len(futures),
                            desc="Simulations", disable=not self.show_progress)
            for future in iterator:
                self._record(future.result())

        return self.results

    def to_dataframe(self) -> pd.DataFrame:
        """Results as a DataFrame sorted by (window, loss, run)."""
        if not self.results:
            return pd.DataFrame()
        df = pd.DataFrame(self.results)
        return df.sort_values(['window_size', 'loss_probability', 'run_id']).reset_index(drop=True)

    def save_results(self, filepath: Optional[str] = None) -> Optional[str]:
        """
        Save results to CSV file.

        Args:
            filepath: Output file path (default: self.output_file)

        Returns:
            The path written, or None if there was nothing to save
        """
        filepath = filepath or self.output_file
        if not self.results:
            return None

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.to_dataframe().to_csv(filepath, index=False)
        return filepath

    def get_aggregated_results(self) -> pd.DataFrame:
        """
        Mean and standard deviation of each metric by (W, p) pair.

        Failed runs are left out.

        Returns:
            DataFrame with one row per pair and <metric>_mean / <metric>_std columns
        """
        df = self.to_dataframe()
        if df.empty:
            return df
        if 'error' in df.columns:
            df = df[df['error'].isna()]
        if df.empty:
            return df

        grouped = df.groupby(['window_size', 'loss_probability'])[AGGREGATED_METRICS]
        aggregated = grouped.agg(['mean', 'std'])
        aggregated.columns = [f"{metric}_{stat}" for metric, stat in aggregated.columns]
        aggregated['runs'] = grouped.size()
        return aggregated.fillna(0.0).reset_index()

    def get_optimal_configuration(self, loss_probability: Optional[float] = None) -> Dict:
        """
        Find the window size with the best mean efficiency.

        Args:
            loss_probability: Restrict the search to one loss probability

        Returns:
            Dictionary with optimal configuration info
        """
        aggregated = self.get_aggregated_results()
        if loss_probability is not None and not aggregated.empty:
            aggregated = aggregated[aggregated['loss_probability'] == loss_probability]

        if aggregated.empty:
            return {'error': 'No results available'}

        best = aggregated.loc[aggregated['efficiency_mean'].idxmax()]
        return {
            'optimal_window_size': int(best['window_size']),
            'loss_probability': float(best['loss_probability']),
            'mean_efficiency': float(best['efficiency_mean']),
            'efficiency_std': float(best['efficiency_std']),
            'mean_goodput': float(best['goodput_mean']),
            'mean_retransmissions': float(best['retransmissions_mean'])
        }


if __name__ == "__main__":
    # Test batch runner with small parameter space
    print("=" * 60)
    print("BATCH RUNNER TEST")
    print("=" * 60)

    runner = BatchRunner(
        window_sizes=[2, 8],
        loss_probabilities=[0.0, 0.2],
        runs_per_config=2,
        message_length=50,
        output_file=os.path.join(OUTPUT_DIR, "test_results.csv")
    )

    print(f"\nTotal runs: {runner.total_runs}")
    runner.run_sequential()
    print(f"Results saved to: {runner.save_results()}")

    print("\nAggregated results:")
    print(runner.get_aggregated_results()[['window_size', 'loss_probability', 'efficiency_mean']])

    optimal = runner.get_optimal_configuration()
    print(f"\nOptimal window size: {optimal['optimal_window_size']} "
          f"(efficiency {optimal['mean_efficiency'] * 100:.1f}%)")
