"""
Efficiency Heatmap Visualization

This module draws 2D heatmaps of a sweep metric as a function of window
size and loss probability, e.g. Efficiency = f(W, p).
"""

import os
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from config import PLOTS_DIR

METRIC_LABELS = {
    'efficiency': 'Efficiency (%)',
    'goodput': 'Goodput (chars/s)',
    'retransmissions': 'Retransmissions',
    'total_time': 'Transfer time (s)',
}


class EfficiencyHeatmap:
    """
    Generates 2D heatmaps of a metric over (W, p).

    Attributes:
        results: One row per simulation run
        window_sizes: Sorted window sizes present in the results
        loss_probabilities: Sorted loss probabilities present in the results
    """

    def __init__(
        self,
        results: Optional[List[Dict]] = None,
        csv_file: Optional[str] = None
    ):
        """
        Initialize heatmap generator.

        Args:
            results: List of result dictionaries (or a DataFrame)
            csv_file: Path to CSV file with results
        """
        if results is not None:
            self.results = pd.DataFrame(results)
        elif csv_file:
            self.results = pd.read_csv(csv_file)
        else:
            self.results = pd.DataFrame()

        if 'error' in self.results.columns:
            self.results = self.results[self.results['error'].isna()]

        if self.results.empty:
            self.window_sizes = []
            self.loss_probabilities = []
        else:
            self.window_sizes = sorted(self.results['window_size'].unique())
            self.loss_probabilities = sorted(self.results['loss_probability'].unique())

    def create_matrix(self, metric: str = 'efficiency') -> Tuple[np.ndarray, Tuple[int, int]]:
        """
        Mean of a metric for every (W, p) cell.

        Returns:
            Tuple of (matrix indexed [window, loss], indices of the maximum)
        """
        table = self.results.pivot_table(
            index='window_size', columns='loss_probability',
            values=metric, aggfunc='mean'
        ).reindex(index=self.window_sizes, columns=self.loss_probabilities)

        matrix = table.to_numpy(dtype=float)
        if np.all(np.isnan(matrix)):
            return matrix, (0, 0)
        max_idx = np.unravel_index(np.nanargmax(matrix), matrix.shape)
        return matrix, (int(max_idx[0]), int(max_idx[1]))

    def plot(
        self,
        metric: str = 'efficiency',
        output_file: Optional[str] = None,
        title: Optional[str] = None,
        figsize: Tuple[int, int] = (10, 7),
        cmap: str = "viridis",
        show_values: bool = True,
        highlight_optimal: bool = False
    ) -> str:
        """
        Generate and save heatmap.

        Args:
            metric: Result column to plot
            output_file: Output file path (auto-generated if None)
            title: Plot title
            figsize: Figure size (width, height)
            cmap: Colormap name
            show_values: Show values in cells
            highlight_optimal: Outline the best cell

        Returns:
            Path to saved figure
        """
        if self.results.empty:
            raise ValueError("No results to plot")
        if metric not in self.results.columns:
            raise ValueError(f"Unknown metric: {metric}")

        matrix, max_idx = self.create_matrix(metric)
        if metric == 'efficiency':
            matrix = matrix * 100

        # Larger W at the top
        matrix_display = np.flipud(matrix)
        window_sizes_display = list(reversed(self.window_sizes))
        max_idx = (len(self.window_sizes) - 1 - max_idx[0], max_idx[1])

        fig, ax = plt.subplots(figsize=figsize)

        im = ax.imshow(matrix_display, cmap=cmap, aspect='auto')
        cbar = plt.colorbar(im, ax=ax)
        cbar.set_label(METRIC_LABELS.get(metric, metric))

        ax.set_xticks(range(len(self.loss_probabilities)))
        ax.set_xticklabels([f"{p:g}" for p in self.loss_probabilities])
        ax.set_yticks(range(len(self.window_sizes)))
        ax.set_yticklabels(window_sizes_display)

        if show_values:
            threshold = np.nanmax(matrix_display) / 2
            for i in range(len(self.window_sizes)):
                for j in range(len(self.loss_probabilities)):
                    value = matrix_display[i, j]
                    if np.isnan(value):
                        continue
                    color = 'white' if value < threshold else 'black'
                    ax.text(j, i, f'{value:.1f}', ha='center', va='center',
                            color=color, fontsize=8)

        if highlight_optimal:
            opt_i, opt_j = max_idx
            ax.add_patch(plt.Rectangle(
                (opt_j - 0.5, opt_i - 0.5), 1, 1,
                fill=False, edgecolor='red', linewidth=3
            ))

        ax.set_xlabel('Loss probability', fontsize=12)
        ax.set_ylabel('Window Size', fontsize=12)
        ax.set_title(title or f"{METRIC_LABELS.get(metric, metric)} vs Window Size and Loss",
                     fontsize=14, fontweight='bold')

        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, f'{metric}_heatmap.png')
        else:
            directory = os.path.dirname(output_file)
            if directory:
                os.makedirs(directory, exist_ok=True)

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        return output_file
