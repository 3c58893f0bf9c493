"""
Simulation package - Virtual-time simulator and batch runner.

Contains:
- Event-driven simulator of one sender/receiver pair
- Batch runner for window size x loss probability sweeps
"""

from .simulator import Simulator, SimulatorConfig, generate_message
from .runner import BatchRunner, RunConfig, run_single_simulation

__all__ = [
    'Simulator',
    'SimulatorConfig',
    'generate_message',
    'BatchRunner',
    'RunConfig',
    'run_single_simulation'
]
