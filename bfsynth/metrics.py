"""
bfsynth Population Statistics

Pure per-generation aggregates over fitness values.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable

import numpy as np


@dataclass(frozen=True)
class PopulationStatistics:
    """Fitness aggregates for one generation."""
    mean: float
    median: float
    min: float
    max: float
    count: int

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def _fitness_values(source) -> np.ndarray:
    """Collect evaluated fitness values from a population or plain numbers."""
    values = []
    for item in source:
        fitness = getattr(item, 'fitness', item)
        if fitness is not None:
            values.append(float(fitness))
    return np.asarray(values, dtype=float)


def compute(source: Iterable) -> PopulationStatistics:
    """
    Compute fitness statistics.

    Args:
        source: A Population, an iterable of Individuals, or an iterable of
            fitness values. Unevaluated individuals are skipped.

    Returns:
        PopulationStatistics with arithmetic mean, median (average of the two
        middle values for an even count), min and max

    Raises:
        ValueError: If there are no fitness values
    """
    values = _fitness_values(source)
    if values.size == 0:
        raise ValueError("Cannot compute statistics without fitness values")

    return PopulationStatistics(
        mean=float(np.sum(values) / values.size),
        median=float(np.median(values)),
        min=float(np.min(values)),
        max=float(np.max(values)),
        count=int(values.size),
    )


def format_statistics(stats: PopulationStatistics) -> str:
    """Format statistics as a single log line."""
    return (f"F_mean={stats.mean:.4f}, F_med={stats.median:.4f}, "
            f"F_min={stats.min:.4f}, F_max={stats.max:.4f}, n={stats.count}")
