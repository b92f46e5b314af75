"""
bfsynth: Genetic programming over an 8-instruction tape language.

This package implements a loop-limited interpreter that runs any string as a
program, together with a generational evolutionary loop that treats raw
instruction strings as genomes.
"""

from .tape import Tape
from .core import Interpreter, InterpreterState, Success, Failure, LoopLimitExceeded, run
from .synthesis import random_program, normalize_program
from .mutation import mutate_code, crossover_code
from .evolve import (
    Individual, Population, EvolutionEngine, evaluate_individual, crossover, mutate,
    random_population, evaluate_population, evaluate_concurrently, selector, next_generation
)
from .metrics import PopulationStatistics, compute

__version__ = "0.1.0"
__all__ = [
    "Tape", "Interpreter", "InterpreterState", "Success", "Failure", "LoopLimitExceeded", "run",
    "random_program", "normalize_program", "mutate_code", "crossover_code",
    "Individual", "Population", "EvolutionEngine", "evaluate_individual", "crossover", "mutate",
    "random_population", "evaluate_population", "evaluate_concurrently", "selector",
    "next_generation", "PopulationStatistics", "compute"
]
