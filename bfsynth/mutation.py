"""
bfsynth Mutation Engine

This module implements the string-level genetic operators: per-character
flip mutation and two-point tail-swapping crossover. Both operate on the raw
genome, junk DNA included, and neither can produce an unrunnable program
since every string is a valid program.
"""

from typing import Tuple
import random

# Each instruction's mutation partner
FLIP_PAIRS = {
    '<': '>', '>': '<',
    '+': '-', '-': '+',
    '[': ']', ']': '[',
    ',': '.', '.': ',',
}


def flip(ch: str) -> str:
    """Return the flip partner of an instruction, or the character itself."""
    return FLIP_PAIRS.get(ch, ch)


def _flip_count(rate: float, rng: random.Random) -> int:
    """Draw until a draw fails; every success is one flip."""
    flips = 0
    while rng.random() < rate:
        flips += 1
        if rate >= 1.0:
            # Certain success would never terminate
            break
    return flips


def mutate_code(code: str, rate: float, rng: random.Random) -> str:
    """
    Flip-mutate every character independently.

    For each character, draws repeat while they succeed with probability
    `rate`, flipping the character each time; an even number of flips
    restores it. Characters outside the instruction set are drawn for but
    never change. A rate of 1 flips every instruction exactly once.

    Args:
        code: Genome to mutate
        rate: Per-draw success probability in [0, 1]
        rng: Random number generator

    Returns:
        The mutated genome, same length as code
    """
    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"Mutation rate must be in [0, 1], got {rate}")

    mutated = []
    for ch in code:
        if _flip_count(rate, rng) % 2:
            ch = flip(ch)
        mutated.append(ch)
    return ''.join(mutated)


def crossover_code(a: str, b: str, rng: random.Random) -> Tuple[str, str]:
    """
    Swap tails of two genomes at independent cut points.

    Each cut is uniform over [0, len] inclusive, so a cut at either end
    hands a whole parent to one side.

    Returns:
        (a[:cut_a] + b[cut_b:], b[:cut_b] + a[cut_a:])
    """
    cut_a = rng.randint(0, len(a))
    cut_b = rng.randint(0, len(b))
    return a[:cut_a] + b[cut_b:], b[:cut_b] + a[cut_a:]
