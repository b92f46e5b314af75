"""
bfsynth Program Synthesis

Random program generation and the execution-time normalization pass.
"""

import random
from typing import Optional

from .config import get_config
from .core import INSTRUCTIONS

# Adjacent pairs whose effects cancel out
CANCELLING_PAIRS = ("<>", "><", "+-", "-+")


def random_program(rng: Optional[random.Random] = None,
                   mean_length: Optional[float] = None,
                   wrap_probability: Optional[float] = None) -> str:
    """
    Generate a random program.

    At every step one of three things happens: generation stops, a uniformly
    chosen instruction is appended, or everything built so far is wrapped in
    a bracket pair. Stopping has probability 1 / (mean_length + 1), so the
    expected number of steps, and hence the length, is governed by
    mean_length alone.

    Args:
        rng: Random number generator (a fresh unseeded one if omitted)
        mean_length: Expected number of steps before stopping
        wrap_probability: Probability that a non-stopping step wraps

    Returns:
        The generated program text
    """
    synthesis = get_config().synthesis
    if rng is None:
        rng = random.Random()
    if mean_length is None:
        mean_length = synthesis.mean_length
    if wrap_probability is None:
        wrap_probability = synthesis.wrap_probability
    if mean_length < 0:
        raise ValueError(f"mean_length must be non-negative, got {mean_length}")

    stop_probability = 1.0 / (mean_length + 1.0)
    tokens = []

    while rng.random() >= stop_probability:
        if rng.random() < wrap_probability:
            tokens.insert(0, '[')
            tokens.append(']')
        else:
            tokens.append(rng.choice(INSTRUCTIONS))

    return ''.join(tokens)


def normalize_program(code: str) -> str:
    """
    Strip cancelling instruction pairs until none are left.

    Each pass scans left to right removing '<>', '><', '+-' and '-+'; passes
    repeat until one removes nothing. Only used right before execution so
    the stored genome keeps its junk DNA.
    """
    while True:
        kept = []
        i = 0
        removed = False
        while i < len(code):
            if code[i:i + 2] in CANCELLING_PAIRS:
                i += 2
                removed = True
            else:
                kept.append(code[i])
                i += 1
        code = ''.join(kept)
        if not removed:
            return code
