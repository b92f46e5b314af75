"""
bfsynth Fitness Functions

Factories for the `(result) -> float` functions handed to population
evaluation. Higher is better; a Failure is scored, never raised.
"""

from typing import Callable, Union

from .core import InterpreterResult

FitnessFunction = Callable[[InterpreterResult], float]

DEFAULT_LENGTH_PENALTY_ALPHA = 0.05


def _as_target(target: Union[str, bytes]) -> bytes:
    if isinstance(target, str):
        return target.encode('latin-1')
    return bytes(target)


def byte_distance(a: int, b: int) -> int:
    """Circular distance between two byte values (0-128)."""
    d = abs(a - b) % 256
    return min(d, 256 - d)


def target_output_fitness(target: Union[str, bytes],
                          failure_score: float = 0.0) -> FitnessFunction:
    """
    Score output by closeness to a target.

    Each target position contributes up to 1.0, less the normalized circular
    byte distance of the produced byte; missing positions and surplus output
    bytes each cost a full point. The result is normalized into [0, 1].

    Args:
        target: Desired output
        failure_score: Score for a run that hit the loop limit
    """
    expected = _as_target(target)

    def fitness(result: InterpreterResult) -> float:
        if not result.ok:
            return failure_score
        output = result.output
        if not expected:
            return 1.0 / (1.0 + len(output))

        score = 0.0
        for i, want in enumerate(expected):
            if i < len(output):
                score += 1.0 - byte_distance(output[i], want) / 128.0
        surplus = max(0, len(output) - len(expected))
        return max(0.0, score - surplus) / len(expected)

    return fitness


def exact_match_fitness(target: Union[str, bytes],
                        failure_score: float = 0.0) -> FitnessFunction:
    """Fraction of target positions reproduced exactly."""
    expected = _as_target(target)

    def fitness(result: InterpreterResult) -> float:
        if not result.ok:
            return failure_score
        if not expected:
            return 1.0 if not result.output else 0.0
        hits = sum(1 for got, want in zip(result.output, expected) if got == want)
        return hits / len(expected)

    return fitness


def length_penalty(code: str, alpha: float = DEFAULT_LENGTH_PENALTY_ALPHA) -> float:
    """
    Smooth program-length penalty, in [0, alpha).

    Subtract it from a score to prefer shorter programs. Returns 0.0 when
    alpha is not positive.
    """
    if alpha <= 0.0:
        return 0.0
    return alpha * (len(code) / (len(code) + 32.0))
