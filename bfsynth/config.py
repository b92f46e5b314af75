"""
bfsynth Configuration

This module provides configuration settings for the interpreter loop limit,
random program synthesis, and the evolutionary loop.
"""

import logging
from dataclasses import dataclass
from typing import Optional


@dataclass
class InterpreterConfig:
    """Configuration for the tape interpreter."""
    loop_limit: int = 10000


@dataclass
class SynthesisConfig:
    """Configuration for random program generation."""
    mean_length: float = 20.0
    wrap_probability: float = 0.05


@dataclass
class EvolutionConfig:
    """Configuration for populations and generational advance."""
    population_size: int = 100
    mutation_rate: float = 0.01
    elite_fraction: float = 0.2
    max_workers: Optional[int] = None
    poll_timeout: float = 1.0


@dataclass
class BFSynthConfig:
    """Main configuration for the bfsynth system."""
    interpreter: InterpreterConfig = None
    synthesis: SynthesisConfig = None
    evolution: EvolutionConfig = None
    log_level: str = "INFO"

    def __post_init__(self):
        if self.interpreter is None:
            self.interpreter = InterpreterConfig()
        if self.synthesis is None:
            self.synthesis = SynthesisConfig()
        if self.evolution is None:
            self.evolution = EvolutionConfig()


# Global configuration instance
_config: Optional[BFSynthConfig] = None


def get_config() -> BFSynthConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = BFSynthConfig()
    return _config


def set_config(config: Optional[BFSynthConfig]) -> None:
    """Set the global configuration instance (None restores the defaults)."""
    global _config
    _config = config


def setup_logging(level: str = "INFO") -> None:
    """Setup logging for bfsynth."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

