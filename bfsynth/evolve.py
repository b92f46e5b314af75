"""
bfsynth Evolution System

This module implements the generational genetic-programming loop:
fitness-proportionate selection with a continuing circular cursor,
tail-swapping crossover, flip mutation and fitness-weighted elitism.
Programs are raw instruction strings; they are normalized only when run.
"""

import logging
import math
import random
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import get_config
from .core import Interpreter, InputData, as_input
from .fitness import FitnessFunction
from .metrics import PopulationStatistics, compute, format_statistics
from .mutation import crossover_code, mutate_code
from .synthesis import normalize_program, random_program

logger = logging.getLogger(__name__)


@dataclass
class Individual:
    """A genome and its fitness; fitness is None until evaluated."""
    code: str
    fitness: Optional[float] = None
    generation: int = 0

    @property
    def evaluated(self) -> bool:
        return self.fitness is not None

    def size(self) -> int:
        """Return the genome length, junk DNA included."""
        return len(self.code)

    def __lt__(self, other):
        """Comparison for sorting. Higher fitness first, unevaluated last, then shorter code."""
        if self.fitness is None or other.fitness is None:
            if self.fitness is None and other.fitness is None:
                return self.size() < other.size()
            return other.fitness is None
        if abs(self.fitness - other.fitness) < 1e-9:
            return self.size() < other.size()
        return self.fitness > other.fitness


@dataclass
class Population:
    """One generation of individuals, in a significant order."""
    individuals: List[Individual]
    generation: int = 0
    mutation_rate: float = field(default_factory=lambda: get_config().evolution.mutation_rate)

    def __post_init__(self):
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError(f"Mutation rate must be in [0, 1], got {self.mutation_rate}")

    def __len__(self) -> int:
        return len(self.individuals)

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.individuals)

    def __getitem__(self, index: int) -> Individual:
        return self.individuals[index]

    @property
    def size(self) -> int:
        return len(self.individuals)

    def fitnesses(self) -> List[Optional[float]]:
        return [ind.fitness for ind in self.individuals]

    def is_evaluated(self) -> bool:
        return all(ind.evaluated for ind in self.individuals)

    def best(self) -> Optional[Individual]:
        """Highest-fitness evaluated individual, or None."""
        evaluated = [ind for ind in self.individuals if ind.evaluated]
        return min(evaluated) if evaluated else None

    def with_individuals(self, individuals: List[Individual]) -> 'Population':
        """Same generation and mutation rate, different members."""
        return Population(individuals, generation=self.generation,
                          mutation_rate=self.mutation_rate)


def score_program(code: str, input_data: bytes, fitness_fn: FitnessFunction,
                  loop_limit: Optional[int] = None) -> float:
    """
    Run the normalized program and score the terminal result.

    Both Success and Failure are handed to the fitness function.
    """
    result = Interpreter(loop_limit=loop_limit).run(normalize_program(code), input_data)
    if not result.ok:
        logger.debug(f"Program failed ({result.reason}): {code!r}")
    return float(fitness_fn(result))


def evaluate_individual(individual: Individual, input_data: Optional[InputData],
                        fitness_fn: FitnessFunction, loop_limit: Optional[int] = None,
                        force: bool = False) -> Individual:
    """
    Evaluate an individual's fitness, at most once.

    Args:
        individual: Individual to evaluate
        input_data: Interpreter input
        fitness_fn: Maps the interpreter result to a score (higher is better)
        loop_limit: Per-loop iteration limit (configured default if omitted)
        force: Re-evaluate even if a fitness is already set

    Returns:
        The same individual, with fitness set
    """
    if individual.evaluated and not force:
        return individual

    individual.fitness = score_program(individual.code, as_input(input_data),
                                       fitness_fn, loop_limit)
    logger.debug(f"Evaluated {individual.code!r}: F={individual.fitness:.6f}")
    return individual


def mutate(individual: Individual, rate: float,
           rng: Optional[random.Random] = None) -> Individual:
    """Return an unevaluated, flip-mutated copy of an individual."""
    rng = rng or random.Random()
    return Individual(code=mutate_code(individual.code, rate, rng),
                      generation=individual.generation)


def crossover(parent_a: Individual, parent_b: Individual, mutation_rate: float,
              rng: Optional[random.Random] = None,
              generation: Optional[int] = None) -> Tuple[Individual, Individual]:
    """
    Recombine two parents and mutate both children.

    Cut points are drawn independently on the raw genomes; children start
    unevaluated.

    Returns:
        (prefix(A) + suffix(B), prefix(B) + suffix(A)), each mutated
    """
    rng = rng or random.Random()
    if generation is None:
        generation = max(parent_a.generation, parent_b.generation) + 1

    code_a, code_b = crossover_code(parent_a.code, parent_b.code, rng)
    child_a = mutate(Individual(code_a, generation=generation), mutation_rate, rng)
    child_b = mutate(Individual(code_b, generation=generation), mutation_rate, rng)
    return child_a, child_b


def random_population(size: int, mutation_rate: Optional[float] = None,
                      rng: Optional[random.Random] = None,
                      mean_length: Optional[float] = None) -> Population:
    """
    Create a generation-0 population of random, unevaluated programs.

    Args:
        size: Number of individuals
        mutation_rate: Per-character rate used when breeding from this population
        rng: Random number generator
        mean_length: Expected program length (configured default if omitted)
    """
    if size <= 0:
        raise ValueError(f"Population size must be positive, got {size}")
    if mutation_rate is None:
        mutation_rate = get_config().evolution.mutation_rate
    rng = rng or random.Random()

    individuals = [Individual(random_program(rng, mean_length=mean_length))
                   for _ in range(size)]
    return Population(individuals, generation=0, mutation_rate=mutation_rate)


def evaluate_population(population: Population, input_data: Optional[InputData],
                        fitness_fn: FitnessFunction,
                        loop_limit: Optional[int] = None) -> Population:
    """Evaluate every member in order. Already-evaluated members are kept as is."""
    data = as_input(input_data)
    for individual in population:
        evaluate_individual(individual, data, fitness_fn, loop_limit)
    return population.with_individuals(list(population.individuals))


def evaluate_concurrently(population: Population, input_data: Optional[InputData],
                          fitness_fn: FitnessFunction,
                          loop_limit: Optional[int] = None,
                          max_workers: Optional[int] = None,
                          poll_timeout: Optional[float] = None,
                          executor: Optional[Executor] = None) -> Population:
    """
    Evaluate unevaluated members on a worker pool.

    One task is submitted per unevaluated individual. Completed work is
    collected in polling cycles of at most poll_timeout seconds; tasks still
    pending after a cycle stay pending and are collected by a later cycle.
    Scores are written back by original index, so member order never depends
    on completion order.

    Args:
        population: Population to evaluate
        input_data: Interpreter input shared by every task
        fitness_fn: Pure scoring function shared by every task
        loop_limit: Per-loop iteration limit
        max_workers: Pool size when no executor is given
        poll_timeout: Seconds per polling cycle
        executor: Optional caller-owned executor (left running); a process pool
            needs a picklable, module-level fitness_fn

    Returns:
        Population with the same order, generation and mutation rate
    """
    evolution = get_config().evolution
    if max_workers is None:
        max_workers = evolution.max_workers
    if poll_timeout is None:
        poll_timeout = evolution.poll_timeout

    data = as_input(input_data)
    todo = [(i, ind) for i, ind in enumerate(population) if not ind.evaluated]
    if not todo:
        return population.with_individuals(list(population.individuals))

    own_executor = executor is None
    if own_executor:
        executor = ThreadPoolExecutor(max_workers=max_workers)

    try:
        futures = {executor.submit(score_program, ind.code, data, fitness_fn, loop_limit): i
                   for i, ind in todo}
        scores: Dict[int, float] = {}
        pending = set(futures)
        cycle = 0

        while pending:
            done, pending = wait(pending, timeout=poll_timeout)
            for future in done:
                scores[futures[future]] = future.result()
            cycle += 1
            if pending:
                logger.debug(f"Polling cycle {cycle}: {len(pending)}/{len(futures)} evaluations pending")
    finally:
        if own_executor:
            executor.shutdown(wait=True)

    individuals = list(population.individuals)
    for i, score in scores.items():
        individuals[i].fitness = score

    logger.debug(f"Evaluated {len(scores)} individuals in {cycle} polling cycles")
    return population.with_individuals(individuals)


class FitnessProportionateSelector:
    """
    Infinite fitness-proportionate selection stream over one population.

    The total fitness is computed once. Each draw picks a distance uniformly
    in (0, total] and walks the individuals circularly from the cursor,
    subtracting fitness until the remaining distance fits inside the visited
    individual; the cursor is then left just past the pick, so successive
    draws continue around the circle instead of restarting at the front.

    Negative fitness counts as zero weight. When the total weight is not
    positive every draw is a uniform random pick.
    """

    def __init__(self, population: Sequence[Individual], rng: Optional[random.Random] = None):
        self.individuals = list(population)
        if not self.individuals:
            raise ValueError("Cannot select from an empty population")
        if not all(ind.evaluated for ind in self.individuals):
            raise ValueError("Cannot select from a population with unevaluated individuals")

        self.rng = rng or random.Random()
        self.weights = [max(ind.fitness, 0.0) for ind in self.individuals]
        self.total = sum(self.weights)
        self.cursor = 0

        if not self.total > 0:
            logger.warning(f"Total fitness is {self.total}; falling back to uniform selection")

    def __iter__(self) -> 'FitnessProportionateSelector':
        return self

    def __next__(self) -> Individual:
        return self.draw()

    def draw(self) -> Individual:
        """Select the next individual."""
        n = len(self.individuals)

        if not self.total > 0:
            index = self.rng.randrange(n)
        else:
            distance = self.total * (1.0 - self.rng.random())
            index = self.cursor
            while distance > self.weights[index]:
                distance -= self.weights[index]
                index = (index + 1) % n

        self.cursor = (index + 1) % n
        return self.individuals[index]


def selector(population: Sequence[Individual],
             rng: Optional[random.Random] = None) -> FitnessProportionateSelector:
    """Start a fresh selection stream over an evaluated population."""
    return FitnessProportionateSelector(population, rng)


def next_generation(population: Population, rng: Optional[random.Random] = None,
                    elite_fraction: Optional[float] = None) -> Population:
    """
    Breed the next generation.

    floor(size * elite_fraction) elites are drawn from the selection stream
    and copied unchanged, fitness included. The same stream then supplies
    parent pairs whose mutated crossover children are appended until the
    population is full; when the number of children needed is odd the new
    population ends up one larger.

    Args:
        population: Fully evaluated population
        rng: Random number generator
        elite_fraction: Share of the population carried over, in [0, 1]

    Returns:
        New population with the generation counter incremented
    """
    if elite_fraction is None:
        elite_fraction = get_config().evolution.elite_fraction
    if not 0.0 <= elite_fraction <= 1.0:
        raise ValueError(f"Elite fraction must be in [0, 1], got {elite_fraction}")
    rng = rng or random.Random()

    size = len(population)
    elite_count = int(math.floor(size * elite_fraction))
    generation = population.generation + 1
    parents = selector(population, rng)

    individuals = [replace(next(parents)) for _ in range(elite_count)]
    while len(individuals) < size:
        parent_a, parent_b = next(parents), next(parents)
        individuals.extend(crossover(parent_a, parent_b, population.mutation_rate,
                                     rng, generation=generation))

    return Population(individuals, generation=generation,
                      mutation_rate=population.mutation_rate)


class EvolutionEngine:
    """
    Generational genetic programming over tape-language programs.

    The algorithm:
    1. Evaluate every unevaluated individual on the shared input
    2. Record population statistics and the best individual so far
    3. Carry fitness-weighted elites over unchanged
    4. Fill the rest with mutated crossover children of selected parents
    """

    def __init__(self, fitness_fn: FitnessFunction, input_data: Optional[InputData] = None,
                 population_size: Optional[int] = None, mutation_rate: Optional[float] = None,
                 elite_fraction: Optional[float] = None, loop_limit: Optional[int] = None,
                 mean_length: Optional[float] = None, concurrent: bool = False,
                 max_workers: Optional[int] = None, seed: Optional[int] = None):
        """
        Initialize the evolution engine.

        Args:
            fitness_fn: Maps interpreter results to scores (higher is better)
            input_data: Input given to every program
            population_size: Individuals per generation
            mutation_rate: Per-character flip rate for children
            elite_fraction: Share of each generation carried over unchanged
            loop_limit: Per-loop iteration limit for evaluation
            mean_length: Expected length of initial random programs
            concurrent: Evaluate on a worker pool instead of sequentially
            max_workers: Worker pool size
            seed: Random seed for reproducibility
        """
        evolution = get_config().evolution
        self.fitness_fn = fitness_fn
        self.input_data = as_input(input_data)
        self.population_size = population_size if population_size is not None else evolution.population_size
        self.mutation_rate = mutation_rate if mutation_rate is not None else evolution.mutation_rate
        if self.population_size <= 0:
            raise ValueError(f"Population size must be positive, got {self.population_size}")
        self.elite_fraction = elite_fraction if elite_fraction is not None else evolution.elite_fraction
        self.loop_limit = loop_limit
        self.mean_length = mean_length
        self.concurrent = concurrent
        self.max_workers = max_workers

        # Set up random number generator
        self.rng = random.Random(seed)

        # Evolution state
        self.population: Optional[Population] = None
        self.best_individual: Optional[Individual] = None
        self.history: List[PopulationStatistics] = []

        # Statistics
        self.total_evaluations = 0

        logger.info(f"Initialized evolution engine: size={self.population_size}, "
                    f"mutation_rate={self.mutation_rate}, elite_fraction={self.elite_fraction}")

    @property
    def generation(self) -> int:
        return self.population.generation if self.population is not None else 0

    def initialize_population(self, initial_programs: Optional[Sequence[str]] = None) -> None:
        """
        Initialize the population, from seed programs if given, topped up
        with random programs.
        """
        seeds = list(initial_programs or [])[:self.population_size]
        individuals = [Individual(code) for code in seeds]
        individuals += [Individual(random_program(self.rng, mean_length=self.mean_length))
                        for _ in range(self.population_size - len(seeds))]
        self.population = Population(individuals, generation=0, mutation_rate=self.mutation_rate)

        logger.info(f"Initialized population with {len(self.population)} individuals "
                    f"({len(seeds)} seeded)")

    def evaluate(self) -> PopulationStatistics:
        """Evaluate the current population and record its statistics."""
        if self.population is None:
            self.initialize_population()

        self.total_evaluations += sum(1 for ind in self.population if not ind.evaluated)
        if self.concurrent:
            self.population = evaluate_concurrently(self.population, self.input_data,
                                                    self.fitness_fn, self.loop_limit,
                                                    max_workers=self.max_workers)
        else:
            self.population = evaluate_population(self.population, self.input_data,
                                                  self.fitness_fn, self.loop_limit)

        best = self.population.best()
        if best is not None and (self.best_individual is None or best < self.best_individual):
            self.best_individual = replace(best)

        stats = compute(self.population)
        self.history.append(stats)
        logger.info(f"Gen {self.generation}: {format_statistics(stats)}")
        return stats

    def advance(self) -> None:
        """Replace the evaluated population with the next generation."""
        self.population = next_generation(self.population, self.rng, self.elite_fraction)

    def run_evolution(self, num_generations: int, target_fitness: Optional[float] = None,
                      progress_callback: Optional[Callable[[int, PopulationStatistics], None]] = None
                      ) -> List[PopulationStatistics]:
        """
        Run evolution for up to num_generations generations.

        The final population is left evaluated.

        Args:
            num_generations: Number of generations to evaluate
            target_fitness: Stop early once the best fitness reaches this value
            progress_callback: Called with (generation, statistics) each generation

        Returns:
            List of per-generation statistics
        """
        logger.info(f"Starting evolution for {num_generations} generations")

        for gen in range(num_generations):
            stats = self.evaluate()

            if progress_callback:
                progress_callback(self.generation, stats)

            if target_fitness is not None and stats.max >= target_fitness:
                logger.info(f"Target fitness {target_fitness} reached at generation {self.generation}")
                break

            if gen < num_generations - 1:
                self.advance()

        logger.info(f"Evolution complete after {self.generation} generations")
        return self.history

    def get_best_individual(self) -> Optional[Individual]:
        """Get the best individual found so far."""
        return self.best_individual

    def get_population_summary(self) -> Dict:
        """Get summary statistics of current population."""
        if not self.population:
            return {}

        summary = {
            'population_size': len(self.population),
            'generation': self.generation,
            'mutation_rate': self.population.mutation_rate,
            'mean_size': sum(ind.size() for ind in self.population) / len(self.population),
        }
        if any(ind.evaluated for ind in self.population):
            summary.update(compute(self.population).as_dict())
        return summary
