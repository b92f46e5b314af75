#!/usr/bin/env python3
"""
Tests for the bfsynth Evolution System

These tests verify the genetic driver: memoized evaluation, crossover and
mutation of individuals, fitness-proportionate selection, elitism and the
generational loop.
"""

import random
import time
import unittest
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from bfsynth import *
from bfsynth.evolve import FitnessProportionateSelector
from bfsynth.fitness import target_output_fitness


def output_length(result):
    return float(len(result.output))


def evaluated_population(fitnesses, mutation_rate=0.0):
    individuals = [Individual(code="+" * (i + 1), fitness=f) for i, f in enumerate(fitnesses)]
    return Population(individuals, generation=3, mutation_rate=mutation_rate)


class TestIndividual(unittest.TestCase):
    """Test cases for Individual evaluation and genetic operators."""

    def setUp(self):
        """Set up test environment."""
        self.rng = random.Random(42)

    def test_individual_creation(self):
        """A new individual is unevaluated."""
        individual = Individual("+.")
        self.assertIsNone(individual.fitness)
        self.assertFalse(individual.evaluated)
        self.assertEqual(individual.size(), 2)

    def test_individual_comparison(self):
        """Higher fitness sorts first, unevaluated last, shorter breaks ties."""
        ind1 = Individual("+", 0.8)
        ind2 = Individual("+", 0.6)
        ind3 = Individual("++", 0.8)
        ind4 = Individual("+")
        self.assertLess(ind1, ind2)
        self.assertLess(ind1, ind3)
        self.assertLess(ind2, ind4)
        self.assertEqual(sorted([ind4, ind2, ind3, ind1]), [ind1, ind3, ind2, ind4])

    def test_evaluation_is_memoized(self):
        """A fitness is computed once unless forced."""
        calls = []

        def fitness_fn(result):
            calls.append(result)
            return 0.0

        individual = Individual("+.")
        evaluate_individual(individual, b"", fitness_fn)
        evaluate_individual(individual, b"", fitness_fn)
        self.assertEqual(len(calls), 1)

        # A genuine zero score is not mistaken for "unevaluated"
        self.assertEqual(individual.fitness, 0.0)
        self.assertTrue(individual.evaluated)

        evaluate_individual(individual, b"", fitness_fn, force=True)
        self.assertEqual(len(calls), 2)

    def test_evaluation_runs_normalized_code(self):
        """Junk DNA is stripped for the run but kept in the genome."""
        seen = []

        def fitness_fn(result):
            seen.append(result)
            return 1.0

        individual = evaluate_individual(Individual("+<>+-."), b"", fitness_fn)
        self.assertEqual(seen[0], Success([1]))
        self.assertEqual(individual.code, "+<>+-.")
        self.assertEqual(individual.fitness, 1.0)

    def test_failure_reaches_fitness_function(self):
        """A loop-limit failure is scored, not raised."""
        def fitness_fn(result):
            return 1.0 if result.ok else -1.0

        individual = evaluate_individual(Individual("+[]"), b"", fitness_fn, loop_limit=5)
        self.assertEqual(individual.fitness, -1.0)

    def test_mutate(self):
        """Mutation returns a new unevaluated individual."""
        parent = Individual("<+[.", 3.0)
        child = mutate(parent, 0.0, self.rng)
        self.assertIsNot(child, parent)
        self.assertEqual(child.code, parent.code)
        self.assertIsNone(child.fitness)

        self.assertEqual(mutate(parent, 1.0, self.rng).code, ">-],")

    def test_crossover(self):
        """Children are unevaluated and conserve total length."""
        a = Individual("++++++", 1.0, generation=2)
        b = Individual(",,,", 2.0, generation=4)
        for _ in range(50):
            child_a, child_b = crossover(a, b, 0.0, self.rng)
            self.assertIsNone(child_a.fitness)
            self.assertIsNone(child_b.fitness)
            self.assertEqual(child_a.size() + child_b.size(), 9)
            self.assertEqual(Counter(child_a.code + child_b.code), Counter(a.code + b.code))
            self.assertEqual(child_a.generation, 5)

    def test_crossover_mutates_children(self):
        """With rate 1 both children come out fully flipped."""
        a, b = Individual("++++"), Individual("<<<<")
        child_a, child_b = crossover(a, b, 1.0, self.rng)
        self.assertEqual(set(child_a.code + child_b.code) - {'-', '>'}, set())


class TestPopulation(unittest.TestCase):
    """Test cases for population creation and evaluation."""

    def setUp(self):
        """Set up test environment."""
        self.rng = random.Random(42)

    def test_random_population(self):
        """A random population is unevaluated generation 0."""
        population = random_population(25, 0.05, self.rng, mean_length=10)
        self.assertEqual(len(population), 25)
        self.assertEqual(population.generation, 0)
        self.assertEqual(population.mutation_rate, 0.05)
        self.assertFalse(any(ind.evaluated for ind in population))

        with self.assertRaises(ValueError):
            random_population(-1, 0.05, self.rng)
        with self.assertRaises(ValueError):
            random_population(0, 0.05, self.rng)
        with self.assertRaises(ValueError):
            random_population(3, 1.5, self.rng)

    def test_evaluate_population(self):
        """Sequential evaluation keeps order and metadata."""
        population = random_population(20, 0.1, self.rng, mean_length=10)
        codes = [ind.code for ind in population]

        evaluated = evaluate_population(population, b"abc", output_length, loop_limit=50)
        self.assertTrue(evaluated.is_evaluated())
        self.assertEqual([ind.code for ind in evaluated], codes)
        self.assertEqual(evaluated.generation, population.generation)
        self.assertEqual(evaluated.mutation_rate, 0.1)

    def test_evaluate_concurrently_matches_sequential(self):
        """Concurrent evaluation yields the sequential scores in original order."""
        codes = [Individual(code) for code in ("+.", "+.+.", ".", "", "+[.-]", "+++[.-]")]
        sequential = evaluate_population(
            Population([Individual(i.code) for i in codes], mutation_rate=0.0),
            b"", output_length)
        concurrent = evaluate_concurrently(
            Population(codes, mutation_rate=0.0), b"", output_length, max_workers=3)

        self.assertEqual([i.code for i in concurrent], [i.code for i in sequential])
        self.assertEqual(concurrent.fitnesses(), [1.0, 2.0, 1.0, 0.0, 1.0, 3.0])
        self.assertEqual(concurrent.fitnesses(), sequential.fitnesses())

    def test_evaluate_concurrently_keeps_polling(self):
        """Work still pending after a polling cycle is collected later, in order."""
        def slow_fitness(result):
            time.sleep(0.02 * len(result.output))
            return float(len(result.output))

        population = Population([Individual("+." * n) for n in (5, 1, 4, 2, 3)], mutation_rate=0.0)
        evaluated = evaluate_concurrently(population, b"", slow_fitness,
                                          max_workers=2, poll_timeout=0.001)
        self.assertEqual(evaluated.fitnesses(), [5.0, 1.0, 4.0, 2.0, 3.0])

    def test_evaluate_concurrently_with_fitness_factory(self):
        """Closures built by the fitness factories run on the default pool."""
        fitness = target_output_fitness("A")
        codes = ["+" * 65 + ".", "+" * 64 + ".", "."]
        sequential = evaluate_population(
            Population([Individual(code) for code in codes], mutation_rate=0.0), b"", fitness)
        concurrent = evaluate_concurrently(
            Population([Individual(code) for code in codes], mutation_rate=0.0), b"", fitness)
        self.assertEqual(concurrent.fitnesses(), sequential.fitnesses())
        self.assertEqual(concurrent[0].fitness, 1.0)

    def test_evaluate_concurrently_with_caller_executor(self):
        """A caller-provided executor is used and left running."""
        population = Population([Individual("+."), Individual("")], mutation_rate=0.0)
        with ThreadPoolExecutor(max_workers=2) as executor:
            evaluated = evaluate_concurrently(population, b"", output_length, executor=executor)
            self.assertEqual(executor.submit(lambda: 7).result(), 7)
        self.assertEqual(evaluated.fitnesses(), [1.0, 0.0])

    def test_evaluate_skips_evaluated(self):
        """Members with a fitness are not re-scored."""
        population = Population([Individual("+.", 9.0), Individual("+.")], mutation_rate=0.0)
        self.assertEqual(evaluate_concurrently(population, b"", output_length).fitnesses(), [9.0, 1.0])
        self.assertEqual(evaluate_population(population, b"", output_length).fitnesses(), [9.0, 1.0])


class TestSelector(unittest.TestCase):
    """Test cases for fitness-proportionate selection."""

    def setUp(self):
        """Set up test environment."""
        self.rng = random.Random(42)

    def test_rejects_bad_populations(self):
        with self.assertRaises(ValueError):
            selector([], self.rng)
        with self.assertRaises(ValueError):
            selector([Individual("+", 1.0), Individual("-")], self.rng)

    def test_selection_frequencies_converge(self):
        """Pick frequency approaches fitness / total."""
        population = evaluated_population([1.0, 2.0, 3.0, 4.0])
        stream = selector(population, self.rng)
        draws = 40000
        counts = Counter(next(stream).code for _ in range(draws))
        for individual in population:
            with self.subTest(fitness=individual.fitness):
                self.assertAlmostEqual(counts[individual.code] / draws,
                                       individual.fitness / 10.0, delta=0.015)

    def test_zero_fitness_never_selected(self):
        """Individuals without weight are skipped while others have weight."""
        population = evaluated_population([0.0, 5.0, 0.0])
        stream = selector(population, self.rng)
        picks = {next(stream).code for _ in range(200)}
        self.assertEqual(picks, {"++"})

    def test_cursor_continues_after_pick(self):
        """The cursor is left just after the chosen individual."""
        population = evaluated_population([1.0, 1.0, 1.0, 1.0, 1.0])
        stream = FitnessProportionateSelector(population, self.rng)
        for _ in range(20):
            picked = stream.draw()
            index = population.individuals.index(picked)
            self.assertEqual(stream.cursor, (index + 1) % len(population))

    def test_total_fixed_per_selector(self):
        """The total is computed once at construction."""
        population = evaluated_population([1.0, 3.0])
        stream = selector(population, self.rng)
        population.individuals[0].fitness = 100.0
        self.assertEqual(stream.total, 4.0)

    def test_degenerate_total_falls_back_to_uniform(self):
        """Zero or negative total fitness selects uniformly at random."""
        for fitnesses in ([0.0, 0.0, 0.0], [-1.0, -2.0, -3.0]):
            with self.subTest(fitnesses=fitnesses):
                population = evaluated_population(fitnesses)
                with self.assertLogs('bfsynth.evolve', level='WARNING'):
                    stream = selector(population, self.rng)
                counts = Counter(next(stream).code for _ in range(3000))
                self.assertEqual(len(counts), 3)
                for count in counts.values():
                    self.assertAlmostEqual(count / 3000, 1 / 3, delta=0.05)

    def test_negative_fitness_has_no_weight(self):
        """Negative fitness counts as zero weight when the total is positive."""
        population = evaluated_population([-5.0, 2.0])
        stream = selector(population, self.rng)
        self.assertEqual({next(stream).code for _ in range(100)}, {"++"})


class TestNextGeneration(unittest.TestCase):
    """Test cases for generational advance."""

    def setUp(self):
        """Set up test environment."""
        self.rng = random.Random(42)
        self.population = evaluated_population([float(i + 1) for i in range(10)], mutation_rate=0.1)

    def test_elites_copied_unchanged(self):
        """Elites keep exact code and fitness; the rest are unevaluated."""
        old = {ind.code: ind.fitness for ind in self.population}
        new = next_generation(self.population, self.rng, elite_fraction=0.2)

        self.assertEqual(len(new), 10)
        for elite in new.individuals[:2]:
            self.assertIn(elite.code, old)
            self.assertEqual(elite.fitness, old[elite.code])
            self.assertFalse(any(elite is ind for ind in self.population))
        for child in new.individuals[2:]:
            self.assertIsNone(child.fitness)
            self.assertEqual(child.generation, 4)

    def test_generation_counter_and_rate(self):
        new = next_generation(self.population, self.rng)
        self.assertEqual(new.generation, self.population.generation + 1)
        self.assertEqual(new.mutation_rate, 0.1)

    def test_odd_remainder_overshoots_by_one(self):
        """When the children needed are odd the population grows by one."""
        new = next_generation(self.population, self.rng, elite_fraction=0.3)
        self.assertEqual(len(new), 11)
        self.assertEqual(sum(1 for ind in new if ind.evaluated), 3)

    def test_no_elites(self):
        new = next_generation(self.population, self.rng, elite_fraction=0.0)
        self.assertEqual(len(new), 10)
        self.assertFalse(any(ind.evaluated for ind in new))

    def test_preconditions(self):
        with self.assertRaises(ValueError):
            next_generation(self.population, self.rng, elite_fraction=1.5)
        with self.assertRaises(ValueError):
            next_generation(random_population(4, 0.1, self.rng), self.rng)

    def test_genetic_material_conserved_without_mutation(self):
        """With rate 0, children only rearrange parent characters."""
        population = Population([Individual("+" * 3, 1.0), Individual("." * 5, 1.0)],
                                mutation_rate=0.0)
        new = next_generation(population, self.rng, elite_fraction=0.0)
        for child in new:
            self.assertTrue(set(child.code) <= {'+', '.'})


class TestEvolutionEngine(unittest.TestCase):
    """Test cases for the evolution engine."""

    def make_engine(self, **kwargs):
        params = dict(fitness_fn=target_output_fitness("A"), population_size=20,
                      mutation_rate=0.05, loop_limit=100, mean_length=12, seed=42)
        params.update(kwargs)
        return EvolutionEngine(**params)

    def test_engine_initialization(self):
        engine = self.make_engine()
        self.assertIsNone(engine.population)
        self.assertEqual(engine.generation, 0)
        self.assertIsNone(engine.get_best_individual())
        self.assertEqual(engine.get_population_summary(), {})

    def test_seeded_population(self):
        """Seed programs lead the initial population."""
        engine = self.make_engine()
        engine.initialize_population(["+.", "++."])
        self.assertEqual(len(engine.population), 20)
        self.assertEqual([ind.code for ind in engine.population.individuals[:2]], ["+.", "++."])

    def test_seeds_fill_population(self):
        """Surplus seed programs are dropped; no random top-up is needed."""
        engine = self.make_engine(population_size=2)
        engine.initialize_population(["+.", "++.", "+++."])
        self.assertEqual([ind.code for ind in engine.population], ["+.", "++."])

    def test_rejects_empty_population(self):
        for size in (0, -3):
            with self.subTest(size=size):
                with self.assertRaises(ValueError):
                    self.make_engine(population_size=size)

    def test_run_evolution(self):
        """Running records one statistics entry per generation."""
        engine = self.make_engine()
        calls = []
        history = engine.run_evolution(5, progress_callback=lambda gen, stats: calls.append(gen))

        self.assertEqual(len(history), 5)
        self.assertEqual(calls, [0, 1, 2, 3, 4])
        self.assertEqual(engine.generation, 4)
        self.assertTrue(engine.population.is_evaluated())
        # 20 initial individuals, then 16 children in each of 4 later generations
        self.assertEqual(engine.total_evaluations, 84)

        best = engine.get_best_individual()
        self.assertIsNotNone(best)
        self.assertEqual(best.fitness, max(stats.max for stats in history))

    def test_seeded_runs_are_reproducible(self):
        """The same seed gives the same history, with or without a worker pool."""
        first = self.make_engine().run_evolution(4)
        second = self.make_engine().run_evolution(4)
        concurrent = self.make_engine(concurrent=True, max_workers=4).run_evolution(4)
        self.assertEqual(first, second)
        self.assertEqual(first, concurrent)

    def test_target_fitness_stops_early(self):
        """Reaching the target ends the run."""
        engine = self.make_engine(fitness_fn=lambda result: 1.0)
        history = engine.run_evolution(10, target_fitness=1.0)
        self.assertEqual(len(history), 1)

    def test_population_summary(self):
        engine = self.make_engine()
        engine.run_evolution(2)
        summary = engine.get_population_summary()
        for key in ('population_size', 'generation', 'mean', 'median', 'min', 'max'):
            self.assertIn(key, summary)
        self.assertEqual(summary['generation'], 1)


if __name__ == '__main__':
    unittest.main()
