# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.
"""Evolutionary Search Strategy"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Set

import numpy as np  # type: ignore

from ..logging import Logger, get_logger, get_logging_func
from ..profiler import Profiler
from ..schedule import Schedule, SearchSpace
from ..utils import cpu_count, current_line_number
from .mutator import crossover, mutate
from .search_state import SearchState

if TYPE_CHECKING:
    from ..cost_model import CostModel
    from ..database import Database
    from ..task import TuneTask
    from ..tuning import TuningOptions

logger = get_logger(__name__)  # pylint: disable=invalid-name

# Give up generating children after this many attempts per requested child
MAX_ATTEMPTS_PER_CHILD = 4


class EvolutionarySearch(object):
    """
    Evolutionary search that proposes the candidates of each tuning round.

    Each round starts from a population made of the survivors of the previous
    round, the best historical schedules of the task (warm start) and fresh
    random samples. The population evolves for a few generations by
    tournament selection, crossover and mutation, ranked by the cost model.
    The round then proposes the best unmeasured candidates by predicted cost,
    with a small share picked at random for exploration.

    Parameters
    ----------
    task : TuneTask
        The task to search for.
    cost_model : CostModel
        The cost model used to rank candidates.
    database : Database
        The database used for warm start and for skipping measured schedules.
    seed : Optional[int]
        The random seed.
    num_threads : Optional[int]
        The number of threads used to build and score candidates.
    logger : Optional[Logger]
        The logger of the tuning session.
    """

    def __init__(
        self,
        task: "TuneTask",
        cost_model: "CostModel",
        database: "Database",
        seed: Optional[int] = None,
        num_threads: Optional[int] = None,
        logger: Optional[Logger] = None,  # pylint: disable=redefined-outer-name
    ):
        self.task = task
        self.cost_model = cost_model
        self.database = database
        self.space = SearchSpace(task.loop_nest, task.target)
        self.rng = np.random.RandomState(seed)
        self.num_threads = num_threads or cpu_count(logical=True)
        if logger is None:
            logger = get_logger(__name__)
        self.logging_func = get_logging_func(logger)
        self.measured_keys: Set[str] = set()
        self._num_history_seen = 0
        self._survivors: List[Schedule] = []

    def _log(self, level: int, lineno: int, msg: str) -> None:
        if self.logging_func is not None:
            self.logging_func(level, __file__, lineno, msg)

    def _sync_history(self) -> None:
        """Mark schedules recorded in the database since the last round as measured."""
        history = self.database.lookup(self.task.signature)
        for record in history[self._num_history_seen :]:
            try:
                self.measured_keys.add(record.as_schedule().key)
            except ValueError:
                continue
        self._num_history_seen = len(history)

    def _warm_start(self, options: "TuningOptions") -> List[Schedule]:
        if not options.enable_warm_start or options.warm_start_top_k == 0:
            return []
        result = []
        for record in self.database.get_top_k(self.task.signature, options.warm_start_top_k):
            try:
                schedule = record.as_schedule()
            except ValueError:
                continue
            if self.space.contains(schedule):
                result.append(schedule)
        return result

    def _build_states(self, schedules: Sequence[Schedule]) -> List[SearchState]:
        """Apply schedules and score the resulting candidates with the cost model."""
        if not schedules:
            return []
        nest = self.space.nest

        def _apply(schedule: Schedule) -> SearchState:
            return SearchState(schedule, schedule.apply(nest))

        with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
            states = list(executor.map(_apply, schedules))
        costs = self.cost_model.predict(self.task, states)
        return [state.with_cost(cost) for state, cost in zip(states, costs)]

    def _tournament(self, population: Sequence[SearchState]) -> SearchState:
        i, j = self.rng.randint(len(population), size=2)
        a, b = population[int(i)], population[int(j)]
        return a if a.predicted_cost <= b.predicted_cost else b

    def _evolve_one_generation(
        self,
        population: List[SearchState],
        seen: Set[str],
        num_children: int,
        options: "TuningOptions",
    ) -> List[Schedule]:
        children: List[Schedule] = []
        for _ in range(num_children * MAX_ATTEMPTS_PER_CHILD):
            if len(children) >= num_children:
                break
            child = self._tournament(population).schedule
            if len(population) > 1 and self.rng.uniform() < options.crossover_rate:
                child = crossover(child, self._tournament(population).schedule, self.rng)
            if self.rng.uniform() < options.mutation_rate:
                mutated = mutate(child, self.space, self.rng)
                if mutated is not None:
                    child = mutated
            if child.key in seen:
                continue
            seen.add(child.key)
            children.append(child)
        return children

    def _pick(self, candidates: List[SearchState], options: "TuningOptions") -> List[SearchState]:
        """Keep the best candidates by predicted cost plus a random exploration share."""
        if not candidates:
            return []
        costs = np.array([state.predicted_cost for state in candidates], dtype="float64")
        ranked = [candidates[i] for i in np.argsort(costs, kind="stable")]
        num = min(options.population_size, len(ranked))
        num_random = min(int(round(options.eps_greedy * num)), len(ranked) - num)
        picked = ranked[: num - num_random]
        rest = ranked[num - num_random :]
        if num_random > 0:
            picked += [rest[int(i)] for i in self.rng.choice(len(rest), num_random, replace=False)]
        order = np.argsort([state.predicted_cost for state in picked], kind="stable")
        return [picked[i] for i in order]

    def search_one_round(self, options: "TuningOptions") -> List[SearchState]:
        """Propose the candidates of one round.

        Parameters
        ----------
        options : TuningOptions
            The tuning options.

        Returns
        -------
        states : List[SearchState]
            At most ``population_size`` unmeasured candidates, best predicted
            first. Empty when the search space is exhausted.
        """
        with Profiler.timeit("EvolutionarySearch/Init"):
            self._sync_history()
            seen: Set[str] = set()
            init: List[Schedule] = []
            warm = self._warm_start(options)
            for schedule in self._survivors + warm:
                if schedule.key not in seen:
                    seen.add(schedule.key)
                    init.append(schedule)
            for _ in range(options.init_population_size):
                schedule = self.space.sample(self.rng)
                if schedule.key not in seen:
                    seen.add(schedule.key)
                    init.append(schedule)
            population = self._build_states(init)

        candidates: Dict[str, SearchState] = {}

        def _collect(states: Sequence[SearchState]) -> None:
            for state in states:
                key = state.schedule.key
                if key not in self.measured_keys:
                    candidates.setdefault(key, state)

        _collect(population)
        pool_size = max(options.population_size, options.init_population_size)
        with Profiler.timeit("EvolutionarySearch/Evolve"):
            for _ in range(options.num_evolution_iters):
                if not population:
                    break
                children = self._build_states(
                    self._evolve_one_generation(population, seen, pool_size, options)
                )
                _collect(children)
                merged = population + children
                order = np.argsort([s.predicted_cost for s in merged], kind="stable")
                population = [merged[i] for i in order[:pool_size]]

        self._survivors = [state.schedule for state in population[: options.population_size]]
        picked = self._pick(list(candidates.values()), options)
        self._log(
            logging.DEBUG,
            current_line_number(),
            f"Evolution: {len(init)} initial ({len(warm)} from history), "
            f"{len(candidates)} unmeasured candidates, {len(picked)} picked",
        )
        return picked

    def notify_measured(self, states: Sequence[SearchState]) -> None:
        """Record candidates sent to measurement so they are not proposed again."""
        for state in states:
            self.measured_keys.add(state.schedule.key)
