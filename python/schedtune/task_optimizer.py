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
# pylint: disable=invalid-name
"""The optimizer that tunes the schedule of one task.

A session runs rounds of

1. search: ask the search strategy for candidates,
2. prune: rebuild the function with each candidate body and drop the
   structurally invalid ones,
3. measure: send one batch of at most ``measure_quota_per_round`` candidates
   to the measurer,
4. update: retrain the cost model, record successes in the database and keep
   the best measured candidate,

until the round budget is spent or ``max_retry_continuous_empty`` consecutive
rounds measure nothing successfully.
"""
import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

from .analysis import verify_well_formed
from .cost_model import CostModel, XGBModel
from .database import Database
from .env import GLOBAL_SCOPE
from .error import ConfigurationError
from .ir import LoweredFunc
from .logging import Logger, get_logger, get_logging_func
from .measure import (
    MeasureErrorNo,
    MeasureInput,
    MeasureResult,
    Measurer,
    make_error_result,
    make_traceback_info,
    mean_cost,
)
from .profiler import Profiler
from .schedule import Schedule
from .search_strategy import EvolutionarySearch, SearchState
from .task import TuneTask
from .tuning import RoundRecord, TuningOptions, TuningResult
from .utils import current_line_number


class TaskOptimizer(object):
    """Tune the schedule of one task.

    The task, the measurer and the database are borrowed: the caller keeps
    them alive for the lifetime of the optimizer and may share the measurer,
    the database and the cost model between optimizers of different tasks.

    Parameters
    ----------
    task : TuneTask
        The task to tune.
    measurer : Measurer
        Compiles and runs candidates.
    database : Database
        Stores measured schedules.
    cost_model : Optional[CostModel]
        The cost model, an :py:class:`XGBModel` by default.
    search_strategy : Optional
        An object with ``search_one_round(options)`` and
        ``notify_measured(states)``. An :py:class:`EvolutionarySearch` seeded
        with ``options.seed`` is created on first use by default.
    logger : Optional[Logger]
        The logger of the session.
    num_threads : Optional[int]
        The number of threads of the default search strategy.
    """

    MAX_RETRY_CONTINUOUS_EMPTY = 3

    def __init__(
        self,
        task: TuneTask,
        measurer: Measurer,
        database: Database,
        cost_model: Optional[CostModel] = None,
        search_strategy=None,
        logger: Optional[Logger] = None,  # pylint: disable=redefined-outer-name
        num_threads: Optional[int] = None,
    ):
        self.task = task
        self.measurer = measurer
        self.database = database
        self.cost_model = cost_model if cost_model is not None else XGBModel()
        self.search_strategy = search_strategy
        self.logger = logger if logger is not None else get_logger(__name__)
        self.logging_func = get_logging_func(self.logger)
        self.num_threads = num_threads
        self._num_last_candidates = 0

    def _log(self, level: int, lineno: int, msg: str) -> None:
        if self.logging_func is None:
            return
        if level == logging.INFO and GLOBAL_SCOPE.silent:
            return
        self.logging_func(level, __file__, lineno, msg)

    def _get_search_strategy(self, options: TuningOptions):
        if self.search_strategy is None:
            self.search_strategy = EvolutionarySearch(
                self.task,
                self.cost_model,
                self.database,
                seed=options.seed,
                num_threads=self.num_threads,
                logger=self.logger,
            )
        return self.search_strategy

    def optimize(self, options: Union[TuningOptions, dict]) -> TuningResult:
        """Run the tuning session.

        Parameters
        ----------
        options : Union[TuningOptions, dict]
            The tuning options.

        Returns
        -------
        result : TuningResult
            The best measured candidate, or the original functions if no
            candidate was measured successfully.

        Raises
        ------
        ConfigurationError
            If the options are invalid or the task can not be scheduled. Raised
            before the first round.
        """
        if isinstance(options, dict):
            options = TuningOptions.from_dict(options)
        options.validate()
        try:
            _ = self.task.loop_nest
        except ValueError as err:
            raise ConfigurationError(f"Task {self.task.task_name} can not be tuned: {err}") from err

        old_in_tuning = GLOBAL_SCOPE.in_tuning
        GLOBAL_SCOPE.in_tuning = True
        try:
            return self._optimize_by_evolution(options)
        finally:
            GLOBAL_SCOPE.in_tuning = old_in_tuning

    def _optimize_by_evolution(self, options: TuningOptions) -> TuningResult:
        best_func: Optional[LoweredFunc] = None
        best_schedule: Optional[Schedule] = None
        best_cost: Optional[float] = None
        num_measured = 0
        num_pruned = 0
        num_continuous_empty = 0
        history: List[RoundRecord] = []
        stop_reason = "round_budget"

        for round_idx in range(options.num_rounds):
            states, inputs, round_pruned = self.search_one_round(options)
            num_pruned += round_pruned

            with Profiler.timeit("TaskOptimizer/Measure"):
                results = self._measure(inputs)
            num_measured += len(inputs)

            with Profiler.timeit("TaskOptimizer/Update"):
                self.cost_model.update(self.task, states, results)
                self._get_search_strategy(options).notify_measured(states)
                num_success = 0
                for inp, res in zip(inputs, results):
                    if not res.is_success:
                        continue
                    cost = mean_cost(res)
                    num_success += 1
                    self.database.insert(self.task.signature, inp.schedule, cost)
                    if best_cost is None or cost < best_cost:
                        best_func, best_schedule, best_cost = inp.func, inp.schedule, cost

            num_failed = len(inputs) - num_success
            history.append(
                RoundRecord(
                    round_idx,
                    self._num_last_candidates,
                    round_pruned,
                    len(inputs),
                    num_failed,
                    best_cost,
                )
            )
            if num_failed:
                self._log(
                    logging.WARNING,
                    current_line_number(),
                    f"[{self.task.task_name}] Round {round_idx + 1}/{options.num_rounds}: "
                    f"{num_failed} of {len(inputs)} measurements failed",
                )
            self._log(
                logging.INFO,
                current_line_number(),
                f"[{self.task.task_name}] Round {round_idx + 1}/{options.num_rounds}: "
                f"{self._num_last_candidates} candidates, {round_pruned} pruned, "
                f"{len(inputs)} measured, best cost: "
                + ("N/A" if best_cost is None else f"{best_cost:.6g}"),
            )

            if num_success == 0:
                num_continuous_empty += 1
            else:
                num_continuous_empty = 0
            if num_continuous_empty >= options.max_retry_continuous_empty:
                if round_idx + 1 < options.num_rounds:
                    stop_reason = "search_exhausted"
                    self._log(
                        logging.INFO,
                        current_line_number(),
                        f"[{self.task.task_name}] Stop after {num_continuous_empty} "
                        "consecutive rounds without a successful measurement",
                    )
                break

        if best_func is None:
            funcs = tuple(self.task.lowered_funcs)
        else:
            funcs = tuple(self.task.with_func(best_func))
        return TuningResult(
            funcs,
            best_schedule,
            best_cost,
            len(history),
            num_measured,
            num_pruned,
            stop_reason,
            tuple(history),
        )

    def search_one_round(
        self, options: TuningOptions
    ) -> Tuple[List[SearchState], List[MeasureInput], int]:
        """Search and prune the candidates of one round.

        Parameters
        ----------
        options : TuningOptions
            The tuning options.

        Returns
        -------
        states : List[SearchState]
            The valid candidates selected for measurement.
        measure_inputs : List[MeasureInput]
            The measurement batch, aligned with ``states``. Its size never
            exceeds ``measure_quota_per_round``.
        num_pruned : int
            The number of candidates rejected as invalid.
        """
        with Profiler.timeit("TaskOptimizer/Search"):
            states = list(self._get_search_strategy(options).search_one_round(options))
        states = states[: options.population_size]
        self._num_last_candidates = len(states)

        valid_states: List[SearchState] = []
        measure_inputs: List[MeasureInput] = []
        num_pruned = 0
        with Profiler.timeit("TaskOptimizer/Prune"):
            for state in states:
                func = self.func_with_updated_body(self.task.func, state.body)
                if self.prune_invalid(func):
                    num_pruned += 1
                    continue
                valid_states.append(state)
                measure_inputs.append(MeasureInput(self.task, func, state.schedule))
        quota = options.measure_quota_per_round
        return valid_states[:quota], measure_inputs[:quota], num_pruned

    @staticmethod
    def func_with_updated_body(old_func: LoweredFunc, body) -> LoweredFunc:
        """Rebuild a function with a new body, keeping its name, arguments and return type."""
        return old_func.with_body(body)

    def prune_invalid(self, func: LoweredFunc) -> bool:
        """Return True if the function is structurally invalid and must not be measured."""
        result = verify_well_formed(func)
        if not result.valid:
            self._log(
                logging.DEBUG,
                current_line_number(),
                f"[{self.task.task_name}] Pruned invalid candidate: {result.reason}",
            )
        return not result.valid

    def _measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        """Measure one batch, turning measurer misbehaviour into failed results."""
        if not inputs:
            return []
        try:
            results = list(self.measurer.measure(inputs))
        except Exception:  # pylint: disable=broad-except
            msg = make_traceback_info()
            self._log(
                logging.WARNING,
                current_line_number(),
                f"[{self.task.task_name}] Measurer raised an exception:\n{msg}",
            )
            return [make_error_result(MeasureErrorNo.UNKNOWN_ERROR, msg) for _ in inputs]
        if len(results) != len(inputs):
            self._log(
                logging.WARNING,
                current_line_number(),
                f"[{self.task.task_name}] Measurer returned {len(results)} results "
                f"for {len(inputs)} inputs",
            )
            results = results[: len(inputs)]
            results += [
                make_error_result(MeasureErrorNo.UNKNOWN_ERROR, "missing measure result")
                for _ in range(len(inputs) - len(results))
            ]
        for i, res in enumerate(results):
            if res.is_success and not _has_valid_costs(res):
                self._log(
                    logging.WARNING,
                    current_line_number(),
                    f"[{self.task.task_name}] Measurer reported invalid costs {res.costs!r}",
                )
                results[i] = make_error_result(
                    MeasureErrorNo.UNKNOWN_ERROR,
                    f"invalid measured costs: {res.costs!r}",
                    res.all_cost,
                )
        return results


def _has_valid_costs(result: MeasureResult) -> bool:
    """A successful result needs at least one cost, and every cost finite and non-negative."""
    if not result.costs:
        return False
    try:
        return all(math.isfinite(float(c)) and float(c) >= 0 for c in result.costs)
    except (TypeError, ValueError):
        return False
