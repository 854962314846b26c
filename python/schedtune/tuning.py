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
"""Tuning options and the result of a tuning session."""
from collections import namedtuple
from typing import Any, Dict, Optional, Tuple

from typing_extensions import Literal

from .error import ConfigurationError
from .ir import LoweredFunc

StopReason = Literal["round_budget", "search_exhausted"]

_OPTION_DEFAULTS: Dict[str, Any] = {
    "num_rounds": 1,
    "population_size": 64,
    "measure_quota_per_round": 64,
    "mutation_rate": 0.85,
    "crossover_rate": 0.15,
    "enable_warm_start": True,
    "eps_greedy": 0.05,
    "num_evolution_iters": 4,
    "init_population_size": 64,
    "warm_start_top_k": 16,
    "max_retry_continuous_empty": 3,
    "seed": None,
}


class TuningOptions(namedtuple("TuningOptions", list(_OPTION_DEFAULTS))):
    """This controls the options of one tuning session.

    Parameters
    ----------
    num_rounds: int = 1
        The maximum number of search-measure rounds.
    population_size: int = 64
        The maximum number of candidates the search proposes per round.
    measure_quota_per_round: int = 64
        The maximum number of candidates sent to the measurer per round.
        Must not exceed `population_size`.
    mutation_rate: float = 0.85
        The probability to mutate a child during evolution.
    crossover_rate: float = 0.15
        The probability to produce a child by crossover of two parents.
    enable_warm_start: bool = True
        Whether to seed the population from the database history of the task.
    eps_greedy: float = 0.05
        The share of each round's candidates picked at random instead of by
        predicted cost.
    num_evolution_iters: int = 4
        The number of generations evolved per round.
    init_population_size: int = 64
        The number of random schedules sampled to seed the population.
    warm_start_top_k: int = 16
        The number of best historical records used for warm start.
    max_retry_continuous_empty: int = 3
        Stop the session after this many consecutive rounds without any
        successfully measured candidate.
    seed: Optional[int] = None
        The random seed of the search.
    """

    __slots__ = ()

    def __new__(cls, **kwargs):
        unknown = sorted(set(kwargs) - set(_OPTION_DEFAULTS))
        if unknown:
            raise ConfigurationError(f"Unknown tuning options: {', '.join(unknown)}")
        values = dict(_OPTION_DEFAULTS)
        values.update(kwargs)
        return super().__new__(cls, **values)

    def __getnewargs_ex__(self):
        return (), dict(self._asdict())

    @staticmethod
    def from_dict(config: Dict[str, Any]) -> "TuningOptions":
        """Create options from a plain dictionary, e.g. a driver configuration file."""
        if not isinstance(config, dict):
            raise ConfigurationError(f"Tuning options must be a dict, got {type(config).__name__}")
        return TuningOptions(**config)

    def validate(self) -> "TuningOptions":
        """Check the options, raising ConfigurationError on the first problem found."""
        for name in (
            "num_rounds",
            "population_size",
            "num_evolution_iters",
            "init_population_size",
            "max_retry_continuous_empty",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        for name in ("measure_quota_per_round", "warm_start_top_k"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")
        if self.measure_quota_per_round > self.population_size:
            raise ConfigurationError(
                f"measure_quota_per_round ({self.measure_quota_per_round}) exceeds "
                f"population_size ({self.population_size})"
            )
        for name in ("mutation_rate", "crossover_rate", "eps_greedy"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value!r}")
        if not isinstance(self.enable_warm_start, bool):
            raise ConfigurationError(
                f"enable_warm_start must be a bool, got {self.enable_warm_start!r}"
            )
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigurationError(f"seed must be an integer or None, got {self.seed!r}")
        return self


class RoundRecord(
    namedtuple(
        "RoundRecord",
        ["round_idx", "num_candidates", "num_pruned", "num_measured", "num_failed", "best_cost"],
    )
):
    """Statistics of one executed round. ``best_cost`` is the session best after the round."""

    __slots__ = ()


class TuningResult(
    namedtuple(
        "TuningResult",
        [
            "funcs",
            "schedule",
            "cost",
            "num_rounds",
            "num_measured",
            "num_pruned",
            "stop_reason",
            "history",
        ],
    )
):
    """The outcome of a tuning session.

    Parameters
    ----------
    funcs : Tuple[LoweredFunc, ...]
        The best lowered functions found, or the original ones when nothing
        was measured successfully.
    schedule : Optional[Schedule]
        The schedule of the best candidate, None when falling back.
    cost : Optional[float]
        The measured cost of the best candidate, None when falling back.
    num_rounds : int
        The number of executed rounds.
    num_measured : int
        The number of candidates sent to the measurer.
    num_pruned : int
        The number of candidates rejected by validity checking.
    stop_reason : str
        ``round_budget`` or ``search_exhausted``.
    history : Tuple[RoundRecord, ...]
        Per round statistics.
    """

    __slots__ = ()

    @property
    def func(self) -> LoweredFunc:
        """The tuned kernel."""
        return self.funcs[0]

    @property
    def improved(self) -> bool:
        return self.cost is not None

    @property
    def best_costs(self) -> Tuple[Optional[float], ...]:
        """Best-so-far cost after each round."""
        return tuple(r.best_cost for r in self.history)
