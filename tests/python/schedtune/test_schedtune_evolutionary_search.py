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
# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring
import numpy as np
import schedtune
import schedtune.testing
from schedtune.cost_model import RandomModel
from schedtune.database import MemoryDatabase
from schedtune.search_strategy import EvolutionarySearch, SearchState
from schedtune.testing import get_sample_task
from schedtune.tuning import TuningOptions


def _options(**kwargs):
    kwargs.setdefault("population_size", 8)
    kwargs.setdefault("measure_quota_per_round", 8)
    kwargs.setdefault("init_population_size", 16)
    kwargs.setdefault("num_evolution_iters", 2)
    return TuningOptions(**kwargs)


def _search(database=None, seed=0):
    task = get_sample_task()
    database = database if database is not None else MemoryDatabase()
    return task, EvolutionarySearch(task, RandomModel(seed=0), database, seed=seed, num_threads=2)


def test_search_one_round():
    _, search = _search()
    states = search.search_one_round(_options())
    assert len(states) == 8
    assert all(isinstance(state, SearchState) for state in states)
    costs = [state.predicted_cost for state in states]
    assert costs == sorted(costs)
    assert len({state.schedule.key for state in states}) == 8
    for state in states:
        assert search.space.contains(state.schedule)
        assert search.space.is_perfect(state.schedule)
        assert state.body == state.schedule.apply(search.space.nest)


def test_measured_are_not_proposed_again():
    _, search = _search()
    options = _options()
    first = search.search_one_round(options)
    search.notify_measured(first)
    second = search.search_one_round(options)
    assert not {s.schedule.key for s in first} & {s.schedule.key for s in second}


def test_database_history_is_skipped():
    task, search = _search()
    first = search.search_one_round(_options())
    database = MemoryDatabase()
    for state in first:
        database.insert(task.signature, state.schedule, 1.0)
    _, fresh = _search(database)
    second = fresh.search_one_round(_options())
    assert not {s.schedule.key for s in first} & {s.schedule.key for s in second}


def test_warm_start():
    task = get_sample_task()
    database = MemoryDatabase()
    _, search = _search(database)
    schedules = [search.space.sample(np.random.RandomState(i)) for i in range(4)]
    for cost, schedule in enumerate(schedules):
        database.insert(task.signature, schedule, float(cost + 1))
    # records that do not fit the loop nest are ignored
    database.insert(task.signature, {"tiles": {"x": [1]}, "order": ["x_0"]}, 0.5)
    database.insert(task.signature, {"not": "a schedule"}, 0.25)
    warm = search._warm_start(_options(warm_start_top_k=3))  # pylint: disable=protected-access
    assert warm == schedules[:1]
    warm = search._warm_start(_options(warm_start_top_k=6))  # pylint: disable=protected-access
    assert warm == schedules
    assert not search._warm_start(  # pylint: disable=protected-access
        _options(enable_warm_start=False)
    )
    states = search.search_one_round(_options())
    assert len(states) == 8
    assert not {s.key for s in schedules} & {s.schedule.key for s in states}


def test_exploration_share():
    _, search = _search()
    states = search.search_one_round(_options(eps_greedy=1.0))
    costs = [state.predicted_cost for state in states]
    assert len(states) == 8
    assert costs == sorted(costs)


def test_same_seed_same_candidates():
    _, a = _search(seed=5)
    _, b = _search(seed=5)
    keys_a = [s.schedule.key for s in a.search_one_round(_options())]
    keys_b = [s.schedule.key for s in b.search_one_round(_options())]
    assert keys_a == keys_b


if __name__ == "__main__":
    schedtune.testing.main()
