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
import pytest
import schedtune
import schedtune.testing
from schedtune.analysis import collect_loops, extract_loop_nest, verify_well_formed
from schedtune.ir import ForKind
from schedtune.schedule import (
    MAX_PARALLEL,
    UNROLL_CHOICES,
    Schedule,
    SearchSpace,
    loop_axis,
    loop_name,
)
from schedtune.target import Target
from schedtune.testing import elementwise_func, get_sample_task
from schedtune.utils import get_factors

DEFAULT_ORDER = ["i_0", "j_0", "i_1", "j_1", "k_0", "k_1", "i_2", "j_2"]


def _space():
    task = get_sample_task()
    return task, SearchSpace(task.loop_nest, task.target)


def _schedule(order=None, **kwargs):
    tiles = {"i": (2, 5), "j": (5, 8), "k": (5,)}
    return Schedule(tiles, order if order is not None else DEFAULT_ORDER, **kwargs)


def test_loop_name():
    assert loop_name("i", 2) == "i_2"
    assert loop_axis("i_2") == "i"
    assert loop_axis(loop_name("ax_0", 1)) == "ax_0"


def test_loop_groups():
    _, space = _space()
    assert space.loop_names() == DEFAULT_ORDER
    assert space.num_levels("i") == 3
    assert space.num_levels("k") == 2
    assert space.candidate_factors("k") == get_factors(50) == (1, 2, 5, 10, 25, 50)
    elementwise = SearchSpace(extract_loop_nest(elementwise_func(8, 8)), Target("llvm"))
    assert elementwise.loop_groups() == [["i_0", "j_0"], ["i_1", "j_1"], ["i_2", "j_2"]]


def test_default_schedule():
    task, space = _space()
    schedule = space.default_schedule()
    assert schedule.tile("i") == (1, 1)
    assert schedule.tile("k") == (1,)
    assert schedule.level_extents("i", 100) == [100, 1, 1]
    assert space.contains(schedule)
    assert space.is_perfect(schedule)
    func = task.func.with_body(schedule.apply(task.loop_nest))
    assert verify_well_formed(func).valid


def test_schedule_json():
    schedule = _schedule(parallel=1, vectorize=True, unroll=16)
    json_obj = schedule.to_json()
    assert json_obj == {
        "tiles": {"i": [2, 5], "j": [5, 8], "k": [5]},
        "order": DEFAULT_ORDER,
        "parallel": 1,
        "vectorize": True,
        "unroll": 16,
    }
    restored = Schedule.from_json(json_obj)
    assert restored == schedule
    assert restored.key == schedule.key
    assert _schedule().key != schedule.key
    with pytest.raises(ValueError):
        Schedule.from_json({"order": []})
    with pytest.raises(ValueError):
        Schedule.from_json({"tiles": [1, 2], "order": []})


def test_loop_extents():
    task, _ = _space()
    extents = _schedule().loop_extents(task.loop_nest)
    assert extents == {
        "i_0": 10,
        "i_1": 2,
        "i_2": 5,
        "j_0": 5,
        "j_1": 5,
        "j_2": 8,
        "k_0": 10,
        "k_1": 5,
    }


def test_apply():
    task, _ = _space()
    schedule = _schedule(parallel=2, vectorize=True)
    loops, store = collect_loops(schedule.apply(task.loop_nest))
    assert [loop.loop_var for loop in loops] == DEFAULT_ORDER
    kinds = {loop.loop_var: loop.kind for loop in loops}
    assert kinds["i_0"] == ForKind.PARALLEL
    assert kinds["j_0"] == ForKind.PARALLEL
    assert kinds["j_2"] == ForKind.VECTORIZED
    assert kinds["k_1"] == ForKind.SERIAL
    assert store.indices[0].terms == (("i_0", 10), ("i_1", 5), ("i_2", 1))
    func = task.func.with_body(schedule.apply(task.loop_nest))
    assert verify_well_formed(func).valid
    assert func.args == task.func.args


def test_apply_rejects_incomplete_order():
    task, _ = _space()
    with pytest.raises(ValueError):
        _schedule(order=DEFAULT_ORDER[:-1]).apply(task.loop_nest)


def test_annotations():
    task, _ = _space()
    nest = task.loop_nest
    # parallel stops at the first reduction loop
    order = ["k_0", "i_0", "j_0", "i_1", "j_1", "k_1", "i_2", "j_2"]
    schedule = _schedule(order=order, parallel=2)
    kinds = schedule.annotations(nest, schedule.loop_extents(nest))
    assert all(kind == ForKind.SERIAL for kind in kinds.values())
    # unroll covers the innermost loops within the limit
    schedule = _schedule(unroll=64)
    kinds = schedule.annotations(nest, schedule.loop_extents(nest))
    assert kinds["j_2"] == ForKind.UNROLLED
    assert kinds["i_2"] == ForKind.UNROLLED
    assert kinds["k_1"] == ForKind.SERIAL
    schedule = _schedule(unroll=64, vectorize=True)
    kinds = schedule.annotations(nest, schedule.loop_extents(nest))
    assert kinds["j_2"] == ForKind.VECTORIZED
    assert kinds["i_2"] == ForKind.UNROLLED
    # a reduction innermost loop is never vectorized
    order = DEFAULT_ORDER[:-2] + ["j_2", "i_2"]
    order = [name for name in order if name != "k_1"] + ["k_1"]
    schedule = _schedule(order=order, vectorize=True)
    kinds = schedule.annotations(nest, schedule.loop_extents(nest))
    assert ForKind.VECTORIZED not in kinds.values()


def test_imperfect_tile_is_invalid():
    task, space = _space()
    schedule = Schedule({"i": (3, 1), "j": (1, 1), "k": (1,)}, DEFAULT_ORDER)
    assert space.contains(schedule)
    assert not space.is_perfect(schedule)
    assert space.is_perfect(schedule, ["j", "k"])
    assert schedule.level_extents("i", 100) == [34, 3, 1]
    result = verify_well_formed(task.func.with_body(schedule.apply(task.loop_nest)))
    assert not result.valid
    assert "out of range" in result.reason


def test_contains():
    _, space = _space()
    assert space.contains(_schedule())
    assert not space.contains(_schedule(parallel=MAX_PARALLEL + 1))
    assert not space.contains(_schedule(unroll=7))
    assert not space.contains(_schedule(order=DEFAULT_ORDER[:-1]))
    assert not space.contains(Schedule({"i": (2,), "j": (5, 8), "k": (5,)}, DEFAULT_ORDER))
    assert not space.contains(Schedule({"j": (5, 8), "i": (2, 5), "k": (5,)}, DEFAULT_ORDER))


def test_sample():
    task, space = _space()
    rng = np.random.RandomState(0)
    for _ in range(50):
        schedule = space.sample(rng)
        assert space.contains(schedule)
        assert space.is_perfect(schedule)
        assert schedule.unroll in UNROLL_CHOICES
        for axis, factors in schedule.tiles:
            assert factors[-1] <= space.max_innermost_factor
            for factor in factors:
                assert factor in space.candidate_factors(axis)
        func = task.func.with_body(schedule.apply(task.loop_nest))
        assert verify_well_formed(func).valid


def test_sample_is_reproducible():
    _, space = _space()
    rng_a = np.random.RandomState(7)
    rng_b = np.random.RandomState(7)
    first = [space.sample(rng_a) for _ in range(5)]
    second = [space.sample(rng_b) for _ in range(5)]
    assert first == second
    assert len({s.key for s in first}) > 1


def test_sample_perfect_tile():
    _, space = _space()
    rng = np.random.RandomState(1)
    for extent in [1, 7, 64, 100, 1024]:
        for _ in range(20):
            factors = space.sample_perfect_tile(extent, 3, rng)
            assert len(factors) == 2
            assert extent % (factors[0] * factors[1]) == 0
            assert factors[-1] <= space.max_innermost_factor


if __name__ == "__main__":
    schedtune.testing.main()
