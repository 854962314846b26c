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
"""Mutation and crossover of schedules.

Every function here is pure: it takes a schedule (or two), the search space
and a ``numpy.random.RandomState`` and returns a new schedule, or None when
the decision it perturbs has no alternative.
"""
from typing import Callable, Dict, Optional

import numpy as np  # type: ignore

from ..schedule import MAX_PARALLEL, UNROLL_CHOICES, Schedule, SearchSpace
from ..utils import prime_factors

MutatorFunc = Callable[[Schedule, SearchSpace, np.random.RandomState], Optional[Schedule]]


def _pick(seq, rng: np.random.RandomState):
    return seq[int(rng.randint(len(seq)))]


def mutate_tile_size(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    """Move one prime factor of a perfectly tiled axis from one level to another."""
    axes = []
    for ax in space.nest.axes:
        if ax.extent > 1 and space.is_perfect(schedule, [ax.name]):
            axes.append(ax)
    if not axes:
        return None
    ax = _pick(axes, rng)
    levels = schedule.level_extents(ax.name, ax.extent)
    src = _pick([i for i, ext in enumerate(levels) if ext > 1], rng)
    factor = _pick(sorted(set(prime_factors(levels[src]))), rng)
    innermost = len(levels) - 1
    dsts = [
        i
        for i in range(len(levels))
        if i != src
        and not (i == innermost and levels[i] * factor > space.max_innermost_factor)
    ]
    if not dsts:
        return None
    dst = _pick(dsts, rng)
    levels[src] //= factor
    levels[dst] *= factor
    tiles = [
        (axis, tuple(levels[1:]) if axis == ax.name else factors)
        for axis, factors in schedule.tiles
    ]
    return Schedule(tiles, schedule.order, schedule.parallel, schedule.vectorize, schedule.unroll)


def mutate_loop_order(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    """Swap two adjacent loops."""
    # pylint: disable=unused-argument
    if len(schedule.order) < 2:
        return None
    i = int(rng.randint(len(schedule.order) - 1))
    order = list(schedule.order)
    order[i], order[i + 1] = order[i + 1], order[i]
    return schedule._replace(order=tuple(order))


def mutate_parallel(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    # pylint: disable=unused-argument
    choices = [n for n in range(MAX_PARALLEL + 1) if n != schedule.parallel]
    return schedule._replace(parallel=_pick(choices, rng))


def mutate_vectorize(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    # pylint: disable=unused-argument
    return schedule._replace(vectorize=not schedule.vectorize)


def mutate_unroll(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    # pylint: disable=unused-argument
    choices = [n for n in UNROLL_CHOICES if n != schedule.unroll]
    return schedule._replace(unroll=_pick(choices, rng))


MUTATOR_PROBS: Dict[str, float] = {
    "mutate_tile_size": 0.7,
    "mutate_loop_order": 0.15,
    "mutate_parallel": 0.05,
    "mutate_vectorize": 0.05,
    "mutate_unroll": 0.05,
}

MUTATORS: Dict[str, MutatorFunc] = {
    "mutate_tile_size": mutate_tile_size,
    "mutate_loop_order": mutate_loop_order,
    "mutate_parallel": mutate_parallel,
    "mutate_vectorize": mutate_vectorize,
    "mutate_unroll": mutate_unroll,
}


def mutate(
    schedule: Schedule, space: SearchSpace, rng: np.random.RandomState
) -> Optional[Schedule]:
    """Perturb one decision, trying mutators in a random order weighted by ``MUTATOR_PROBS``.

    Returns None if no mutator can change the schedule.
    """
    names = list(MUTATORS)
    probs = np.array([MUTATOR_PROBS[name] for name in names], dtype="float64")
    probs /= probs.sum()
    for idx in rng.choice(len(names), size=len(names), replace=False, p=probs):
        result = MUTATORS[names[idx]](schedule, space, rng)
        if result is not None and result != schedule:
            return result
    return None


def crossover(a: Schedule, b: Schedule, rng: np.random.RandomState) -> Schedule:
    """Combine the decisions of two schedules of the same loop nest.

    Each axis takes its tiles from either parent, and so does the loop order
    and each annotation.

    Raises
    ------
    ValueError
        If the parents schedule different loop nests.
    """
    if [axis for axis, _ in a.tiles] != [axis for axis, _ in b.tiles] or sorted(
        a.order
    ) != sorted(b.order):
        raise ValueError("Cannot crossover schedules of different loop nests")
    parents = (a, b)
    tiles = [
        (axis, parents[int(rng.randint(2))].tile(axis)) for axis, _ in a.tiles
    ]
    return Schedule(
        tiles,
        parents[int(rng.randint(2))].order,
        parents[int(rng.randint(2))].parallel,
        parents[int(rng.randint(2))].vectorize,
        parents[int(rng.randint(2))].unroll,
    )
