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
"""Schedule decisions and the search space they are drawn from.

A schedule tiles every axis of a perfect loop nest into several levels, then
reorders the tiled loops and annotates them. Spatial axes are tiled into three
levels and reduction axes into two, and the default loop structure is
``S0 S1 R0 R1 S2`` (the multi-level tiling structure of the sketch rules).
"""
import json
from collections import namedtuple
from functools import reduce
from operator import mul
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np  # type: ignore

from .analysis import LoopNest
from .ir import For, ForKind, IndexExpr, substitute
from .target import Target
from .utils import ceildiv, get_factors, prime_factors

SPATIAL_LEVELS = 3
REDUCE_LEVELS = 2
MAX_PARALLEL = 2
UNROLL_CHOICES = (0, 16, 64, 512)


def _prod(values) -> int:
    return reduce(mul, values, 1)


def loop_name(axis: str, level: int) -> str:
    """The name of the loop of ``axis`` at tiling ``level``, level 0 being outermost."""
    return f"{axis}_{level}"


def loop_axis(name: str) -> str:
    """Inverse of :py:func:`loop_name`."""
    return name.rsplit("_", 1)[0]


class Schedule(
    namedtuple("Schedule", ["tiles", "order", "parallel", "vectorize", "unroll"])
):
    """The decisions of one schedule.

    Parameters
    ----------
    tiles : Tuple[Tuple[str, Tuple[int, ...]], ...]
        For each axis, in loop nest order, the extents of its inner tiling
        levels. The outermost extent is derived as a ceiling division.
    order : Tuple[str, ...]
        The tiled loops from outermost to innermost.
    parallel : int
        The number of outermost loops to parallelize.
    vectorize : bool
        Whether to vectorize the innermost loop.
    unroll : int
        The maximum number of unrolled innermost iterations.
    """

    __slots__ = ()

    def __new__(cls, tiles, order, parallel=0, vectorize=False, unroll=0):
        if isinstance(tiles, dict):
            tiles = tiles.items()
        tiles = tuple((str(axis), tuple(int(f) for f in factors)) for axis, factors in tiles)
        return super().__new__(
            cls, tiles, tuple(str(x) for x in order), int(parallel), bool(vectorize), int(unroll)
        )

    def tile(self, axis: str) -> Tuple[int, ...]:
        for name, factors in self.tiles:
            if name == axis:
                return factors
        raise KeyError(axis)

    def level_extents(self, axis: str, extent: int) -> List[int]:
        """The extents of all tiling levels of ``axis``, outermost first."""
        factors = self.tile(axis)
        return [ceildiv(extent, _prod(factors))] + list(factors)

    def loop_extents(self, nest: LoopNest) -> Dict[str, int]:
        extents = {}
        for ax in nest.axes:
            for level, ext in enumerate(self.level_extents(ax.name, ax.extent)):
                extents[loop_name(ax.name, level)] = ext
        return extents

    def to_json(self) -> dict:
        """Convert the schedule to its persisted JSON representation."""
        return {
            "tiles": {axis: list(factors) for axis, factors in self.tiles},
            "order": list(self.order),
            "parallel": self.parallel,
            "vectorize": self.vectorize,
            "unroll": self.unroll,
        }

    @staticmethod
    def from_json(json_obj: dict) -> "Schedule":
        """Create a schedule from its JSON representation.

        Raises
        ------
        ValueError
            If the object is not a valid schedule representation.
        """
        try:
            return Schedule(
                {axis: factors for axis, factors in json_obj["tiles"].items()},
                json_obj["order"],
                json_obj.get("parallel", 0),
                json_obj.get("vectorize", False),
                json_obj.get("unroll", 0),
            )
        except (KeyError, TypeError, AttributeError) as err:
            raise ValueError(f"Invalid schedule representation: {json_obj!r}") from err

    @property
    def key(self) -> str:
        """A canonical string identifying the schedule."""
        return json.dumps(self.to_json(), sort_keys=True, separators=(",", ":"))

    def annotations(self, nest: LoopNest, extents: Dict[str, int]) -> Dict[str, ForKind]:
        """Decide the kind of every tiled loop.

        Parallel loops stop at the first reduction loop, only a spatial innermost
        loop is vectorized, and unrolling covers the innermost serial loops whose
        total trip count fits in ``unroll``.
        """
        reduce_axes = {ax.name for ax in nest.reduce_axes}
        kinds = {name: ForKind.SERIAL for name in self.order}
        for name in self.order[: self.parallel]:
            if loop_axis(name) in reduce_axes:
                break
            kinds[name] = ForKind.PARALLEL
        innermost = self.order[-1]
        if (
            self.vectorize
            and loop_axis(innermost) not in reduce_axes
            and kinds[innermost] == ForKind.SERIAL
        ):
            kinds[innermost] = ForKind.VECTORIZED
        trip_count = 1
        for name in reversed(self.order):
            trip_count *= extents[name]
            if trip_count > self.unroll:
                break
            if kinds[name] == ForKind.SERIAL:
                kinds[name] = ForKind.UNROLLED
        return kinds

    def apply(self, nest: LoopNest):
        """Apply the schedule to a loop nest and return the new body.

        Every original axis is rewritten as ``sum(level_var * inner_extent)``
        over its tiling levels. No guard is emitted for non-divisible tiles,
        which leaves indices out of range for the verifier to reject.
        """
        extents = self.loop_extents(nest)
        if sorted(self.order) != sorted(extents):
            raise ValueError(f"Loop order {self.order} does not cover loops {sorted(extents)}")
        vmap = {}
        for ax in nest.axes:
            levels = self.level_extents(ax.name, ax.extent)
            expr = IndexExpr()
            stride = 1
            for level in reversed(range(len(levels))):
                expr = expr + IndexExpr.var(loop_name(ax.name, level)) * stride
                stride *= levels[level]
            vmap[ax.name] = expr
        kinds = self.annotations(nest, extents)
        body = substitute(nest.store, vmap)
        for name in reversed(self.order):
            body = For(name, extents[name], body, kinds[name])
        return body


class SearchSpace(object):
    """The schedules applicable to one loop nest.

    Parameters
    ----------
    nest : LoopNest
        The loop nest to schedule.
    target : Target
        The hardware target.
    max_innermost_factor : int
        The largest innermost tile extent sampled.
    """

    def __init__(self, nest: LoopNest, target: Target, max_innermost_factor: int = 64):
        self.nest = nest
        self.target = target
        self.max_innermost_factor = max_innermost_factor

    def num_levels(self, axis: str) -> int:
        return REDUCE_LEVELS if self.nest.axis(axis).is_reduce else SPATIAL_LEVELS

    def candidate_factors(self, axis: str) -> Tuple[int, ...]:
        """Tile extents that divide the axis evenly."""
        return get_factors(self.nest.axis(axis).extent)

    def loop_groups(self) -> List[List[str]]:
        """The default loop structure ``S0 S1 R0 R1 S2`` as groups of loop names."""
        spatial = [ax.name for ax in self.nest.spatial_axes]
        reduction = [ax.name for ax in self.nest.reduce_axes]
        groups = [
            [loop_name(a, 0) for a in spatial],
            [loop_name(a, 1) for a in spatial],
            [loop_name(a, 0) for a in reduction],
            [loop_name(a, 1) for a in reduction],
            [loop_name(a, 2) for a in spatial],
        ]
        return [g for g in groups if g]

    def loop_names(self) -> List[str]:
        return [name for group in self.loop_groups() for name in group]

    def default_schedule(self) -> Schedule:
        """Untiled, unannotated schedule in the default loop structure."""
        tiles = [(ax.name, (1,) * (self.num_levels(ax.name) - 1)) for ax in self.nest.axes]
        return Schedule(tiles, self.loop_names())

    def sample_perfect_tile(
        self, extent: int, num_levels: int, rng: np.random.RandomState
    ) -> Tuple[int, ...]:
        """Distribute the prime factors of ``extent`` over ``num_levels`` levels.

        Returns the extents of the inner levels. The innermost extent never
        exceeds ``max_innermost_factor``.
        """
        levels = [1] * num_levels
        for p in prime_factors(extent):
            level = int(rng.randint(num_levels))
            if level == num_levels - 1 and levels[level] * p > self.max_innermost_factor:
                level = int(rng.randint(num_levels - 1))
            levels[level] *= p
        return tuple(levels[1:])

    def sample(self, rng: np.random.RandomState) -> Schedule:
        """Draw a random schedule with perfect tiles."""
        tiles = [
            (ax.name, self.sample_perfect_tile(ax.extent, self.num_levels(ax.name), rng))
            for ax in self.nest.axes
        ]
        order = []
        for group in self.loop_groups():
            order.extend(group[i] for i in rng.permutation(len(group)))
        return Schedule(
            tiles,
            order,
            parallel=int(rng.randint(MAX_PARALLEL + 1)),
            vectorize=bool(rng.randint(2)),
            unroll=UNROLL_CHOICES[int(rng.randint(len(UNROLL_CHOICES)))],
        )

    def contains(self, schedule: Schedule) -> bool:
        """Whether the decisions of a schedule fit this loop nest."""
        if [axis for axis, _ in schedule.tiles] != [ax.name for ax in self.nest.axes]:
            return False
        for axis, factors in schedule.tiles:
            if len(factors) != self.num_levels(axis) - 1 or any(f < 1 for f in factors):
                return False
        return (
            sorted(schedule.order) == sorted(self.loop_names())
            and 0 <= schedule.parallel <= MAX_PARALLEL
            and schedule.unroll in UNROLL_CHOICES
        )

    def is_perfect(self, schedule: Schedule, axes: Optional[Sequence[str]] = None) -> bool:
        """Whether the tiles of the given axes (all by default) divide evenly."""
        for ax in self.nest.axes:
            if axes is not None and ax.name not in axes:
                continue
            if ax.extent % _prod(schedule.tile(ax.name)) != 0:
                return False
        return True
