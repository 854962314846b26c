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
# pylint: disable=missing-class-docstring
"""Deterministic measurers for testing the tuning loop"""
import threading
import time
from typing import List, Optional, Sequence

import numpy as np  # type: ignore

from ..analysis import collect_loops
from ..ir import ForKind, IndexExpr, Load, post_order_visit
from ..measure import MeasureErrorNo, MeasureInput, MeasureResult, Measurer, make_error_result
from ..target import Target


class StubMeasurer(Measurer):
    """Returns scripted costs in the order candidates are measured.

    Parameters
    ----------
    costs : Sequence[Optional[float]]
        The costs to return, one per measured candidate across all batches.
        None stands for a failed measurement.
    default_cost : Optional[float]
        The cost returned once the script is exhausted, None for failure.
    """

    def __init__(
        self, costs: Sequence[Optional[float]] = (), default_cost: Optional[float] = None
    ):
        self.costs = list(costs)
        self.default_cost = default_cost
        self.batches: List[List[MeasureInput]] = []
        self._num_measured = 0
        self._lock = threading.Lock()

    def measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        results = []
        with self._lock:
            self.batches.append(list(inputs))
            for _ in inputs:
                if self._num_measured < len(self.costs):
                    cost = self.costs[self._num_measured]
                else:
                    cost = self.default_cost
                self._num_measured += 1
                if cost is None:
                    results.append(
                        make_error_result(MeasureErrorNo.RUNTIME_DEVICE, "scripted failure")
                    )
                else:
                    results.append(
                        MeasureResult(
                            (float(cost),), MeasureErrorNo.NO_ERROR, None, 0.0, time.time()
                        )
                    )
        return results

    @property
    def inputs(self) -> List[MeasureInput]:
        """All measured inputs, in order."""
        return [inp for batch in self.batches for inp in batch]


class DummyMeasurer(Measurer):
    """Returns seeded random costs."""

    def __init__(self, seed: Optional[int] = None):
        self.rng = np.random.RandomState(seed)
        self._lock = threading.Lock()

    def measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        with self._lock:
            costs = self.rng.uniform(1e-4, 1e-2, size=len(inputs)).tolist()
        return [
            MeasureResult((cost,), MeasureErrorNo.NO_ERROR, None, 0.0, time.time())
            for cost in costs
        ]


class AnalyticalMeasurer(Measurer):
    """Estimates the run time of a candidate from its loop structure.

    The estimate divides the number of iterations by the parallel and vector
    speedups, then charges strided innermost accesses. Nothing is executed,
    so the cost of a candidate only depends on its structure.
    """

    CYCLE_TIME = 1e-9

    def __init__(self, target: Optional[Target] = None):
        self.target = target

    def estimate(self, inp: MeasureInput) -> float:
        target = self.target if self.target is not None else inp.task.target
        loops, store = collect_loops(inp.func.body)
        iters = float(np.prod([loop.extent for loop in loops], dtype="float64"))

        parallel = 1
        for loop in loops:
            if loop.kind == ForKind.PARALLEL:
                parallel *= loop.extent
        speedup = min(parallel, target.num_cores)

        innermost = loops[-1]
        if innermost.kind == ForKind.VECTORIZED:
            speedup *= min(innermost.extent, target.vector_lanes)
        if any(loop.kind == ForKind.UNROLLED for loop in loops):
            speedup *= 1.1

        accesses = [(store.buffer, store.indices)]

        def fvisit(node):
            if isinstance(node, Load):
                accesses.append((node.buffer, node.indices))

        post_order_visit(store.value, fvisit)
        penalty = 1.0
        for buf, indices in accesses:
            flat = IndexExpr()
            for index, stride in zip(indices, buf.strides):
                flat = flat + index * stride
            stride = abs(flat.coeff(innermost.loop_var))
            if stride > 1:
                penalty += min(stride * buf.dtype_bytes, 64) / 16.0
        return iters * penalty / speedup * self.CYCLE_TIME

    def measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        return [
            MeasureResult((self.estimate(inp),), MeasureErrorNo.NO_ERROR, None, 0.0, time.time())
            for inp in inputs
        ]
