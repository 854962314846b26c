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
"""Feature extraction for the learned cost model.

We extract one feature vector per scheduled loop nest. The vector has a fixed
length ``NUM_FEATURES`` and consists of

- loop structure: trip counts, depth, annotation extents,
- memory behaviour: whether the working set of the inner loops fits in cache,
- per buffer access (at most ``MAX_BUFFERS``, the stored buffer first):
  innermost stride, contiguity, reuse and footprint.

Extents and sizes are log-scaled with ``log2(1 + x)``.
"""
import math
from typing import Dict, List, Sequence, Tuple

import numpy as np  # type: ignore

from .analysis import collect_loops
from .ir import For, ForKind, IndexExpr, Load, LoweredFunc, post_order_visit
from .target import Target

MAX_BUFFERS = 3
LOOP_FEATURES = 10
BUFFER_FEATURES = 4
NUM_FEATURES = LOOP_FEATURES + MAX_BUFFERS * BUFFER_FEATURES

DEFAULT_FEATURE_NAMES = [
    "log_total_iters",
    "num_loops",
    "log_innermost_extent",
    "is_vectorized",
    "vector_lane_utilization",
    "log_parallel_extent",
    "core_utilization",
    "log_unrolled_extent",
    "innermost_is_reduce",
    "cache_fit_ratio",
] + [
    f"buffer{i}.{name}"
    for i in range(MAX_BUFFERS)
    for name in ("log_innermost_stride", "is_contiguous", "is_reused", "log_inner_footprint")
]


def _log(x: float) -> float:
    return math.log2(1.0 + x)


def _flatten(indices: Sequence[IndexExpr], strides: Sequence[int]) -> IndexExpr:
    flat = IndexExpr()
    for index, stride in zip(indices, strides):
        flat = flat + index * stride
    return flat


def _footprint(indices, shape, loops: Sequence[For]) -> int:
    """Number of distinct elements touched by one access over the given loops."""
    extents = {loop.loop_var: loop.extent for loop in loops}
    elems = 1
    for index, dim in zip(indices, shape):
        span = 1 + sum(abs(c) * (extents[v] - 1) for v, c in index.terms if v in extents)
        elems *= min(span, dim)
    return elems


def _accesses(store) -> List[Tuple[object, Tuple[IndexExpr, ...]]]:
    """Unique ``(buffer, indices)`` accesses, the store first."""
    result = [(store.buffer, store.indices)]

    def fvisit(node):
        if isinstance(node, Load) and (node.buffer, node.indices) not in result:
            result.append((node.buffer, node.indices))

    post_order_visit(store.value, fvisit)
    return result


def extract_features(body, target: Target) -> np.ndarray:
    """Extract the feature vector of a scheduled loop nest.

    Parameters
    ----------
    body : Union[Stmt, LoweredFunc]
        The scheduled perfect loop nest, or a function whose body is one.
    target : Target
        The hardware target.

    Returns
    -------
    features : np.ndarray
        A float32 vector of length ``NUM_FEATURES``.
    """
    if isinstance(body, LoweredFunc):
        body = body.body
    loops, store = collect_loops(body)
    features = np.zeros(NUM_FEATURES, dtype="float32")

    innermost = loops[-1]
    kind_extents: Dict[ForKind, int] = {}
    for loop in loops:
        kind_extents[loop.kind] = kind_extents.get(loop.kind, 1) * loop.extent
    store_vars = {v for index in store.indices for v in index.vars}
    accesses = _accesses(store)

    features[0] = _log(float(np.prod([loop.extent for loop in loops], dtype="float64")))
    features[1] = len(loops)
    features[2] = _log(innermost.extent)
    if innermost.kind == ForKind.VECTORIZED:
        features[3] = 1.0
        features[4] = min(innermost.extent, target.vector_lanes) / target.vector_lanes
    parallel_extent = kind_extents.get(ForKind.PARALLEL, 0)
    features[5] = _log(parallel_extent)
    features[6] = min(parallel_extent, target.num_cores) / target.num_cores
    features[7] = _log(kind_extents.get(ForKind.UNROLLED, 0))
    features[8] = float(innermost.loop_var not in store_vars)

    # Deepest suffix of the nest whose working set fits in cache.
    fitting = 0
    for depth in range(len(loops) - 1, -1, -1):
        inner = loops[depth:]
        working_set = sum(
            _footprint(indices, buf.shape, inner) * buf.dtype_bytes for buf, indices in accesses
        )
        if working_set > target.cache_bytes:
            break
        fitting += 1
    features[9] = fitting / len(loops)

    for i, (buf, indices) in enumerate(accesses[:MAX_BUFFERS]):
        offset = LOOP_FEATURES + i * BUFFER_FEATURES
        stride = abs(_flatten(indices, buf.strides).coeff(innermost.loop_var))
        features[offset] = _log(stride)
        features[offset + 1] = float(stride == 1)
        features[offset + 2] = float(stride == 0)
        inner_bytes = _footprint(indices, buf.shape, loops[-2:]) * buf.dtype_bytes
        features[offset + 3] = _log(inner_bytes)
    return features


def extract_features_batch(bodies, target: Target) -> np.ndarray:
    """Stack the feature vectors of several loop nests into a 2-d array."""
    if not bodies:
        return np.zeros((0, NUM_FEATURES), dtype="float32")
    return np.stack([extract_features(body, target) for body in bodies])
