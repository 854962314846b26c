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
from schedtune.feature import (
    DEFAULT_FEATURE_NAMES,
    NUM_FEATURES,
    extract_features,
    extract_features_batch,
)
from schedtune.schedule import Schedule, SearchSpace
from schedtune.testing import get_sample_task

ORDER = ["i_0", "j_0", "i_1", "j_1", "k_0", "k_1", "i_2", "j_2"]


def _feature(feats, name):
    return feats[DEFAULT_FEATURE_NAMES.index(name)]


def _schedule(**kwargs):
    return Schedule({"i": (2, 5), "j": (5, 8), "k": (5,)}, ORDER, **kwargs)


def test_feature_shape():
    task = get_sample_task()
    feats = extract_features(task.func, task.target)
    assert len(DEFAULT_FEATURE_NAMES) == NUM_FEATURES
    assert feats.shape == (NUM_FEATURES,)
    assert feats.dtype == np.float32
    assert np.all(np.isfinite(feats))
    np.testing.assert_array_equal(feats, extract_features(task.func.body, task.target))


def test_feature_original_nest():
    task = get_sample_task()
    feats = extract_features(task.func, task.target)
    assert _feature(feats, "num_loops") == 3
    assert _feature(feats, "log_total_iters") == pytest.approx(
        np.log2(1.0 + 100 * 200 * 50), rel=1e-6
    )
    assert _feature(feats, "innermost_is_reduce") == 1.0
    # C[i, j] is reused along k, A[i, k] is contiguous and B[k, j] is strided
    assert _feature(feats, "buffer0.is_reused") == 1.0
    assert _feature(feats, "buffer1.is_contiguous") == 1.0
    assert _feature(feats, "buffer2.is_contiguous") == 0.0
    assert _feature(feats, "buffer2.log_innermost_stride") == pytest.approx(
        np.log2(1.0 + 200), rel=1e-6
    )
    assert _feature(feats, "is_vectorized") == 0.0
    assert _feature(feats, "log_parallel_extent") == 0.0


def test_feature_annotations():
    task = get_sample_task()
    nest = task.loop_nest
    plain = extract_features(_schedule().apply(nest), task.target)
    assert _feature(plain, "num_loops") == 8
    assert _feature(plain, "innermost_is_reduce") == 0.0

    vectorized = extract_features(_schedule(vectorize=True).apply(nest), task.target)
    assert _feature(vectorized, "is_vectorized") == 1.0
    assert _feature(vectorized, "vector_lane_utilization") == 1.0

    parallel = extract_features(_schedule(parallel=2).apply(nest), task.target)
    assert _feature(parallel, "log_parallel_extent") == pytest.approx(
        np.log2(1.0 + 10 * 5), rel=1e-6
    )
    assert _feature(parallel, "core_utilization") == 1.0

    unrolled = extract_features(_schedule(unroll=64).apply(nest), task.target)
    assert _feature(unrolled, "log_unrolled_extent") == pytest.approx(
        np.log2(1.0 + 5 * 8), rel=1e-6
    )
    assert not np.array_equal(plain, unrolled)


def test_feature_batch():
    task = get_sample_task()
    space = SearchSpace(task.loop_nest, task.target)
    rng = np.random.RandomState(0)
    bodies = [space.sample(rng).apply(task.loop_nest) for _ in range(4)]
    batch = extract_features_batch(bodies, task.target)
    assert batch.shape == (4, NUM_FEATURES)
    np.testing.assert_array_equal(batch[2], extract_features(bodies[2], task.target))
    assert extract_features_batch([], task.target).shape == (0, NUM_FEATURES)


if __name__ == "__main__":
    schedtune.testing.main()
