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
"""Cost models that estimate the performance of programs"""
import threading
from typing import Optional, Sequence

import numpy as np  # type: ignore
from typing_extensions import Literal

from ..measure import MeasureResult
from ..task import TuneTask


class CostModel(object):
    """The base class for cost model.

    A cost model maps candidates to predicted costs, lower is better. The
    predictions are only used for ranking and are never treated as real costs.
    Implementations must tolerate concurrent calls from tasks sharing them.
    """

    def predict(self, task: TuneTask, states: Sequence) -> np.ndarray:
        """Predict the costs of candidates.

        Parameters
        ----------
        task : TuneTask
            The task the candidates belong to.
        states : Sequence[SearchState]
            The candidates.

        Returns
        -------
        result : np.ndarray
            The predicted costs, one per candidate.
        """
        raise NotImplementedError()

    def update(
        self, task: TuneTask, states: Sequence, results: Sequence[MeasureResult]
    ) -> None:
        """Update the cost model with real measurements.

        An empty or all-failed batch leaves the model unchanged.

        Parameters
        ----------
        task : TuneTask
            The task the candidates belong to.
        states : Sequence[SearchState]
            The measured candidates.
        results : Sequence[MeasureResult]
            The measure results, one per candidate.
        """
        raise NotImplementedError()

    def save(self, path: str) -> None:
        """Save the cost model to given file location.

        Parameters
        ----------
        path : str
            The file path.
        """
        raise NotImplementedError()

    def load(self, path: str) -> None:
        """Load the cost model from given file location.

        Parameters
        ----------
        path : str
            The file path.
        """
        raise NotImplementedError()

    @staticmethod
    def create(kind: Literal["xgb", "random"], *args, **kwargs) -> "CostModel":
        """Create a CostModel.

        Parameters
        ----------
        kind : Literal["xgb", "random"]
            The kind of the cost model.

        Returns
        -------
        cost_model : CostModel
            The created cost model.
        """
        from . import RandomModel, XGBModel  # pylint: disable=import-outside-toplevel

        if kind == "xgb":
            return XGBModel(*args, **kwargs)
        if kind == "random":
            return RandomModel(*args, **kwargs)
        raise ValueError(f"Unknown CostModel: {kind}")


class RandomModel(CostModel):
    """A model that returns random estimation for all inputs

    Parameters
    ----------
    seed : Optional[int]
        The random seed.
    max_range : int
        The upper bound of the predicted costs.
    """

    def __init__(self, seed: Optional[int] = None, max_range: int = 100):
        self.rng = np.random.RandomState(seed)
        self.max_range = max_range
        self._lock = threading.Lock()

    def predict(self, task: TuneTask, states: Sequence) -> np.ndarray:
        with self._lock:
            return self.rng.uniform(0, self.max_range, size=len(states))

    def update(
        self, task: TuneTask, states: Sequence, results: Sequence[MeasureResult]
    ) -> None:
        pass

    def save(self, path: str) -> None:
        with self._lock:
            _, keys, pos, has_gauss, cached = self.rng.get_state()
        with open(path, "wb") as ofile:
            np.savez(ofile, keys=keys, pos=pos, has_gauss=has_gauss, cached=cached)

    def load(self, path: str) -> None:
        with np.load(path) as data:
            state = (
                "MT19937",
                data["keys"],
                int(data["pos"]),
                int(data["has_gauss"]),
                float(data["cached"]),
            )
        with self._lock:
            self.rng.set_state(state)
