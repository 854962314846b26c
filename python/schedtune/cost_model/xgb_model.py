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
"""Cost model based on xgboost"""
import math
import threading
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import numpy as np  # type: ignore

from ..feature import NUM_FEATURES, extract_features
from ..logging import get_logger
from ..measure import MeasureResult, mean_cost
from ..task import TuneTask
from ..utils import cpu_count
from .cost_model import CostModel

logger = get_logger(__name__)  # pylint: disable=invalid-name

# The cost assigned to failed measurements
FAILURE_COST = 1e9


class XGBConfig(NamedTuple):
    """XGBoost model configuration

    Parameters
    ----------
    max_depth : int
        The maximum depth.
    gamma : float
        The gamma.
    min_child_weight : float
        The minimum child weight.
    eta : float
        The eta, learning rate.
    seed : int
        The random seed.
    nthread : Optional[int],
        The number of threads to use.
        Default is None, which means to use physical number of cores.
    num_boost_round : int
        The number of boosting rounds of each retraining.
    """

    max_depth: int = 10
    gamma: float = 0.001
    min_child_weight: float = 0
    eta: float = 0.2
    seed: int = 43
    nthread: Optional[int] = None
    num_boost_round: int = 64

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_depth": self.max_depth,
            "gamma": self.gamma,
            "min_child_weight": self.min_child_weight,
            "eta": self.eta,
            "seed": self.seed,
            "nthread": self.nthread if self.nthread is not None else cpu_count(logical=False),
            "objective": "reg:squarederror",
            "verbosity": 0,
        }


class XGBModel(CostModel):
    """XGBoost model

    The model regresses the logarithm of measured costs from the features of
    :py:func:`schedtune.feature.extract_features`. It keeps every sample it has
    seen and is retrained from scratch on each update. Until
    ``num_warmup_samples`` samples are collected it predicts zeros, which
    leaves the ranking to the random tie breaking of the search.

    Parameters
    ----------
    config : XGBConfig
        The XGBoost model config.
    num_warmup_samples : int
        The number of samples that are used for warmup, i.e., the first few samples are predicted
        with zero.
    """

    def __init__(
        self,
        config: XGBConfig = XGBConfig(),
        num_warmup_samples: int = 32,
    ):
        # pylint: disable=import-outside-toplevel
        import xgboost as xgb

        # pylint: enable=import-outside-toplevel

        self.xgb = xgb
        self.config = config
        self.num_warmup_samples = num_warmup_samples
        self.booster: Optional["xgb.Booster"] = None
        self.features: List[np.ndarray] = []
        self.labels: List[float] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self.labels)

    def predict(self, task: TuneTask, states: Sequence) -> np.ndarray:
        if not states:
            return np.zeros(0, dtype="float64")
        feats = np.stack([extract_features(state.body, task.target) for state in states])
        with self._lock:
            if self.booster is None or len(self.labels) < self.num_warmup_samples:
                return np.zeros(len(states), dtype="float64")
            pred = self.booster.predict(self.xgb.DMatrix(feats))
        return np.asarray(pred, dtype="float64")

    def update(
        self, task: TuneTask, states: Sequence, results: Sequence[MeasureResult]
    ) -> None:
        if not states:
            return
        if len(states) != len(results):
            raise ValueError(
                f"Mismatched number of states ({len(states)}) and results ({len(results)})"
            )
        # failures only train alongside at least one success
        if not any(res.is_success for res in results):
            return
        new_feats = [extract_features(state.body, task.target) for state in states]
        new_labels = []
        for res in results:
            cost = mean_cost(res)
            new_labels.append(math.log(cost if math.isfinite(cost) and cost > 0 else FAILURE_COST))
        with self._lock:
            self.features.extend(new_feats)
            self.labels.extend(new_labels)
            self._train()
        logger.debug("XGBModel trained on %d samples", len(self.labels))

    def _train(self) -> None:
        if len(self.labels) < self.num_warmup_samples:
            return
        dtrain = self.xgb.DMatrix(
            np.stack(self.features), label=np.asarray(self.labels, dtype="float32")
        )
        self.booster = self.xgb.train(
            self.config.to_dict(), dtrain, num_boost_round=self.config.num_boost_round
        )

    def save(self, path: str) -> None:
        """Save the collected samples and the booster.

        The booster is stored as raw json bytes next to the samples.
        """
        with self._lock:
            feats = (
                np.stack(self.features)
                if self.features
                else np.zeros((0, NUM_FEATURES), dtype="float32")
            )
            labels = np.asarray(self.labels, dtype="float64")
            raw = (
                np.frombuffer(bytes(self.booster.save_raw("json")), dtype="uint8")
                if self.booster is not None
                else np.zeros(0, dtype="uint8")
            )
        with open(path, "wb") as ofile:
            np.savez(ofile, features=feats, labels=labels, booster=raw)

    def load(self, path: str) -> None:
        with np.load(path) as data:
            feats = data["features"]
            labels = data["labels"]
            raw = data["booster"]
        with self._lock:
            self.features = list(feats)
            self.labels = labels.tolist()
            self.booster = None
            if raw.size:
                self.booster = self.xgb.Booster()
                self.booster.load_model(bytearray(raw.tobytes()))
