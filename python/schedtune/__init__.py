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
"""Package `schedtune`. Per-task schedule tuning of lowered tensor programs."""
from . import (
    analysis,
    cost_model,
    database,
    feature,
    ir,
    measure,
    search_strategy,
)
from .analysis import VerifyResult, extract_loop_nest, verify_well_formed
from .cost_model import CostModel, RandomModel, XGBConfig, XGBModel
from .database import Database, JSONDatabase, MemoryDatabase, TuningRecord
from .env import GLOBAL_SCOPE
from .error import ConfigurationError, DatabaseError, TuneError
from .measure import LocalMeasurer, MeasureErrorNo, MeasureInput, MeasureResult, Measurer
from .profiler import Profiler
from .schedule import Schedule, SearchSpace
from .search_strategy import EvolutionarySearch, SearchState
from .target import Target
from .task import TuneTask
from .task_optimizer import TaskOptimizer
from .tune import tune_tasks
from .tuning import RoundRecord, TuningOptions, TuningResult

__version__ = "0.1.0"
