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
"""The core tuning API"""
import os.path as osp
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Union

from typing_extensions import Literal

from .cost_model import CostModel
from .database import Database, JSONDatabase, MemoryDatabase
from .env import GLOBAL_SCOPE
from .logging import get_logger, get_loggers_from_work_dir
from .measure import Measurer
from .task import TuneTask
from .task_optimizer import TaskOptimizer
from .tuning import TuningOptions, TuningResult
from .utils import cpu_count, fork_seed

logger = get_logger(__name__)  # pylint: disable=invalid-name


def tune_tasks(
    *,
    tasks: Sequence[TuneTask],
    measurer: Measurer,
    options: Union[TuningOptions, dict],
    database: Union[Database, Literal["json", "memory"]] = "memory",
    cost_model: Union[CostModel, Literal["xgb", "random"]] = "xgb",
    num_threads: Optional[int] = None,
    work_dir: Optional[str] = None,
) -> List[TuningResult]:
    """Tune a list of tasks concurrently.

    Every task gets its own :py:class:`TaskOptimizer`; the measurer, the
    database and the cost model are shared by all of them.

    Parameters
    ----------
    tasks : Sequence[TuneTask]
        The list of tasks to tune.
    measurer : Measurer
        The measurer.
    options : Union[TuningOptions, dict]
        The tuning options of every task. When a seed is given, each task
        searches with its own seed forked from it.
    database : Union[Database, Literal["json", "memory"]]
        The database. ``json`` stores records in ``work_dir/database.json``.
    cost_model : Union[CostModel, Literal["xgb", "random"]]
        The cost model.
    num_threads : Optional[int]
        The number of tasks tuned at the same time.
    work_dir : Optional[str]
        The working directory for the database and per-task log files.

    Returns
    -------
    results : List[TuningResult]
        The tuning results, in the order of `tasks`.
    """
    if isinstance(options, dict):
        options = TuningOptions.from_dict(options)
    options.validate()
    if database == "json":
        if work_dir is None:
            raise ValueError("`work_dir` is required for the json database")
        database = JSONDatabase(osp.join(work_dir, "database.json"))
    elif database == "memory":
        database = MemoryDatabase()
    elif not isinstance(database, Database):
        raise ValueError(f"Unknown database: {database}")
    if not isinstance(cost_model, CostModel):
        cost_model = CostModel.create(cost_model)
    if not tasks:
        return []

    if work_dir is not None:
        loggers = get_loggers_from_work_dir(work_dir, [task.task_name for task in tasks])
    else:
        loggers = [
            get_logger(f"{__name__}.task_{i}_{task.task_name}") for i, task in enumerate(tasks)
        ]
    if options.seed is not None:
        task_options = [options._replace(seed=s) for s in fork_seed(options.seed, len(tasks))]
    else:
        task_options = [options] * len(tasks)
    optimizers = [
        TaskOptimizer(task, measurer, database, cost_model=cost_model, logger=task_logger)
        for task, task_logger in zip(tasks, loggers)
    ]

    num_workers = min(len(tasks), num_threads or cpu_count())
    logger.info("Tuning %d tasks with %d workers", len(tasks), num_workers)
    old_in_tuning = GLOBAL_SCOPE.in_tuning
    GLOBAL_SCOPE.in_tuning = True
    try:
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            futures = [
                executor.submit(optimizer.optimize, opts)
                for optimizer, opts in zip(optimizers, task_options)
            ]
            results = [future.result() for future in futures]
    finally:
        GLOBAL_SCOPE.in_tuning = old_in_tuning
    for task, result in zip(tasks, results):
        logger.info(
            "Task %s: %s after %d rounds, best cost %s",
            task.task_name,
            result.stop_reason,
            result.num_rounds,
            "N/A" if result.cost is None else f"{result.cost:.6g}",
        )
    return results
