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
"""
Distributed measurement infrastructure to measure the runtime costs of tensor programs.

The tuning loop only talks to a :py:class:`Measurer`: it hands over one ordered
batch of :py:class:`MeasureInput` per round and expects one
:py:class:`MeasureResult` per input, in the same order. Failures are reported
as results carrying a :py:class:`MeasureErrorNo` code, never raised.

:py:class:`LocalMeasurer` builds and runs candidates with user provided
functions on a local thread pool and turns exceptions and timeouts into error
codes.
"""
import math
import time
import traceback
from collections import namedtuple
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .logging import get_logger
from .utils import array_mean, ceildiv, cpu_count

logger = get_logger(__name__)  # pylint: disable=invalid-name

MAX_TRACEBACK_INFO_LEN = 512


class MeasureInput(namedtuple("MeasureInput", ["task", "func", "schedule"])):
    """Stores all the necessary inputs for a measurement.

    Parameters
    ----------
    task : TuneTask
        The task the candidate belongs to.
    func : LoweredFunc
        The candidate lowered function.
    schedule : Optional[Schedule]
        The schedule that produced the candidate.
    """

    __slots__ = ()

    def __new__(cls, task, func, schedule=None):
        return super().__new__(cls, task, func, schedule)


class MeasureResult(
    namedtuple("MeasureResult", ["costs", "error_no", "error_msg", "all_cost", "timestamp"])
):
    """Stores all the results of a measurement

    Parameters
    ----------
    costs: Tuple[float, ...]
        If no error occurs during measurement, it is the measured costs of
        each repeat. Otherwise it is empty.
    error_no: int
        The error code, see :py:class:`MeasureErrorNo`.
    error_msg: Optional[str]
        The error message, None if no error.
    all_cost: float
        All cost of this measure, including build and run time.
    timestamp: float
        The absolute time stamp when we finish measurement.
    """

    __slots__ = ()

    @property
    def is_success(self) -> bool:
        return self.error_no == MeasureErrorNo.NO_ERROR

    def __repr__(self):
        return (
            f"MeasureResult(costs={self.costs!r}, error_no={self.error_no}, "
            f"all_cost={self.all_cost:.3f}, timestamp={self.timestamp:.0f})"
        )


class MeasureErrorNo(object):
    """Error type for MeasureResult."""

    NO_ERROR = 0  # No error
    INSTANTIATION_ERROR = 1  # Errors happen when turning a candidate into a program
    COMPILE_HOST = 2  # Errors happen when compiling code on host
    COMPILE_DEVICE = 3  # Errors happen when compiling code on device
    RUNTIME_DEVICE = 4  # Errors happen when run program on device
    WRONG_ANSWER = 5  # Answer is wrong when compared to a reference output
    BUILD_TIMEOUT = 6  # Timeout during compilation
    RUN_TIMEOUT = 7  # Timeout during run
    UNKNOWN_ERROR = 8  # Unknown error

    @staticmethod
    def name_of(error_no: int) -> str:
        for name, value in vars(MeasureErrorNo).items():
            if value == error_no and name.isupper():
                return name
        return f"ERROR_{error_no}"


def mean_cost(result: MeasureResult) -> float:
    """The mean measured cost of a result, ``inf`` for failures."""
    if not result.is_success or not result.costs:
        return float("inf")
    return array_mean(result.costs)


def make_traceback_info(err: Optional[BaseException] = None) -> str:
    """Get the error message from traceback, of ``err`` or of the exception being handled."""
    if err is None:
        info = str(traceback.format_exc())
    else:
        info = "".join(traceback.format_exception(type(err), err, err.__traceback__))
    if len(info) > MAX_TRACEBACK_INFO_LEN:
        info = (
            info[: MAX_TRACEBACK_INFO_LEN // 2] + "\n...\n" + info[-MAX_TRACEBACK_INFO_LEN // 2 :]
        )
    return info


def make_error_result(error_no: int, error_msg: Optional[str] = None, all_cost: float = 0.0):
    """Create a failed measure result."""
    return MeasureResult((), error_no, error_msg, all_cost, time.time())


class Measurer(object):
    """Compiles and executes batches of candidates."""

    def measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        """Measure a batch of candidates.

        Parameters
        ----------
        inputs : Sequence[MeasureInput]
            The candidates to measure.

        Returns
        -------
        results : List[MeasureResult]
            One result per input, in the same order.
        """
        raise NotImplementedError()


class LocalMeasurer(Measurer):
    """Measure candidates with local build and run functions.

    Parameters
    ----------
    build_func : Callable[[MeasureInput], Any]
        Builds a candidate into a runnable artifact.
    run_func : Callable[[MeasureInput, Any], Union[float, Sequence[float]]]
        Runs an artifact and returns its cost in seconds, or one cost per repeat.
    timeout : float = 10
        The time limit in seconds for each of the build and the run of one candidate.
    n_parallel : Optional[int]
        The number of worker threads, the number of CPUs by default.
    poll_interval : float = 0.05
        How often, in seconds, running jobs are checked against the timeout.

    Note
    ----
    A worker thread that exceeds its timeout cannot be interrupted; it is
    abandoned and its result is discarded.
    """

    def __init__(
        self,
        build_func: Callable[[MeasureInput], Any],
        run_func: Callable[[MeasureInput, Any], Any],
        timeout: float = 10,
        n_parallel: Optional[int] = None,
        poll_interval: float = 0.05,
    ):
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.build_func = build_func
        self.run_func = run_func
        self.timeout = timeout
        self.n_parallel = n_parallel or cpu_count()
        self.poll_interval = poll_interval

    def _run_stage(self, func: Callable, args_list: Sequence[tuple]) -> List[Tuple[str, Any, float]]:
        """Run ``func`` over ``args_list`` with a per-job timeout.

        Returns ``(status, value, elapsed)`` per job, status being one of
        ``complete``, ``exception`` and ``timeout``.
        """
        starts: Dict[int, float] = {}

        def _worker(idx, args):
            starts[idx] = time.perf_counter()
            return func(*args)

        results: List[Optional[Tuple[str, Any, float]]] = [None] * len(args_list)
        executor = ThreadPoolExecutor(max_workers=self.n_parallel)
        try:
            futures = {executor.submit(_worker, i, args): i for i, args in enumerate(args_list)}
            # Jobs stuck behind abandoned workers may never start.
            stage_deadline = (
                time.perf_counter()
                + self.timeout * (ceildiv(len(args_list), self.n_parallel) + 1)
            )
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                now = time.perf_counter()
                for future in done:
                    idx = futures[future]
                    elapsed = now - starts.get(idx, now)
                    err = future.exception()
                    if err is None:
                        results[idx] = ("complete", future.result(), elapsed)
                    else:
                        results[idx] = ("exception", make_traceback_info(err), elapsed)
                for future in list(pending):
                    idx = futures[future]
                    start = starts.get(idx)
                    if (start is not None and now - start > self.timeout) or now > stage_deadline:
                        future.cancel()
                        pending.discard(future)
                        results[idx] = ("timeout", None, self.timeout)
        finally:
            executor.shutdown(wait=False)
        return results  # type: ignore

    def measure(self, inputs: Sequence[MeasureInput]) -> List[MeasureResult]:
        inputs = list(inputs)
        if not inputs:
            return []
        results: List[Optional[MeasureResult]] = [None] * len(inputs)

        build_results = self._run_stage(self.build_func, [(inp,) for inp in inputs])
        to_run = []
        for idx, (status, value, elapsed) in enumerate(build_results):
            if status == "complete":
                to_run.append((idx, value, elapsed))
            elif status == "timeout":
                results[idx] = make_error_result(MeasureErrorNo.BUILD_TIMEOUT, None, elapsed)
            else:
                results[idx] = make_error_result(MeasureErrorNo.COMPILE_HOST, value, elapsed)

        run_results = self._run_stage(
            self.run_func, [(inputs[idx], artifact) for idx, artifact, _ in to_run]
        )
        for (idx, _, build_cost), (status, value, elapsed) in zip(to_run, run_results):
            all_cost = build_cost + elapsed
            if status == "timeout":
                results[idx] = make_error_result(MeasureErrorNo.RUN_TIMEOUT, None, all_cost)
            elif status == "exception":
                results[idx] = make_error_result(MeasureErrorNo.RUNTIME_DEVICE, value, all_cost)
            else:
                costs = tuple(float(c) for c in value) if isinstance(value, (list, tuple)) else (
                    float(value),
                )
                if not costs or not all(math.isfinite(c) and c >= 0 for c in costs):
                    results[idx] = make_error_result(
                        MeasureErrorNo.UNKNOWN_ERROR, f"Invalid measured costs: {costs}", all_cost
                    )
                else:
                    results[idx] = MeasureResult(
                        costs, MeasureErrorNo.NO_ERROR, None, all_cost, time.time()
                    )

        for inp, res in zip(inputs, results):
            if not res.is_success:  # type: ignore
                logger.debug(
                    "Measurement of %s failed with %s",
                    inp.func.name,
                    MeasureErrorNo.name_of(res.error_no),  # type: ignore
                )
        return results  # type: ignore

