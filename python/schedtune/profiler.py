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
"""A context manager that profiles tuning time cost for different parts."""
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional


class Profiler(object):
    """Tuning time profiler.

    Examples
    --------
    .. code-block:: python

        with Profiler() as profiler:
            optimizer.optimize(options)
        print(profiler.table())
    """

    _stack: List["Profiler"] = []
    _stack_lock = threading.Lock()

    def __init__(self) -> None:
        self._stats: Dict[str, float] = defaultdict(float)
        self._lock = threading.Lock()

    def get(self) -> Dict[str, float]:
        """Get the profiling results in seconds"""
        with self._lock:
            return dict(self._stats)

    def table(self) -> str:
        """Get the profiling results in a table format"""
        stats = self.get()
        total = sum(stats.values()) or 1.0
        width = max([len(name) for name in stats] + [4])
        lines = [f"{'Name':<{width}} | Time (s) | Percentage", "-" * (width + 26)]
        for name, cost in sorted(stats.items(), key=lambda kv: -kv[1]):
            lines.append(f"{name:<{width}} | {cost:8.3f} | {100.0 * cost / total:9.2f}%")
        return "\n".join(lines)

    def _record(self, name: str, elapsed: float) -> None:
        with self._lock:
            self._stats[name] += elapsed

    def __enter__(self) -> "Profiler":
        """Entering the scope of the context manager"""
        with Profiler._stack_lock:
            Profiler._stack.append(self)
        return self

    def __exit__(self, ptype, value, trace) -> None:
        """Exiting the scope of the context manager"""
        with Profiler._stack_lock:
            Profiler._stack.remove(self)

    @staticmethod
    def current() -> Optional["Profiler"]:
        """Get the current profiler."""
        with Profiler._stack_lock:
            return Profiler._stack[-1] if Profiler._stack else None

    @staticmethod
    def timeit(name: str):
        """Timeit a block of code"""

        @contextmanager
        def _timeit():
            profiler = Profiler.current()
            tic = time.perf_counter()
            try:
                yield
            finally:
                if profiler is not None:
                    profiler._record(name, time.perf_counter() - tic)  # pylint: disable=protected-access

        return _timeit()
