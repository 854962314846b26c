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
"""Definition of a tuning task."""
from typing import List, Optional, Sequence, Tuple, Union

from .analysis import LoopNest, extract_loop_nest
from .ir import LoweredFunc, script
from .target import Target
from .utils import shash2hex


class TuneTask(object):
    """A computation to tune for one hardware target.

    The first lowered function is the kernel being scheduled, the remaining
    ones are passed through unchanged.

    Parameters
    ----------
    task_name : str
        The name of the task, used in logs.
    lowered_funcs : Sequence[LoweredFunc]
        The initial lowered functions.
    target : Union[str, Target]
        The hardware target.

    Attributes
    ----------
    signature : str
        Stable key derived from the structure of the initial functions and
        the target, used to index the database.
    """

    def __init__(
        self,
        task_name: str,
        lowered_funcs: Union[LoweredFunc, Sequence[LoweredFunc]],
        target: Union[str, Target] = "llvm",
    ):
        if isinstance(lowered_funcs, LoweredFunc):
            lowered_funcs = [lowered_funcs]
        if not lowered_funcs:
            raise ValueError(f"Task {task_name} has no lowered function")
        self._task_name = task_name
        self._lowered_funcs: Tuple[LoweredFunc, ...] = tuple(lowered_funcs)
        self._target = Target(target)
        text = "\n".join(script(f) for f in self._lowered_funcs)
        self._signature = shash2hex(f"{text}\n{self._target}")
        self._loop_nest: Optional[LoopNest] = None

    @property
    def task_name(self) -> str:
        return self._task_name

    @property
    def lowered_funcs(self) -> Tuple[LoweredFunc, ...]:
        return self._lowered_funcs

    @property
    def target(self) -> Target:
        return self._target

    @property
    def signature(self) -> str:
        return self._signature

    @property
    def func(self) -> LoweredFunc:
        """The function being scheduled."""
        return self._lowered_funcs[0]

    @property
    def loop_nest(self) -> LoopNest:
        if self._loop_nest is None:
            self._loop_nest = extract_loop_nest(self.func)
        return self._loop_nest

    def with_func(self, func: LoweredFunc) -> List[LoweredFunc]:
        """The lowered functions with the scheduled kernel replaced by ``func``."""
        return [func] + list(self._lowered_funcs[1:])

    def __repr__(self) -> str:
        return f"TuneTask(name={self._task_name}, signature={self._signature[:8]}, target={self._target})"
