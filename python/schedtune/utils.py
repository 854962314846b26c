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
"""Utilities for schedtune"""
import hashlib
import inspect
from functools import lru_cache
from math import isqrt
from typing import List, Optional, Tuple

import numpy as np  # type: ignore
import psutil  # type: ignore


def cpu_count(logical: bool = True) -> int:
    """Return the number of logical or physical CPUs in the system

    Parameters
    ----------
    logical : bool = True
        If True, return the number of logical CPUs, otherwise return the number of physical CPUs

    Returns
    -------
    cpu_count : int
        The number of logical or physical CPUs in the system

    Note
    ----
    The search infra intentionally does not read `OMP_NUM_THREADS` or similar variables.
    These are dedicated to controlling the runtime behavior of generated kernels,
    instead of the host-side search.
    """
    return psutil.cpu_count(logical=logical) or 1


def fork_seed(seed: Optional[int], n: int) -> List[int]:
    # fmt: off
    return np.random.RandomState(seed=seed).randint(1, 2 ** 30, size=n).tolist()
    # fmt: on


def shash2hex(text: str) -> str:
    """Get the structural hash of a printed IR fragment.

    Parameters
    ----------
    text : str
        The deterministic text form of the IR, see :py:func:`schedtune.ir.script`.

    Returns
    -------
    result : str
        The hexadecimal digest.
    """
    return hashlib.md5(text.encode()).hexdigest()


def current_line_number() -> int:
    """Returns the line number this function is called on"""
    return inspect.currentframe().f_back.f_lineno  # type: ignore


def ceildiv(a: int, b: int) -> int:
    return (a + b - 1) // b


@lru_cache(maxsize=None)
def get_factors(n: int) -> Tuple[int, ...]:
    """Return the factors of a given number n as a sorted tuple."""
    factors = []
    for i in range(1, isqrt(n) + 1):
        if n % i == 0:
            factors.append(i)
            j = n // i
            if j != i:
                factors.append(j)
    factors.sort()
    return tuple(factors)


@lru_cache(maxsize=None)
def prime_factors(n: int) -> Tuple[int, ...]:
    """Return the prime factorization of n with multiplicity, in ascending order."""
    result = []
    p = 2
    while p * p <= n:
        while n % p == 0:
            result.append(p)
            n //= p
        p += 1
    if n > 1:
        result.append(n)
    return tuple(result)


def array_mean(arr) -> float:
    """Compute mean of the elements in a python sequence

    Parameters
    ----------
    arr: Sequence[float]
        The input sequence

    Returns
    -------
    mean: float
        The mean of the elements, or 0 for an empty sequence
    """
    if not arr:
        return 0.0
    return float(sum(arr)) / len(arr)
