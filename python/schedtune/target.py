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
"""Hardware target descriptor.

A target is written the same way as a TVM target string, e.g.
``"llvm --num-cores=16 --vector-lanes=8"``. Only the attributes that the
tuning core reasons about are understood.
"""
from typing import Dict, Union

# kind -> default attributes
_DEFAULT_ATTRS: Dict[str, Dict[str, int]] = {
    "llvm": {"num-cores": 4, "vector-lanes": 8, "cache-bytes": 32 * 1024},
    "cuda": {"num-cores": 80, "vector-lanes": 4, "cache-bytes": 48 * 1024},
}


class Target(object):
    """Target device information.

    Parameters
    ----------
    target : Union[str, Target]
        The target string, or a target to copy.

    Attributes
    ----------
    kind : str
        The target kind, e.g. ``llvm`` or ``cuda``.
    num_cores : int
        Number of cores available to parallel loops.
    vector_lanes : int
        The native vector width in elements.
    cache_bytes : int
        The size of the fastest data cache (or shared memory) in bytes.
    """

    def __init__(self, target: Union[str, "Target"] = "llvm"):
        if isinstance(target, Target):
            target = str(target)
        fields = target.split()
        if not fields:
            raise ValueError("Target string can not be empty")
        self.kind = fields[0]
        attrs = dict(_DEFAULT_ATTRS.get(self.kind, _DEFAULT_ATTRS["llvm"]))
        for opt in fields[1:]:
            if not opt.startswith("--") or "=" not in opt:
                raise ValueError(f"Invalid target option: {opt!r} in {target!r}")
            key, value = opt[2:].split("=", 1)
            if key not in attrs:
                raise ValueError(f"Unknown target option: {key!r} in {target!r}")
            attrs[key] = int(value)
            if attrs[key] <= 0:
                raise ValueError(f"Target option {key!r} must be positive, got {value}")
        self._attrs = attrs

    @property
    def num_cores(self) -> int:
        return self._attrs["num-cores"]

    @property
    def vector_lanes(self) -> int:
        return self._attrs["vector-lanes"]

    @property
    def cache_bytes(self) -> int:
        return self._attrs["cache-bytes"]

    def __str__(self) -> str:
        opts = " ".join(f"--{k}={v}" for k, v in sorted(self._attrs.items()))
        return f"{self.kind} {opts}"

    def __repr__(self) -> str:
        return f"Target({str(self)!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Target) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))
