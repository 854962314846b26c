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
# pylint: disable=invalid-name, missing-function-docstring
"""Common workloads for schedtune test cases"""
from ..ir import BinaryOp, Buffer, For, Load, LoweredFunc, Store
from ..task import TuneTask


def matmul_func(N, M, K, dtype="float32", name="matmul"):
    """C[i, j] += A[i, k] * B[k, j], with ``k`` the reduction axis."""
    A = Buffer("A", (N, K), dtype)
    B = Buffer("B", (K, M), dtype)
    C = Buffer("C", (N, M), dtype)
    update = BinaryOp(
        "+",
        Load(C, ["i", "j"]),
        BinaryOp("*", Load(A, ["i", "k"]), Load(B, ["k", "j"])),
    )
    body = For("i", N, For("j", M, For("k", K, Store(C, ["i", "j"], update))))
    return LoweredFunc(name, [A, B, C], body)


def elementwise_func(N, M, dtype="float32", name="add"):
    A = Buffer("A", (N, M), dtype)
    B = Buffer("B", (N, M), dtype)
    C = Buffer("C", (N, M), dtype)
    value = BinaryOp("+", Load(A, ["i", "j"]), Load(B, ["i", "j"]))
    body = For("i", N, For("j", M, Store(C, ["i", "j"], value)))
    return LoweredFunc(name, [A, B, C], body)


def get_sample_task(N=100, M=200, K=50, target="llvm"):
    """A matmul task, 100x200 with a reduction of 50 by default."""
    return TuneTask(f"matmul_{N}x{M}x{K}", matmul_func(N, M, K), target)
