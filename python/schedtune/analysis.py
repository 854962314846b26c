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
"""Analysis on lowered functions: structural verification and loop nest extraction."""
from collections import namedtuple
from typing import Dict, List, Tuple

from .ir import BinaryOp, Buffer, FloatImm, For, ForKind, Load, LoweredFunc, SeqStmt, Store


class VerifyResult(namedtuple("VerifyResult", ["valid", "reason"])):
    """The outcome of a structural check.

    Parameters
    ----------
    valid : bool
        Whether the function is well formed.
    reason : str
        Why the function was rejected, empty when valid.
    """

    __slots__ = ()


_OK = VerifyResult(True, "")


class _Verifier(object):
    """Walks a function keeping the extents of the enclosing loops."""

    def __init__(self, func: LoweredFunc):
        self.buffers: Dict[str, Buffer] = {}
        for buf in list(func.args) + list(func.alloc_buffers):
            self.buffers[buf.name] = buf
        self.extents: Dict[str, int] = {}

    def visit_stmt(self, stmt) -> VerifyResult:
        if isinstance(stmt, For):
            return self.visit_for(stmt)
        if isinstance(stmt, SeqStmt):
            for s in stmt.seq:
                result = self.visit_stmt(s)
                if not result.valid:
                    return result
            return _OK
        if isinstance(stmt, Store):
            result = self.visit_access(stmt.buffer, stmt.indices)
            if not result.valid:
                return result
            return self.visit_expr(stmt.value)
        return VerifyResult(False, f"unknown statement {type(stmt).__name__}")

    def visit_for(self, loop: For) -> VerifyResult:
        if loop.loop_var in self.extents:
            return VerifyResult(False, f"loop variable {loop.loop_var} is defined twice")
        if loop.extent <= 0:
            return VerifyResult(False, f"loop {loop.loop_var} has non-positive extent {loop.extent}")
        if loop.kind == ForKind.VECTORIZED and not isinstance(loop.body, Store):
            return VerifyResult(False, f"vectorized loop {loop.loop_var} is not innermost")
        self.extents[loop.loop_var] = loop.extent
        try:
            return self.visit_stmt(loop.body)
        finally:
            del self.extents[loop.loop_var]

    def visit_expr(self, expr) -> VerifyResult:
        if isinstance(expr, Load):
            return self.visit_access(expr.buffer, expr.indices)
        if isinstance(expr, BinaryOp):
            result = self.visit_expr(expr.a)
            return result if not result.valid else self.visit_expr(expr.b)
        if isinstance(expr, FloatImm):
            return _OK
        return VerifyResult(False, f"unknown expression {type(expr).__name__}")

    def visit_access(self, buffer: Buffer, indices) -> VerifyResult:
        declared = self.buffers.get(buffer.name)
        if declared is None:
            return VerifyResult(False, f"buffer {buffer.name} is not an argument or allocation")
        if declared.shape != buffer.shape:
            return VerifyResult(
                False,
                f"buffer {buffer.name} accessed with shape {buffer.shape}, "
                f"declared {declared.shape}",
            )
        if len(indices) != declared.ndim:
            return VerifyResult(
                False, f"buffer {buffer.name} indexed with {len(indices)} of {declared.ndim} dims"
            )
        for dim, (index, extent) in enumerate(zip(indices, declared.shape)):
            unbound = [v for v in index.vars if v not in self.extents]
            if unbound:
                return VerifyResult(False, f"dangling loop variable {unbound[0]} in {buffer.name}")
            lo, hi = index.bound(self.extents)
            if lo < 0 or hi >= extent:
                return VerifyResult(
                    False,
                    f"index {index} of {buffer.name} dim {dim} spans [{lo}, {hi}], "
                    f"out of range [0, {extent - 1}]",
                )
        return _OK


def verify_well_formed(func: LoweredFunc) -> VerifyResult:
    """Check that a lowered function is structurally well formed.

    The following are rejected:

    - indices whose range, over all iterations, leaves the declared shape;
    - accesses whose arity or shape disagrees with the declared buffer;
    - references to unbound loop variables or undeclared buffers;
    - non-positive loop extents and duplicated loop variables;
    - vectorized loops that are not innermost.

    Parameters
    ----------
    func : LoweredFunc
        The function to check.

    Returns
    -------
    result : VerifyResult
        Whether the function is valid and, if not, the first problem found.
    """
    return _Verifier(func).visit_stmt(func.body)


class Axis(namedtuple("Axis", ["name", "extent", "is_reduce"])):
    __slots__ = ()


class LoopNest(namedtuple("LoopNest", ["axes", "store"])):
    """A perfect loop nest with a single store at the innermost level.

    Parameters
    ----------
    axes : Tuple[Axis, ...]
        The loops from outermost to innermost.
    store : Store
        The innermost statement.
    """

    __slots__ = ()

    @property
    def spatial_axes(self) -> Tuple[Axis, ...]:
        return tuple(ax for ax in self.axes if not ax.is_reduce)

    @property
    def reduce_axes(self) -> Tuple[Axis, ...]:
        return tuple(ax for ax in self.axes if ax.is_reduce)

    def axis(self, name: str) -> Axis:
        for ax in self.axes:
            if ax.name == name:
                return ax
        raise KeyError(name)


def extract_loop_nest(func: LoweredFunc) -> LoopNest:
    """Extract the perfect loop nest a schedule acts on.

    An axis is a reduction axis when it does not appear in the indices of the
    stored buffer.

    Raises
    ------
    ValueError
        If the body is not a perfect loop nest ending in one store.
    """
    loops: List[For] = []
    stmt = func.body
    while isinstance(stmt, For):
        loops.append(stmt)
        stmt = stmt.body
    if not isinstance(stmt, Store):
        raise ValueError(f"Body of {func.name} is not a perfect loop nest ending in a store")
    if not loops:
        raise ValueError(f"Body of {func.name} has no loops to schedule")
    store_vars = {v for index in stmt.indices for v in index.vars}
    axes = tuple(Axis(l.loop_var, l.extent, l.loop_var not in store_vars) for l in loops)
    return LoopNest(axes, stmt)


def collect_loops(stmt) -> Tuple[List[For], Store]:
    """Return the loops of a perfect nest, outermost first, and its innermost store."""
    loops: List[For] = []
    while isinstance(stmt, For):
        loops.append(stmt)
        stmt = stmt.body
    if not isinstance(stmt, Store):
        raise ValueError("Statement is not a perfect loop nest ending in a store")
    return loops, stmt
