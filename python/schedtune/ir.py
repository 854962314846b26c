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
# pylint: disable=invalid-name
"""Lowered-function IR consumed by the tuning core.

The lowering pipeline produces functions in this form and the code generators
consume it; the tuner only rewrites loop nests. All nodes are immutable
named tuples, so structural equality and hashing come for free.

Index expressions are kept in affine form ``sum(coeff * var) + const``, which
is closed under the loop splitting and reordering that schedules perform.
"""
import re
from collections import namedtuple
from enum import IntEnum
from typing import Callable, Dict, Iterable, Tuple, Union


class ForKind(IntEnum):
    """The annotation of a loop."""

    SERIAL = 0
    PARALLEL = 1
    VECTORIZED = 2
    UNROLLED = 3


class Buffer(namedtuple("Buffer", ["name", "shape", "dtype"])):
    """A dense tensor argument or allocation.

    Parameters
    ----------
    name : str
        The name of the buffer.
    shape : Tuple[int, ...]
        The declared shape.
    dtype : str
        The element type, e.g. ``float32``.
    """

    __slots__ = ()

    def __new__(cls, name: str, shape: Iterable[int], dtype: str = "float32"):
        return super().__new__(cls, name, tuple(int(x) for x in shape), dtype)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def dtype_bytes(self) -> int:
        bits = re.findall(r"\d+", self.dtype)
        return max(int(bits[-1]) // 8, 1) if bits else 4

    @property
    def strides(self) -> Tuple[int, ...]:
        """Row-major element strides."""
        strides = []
        acc = 1
        for extent in reversed(self.shape):
            strides.append(acc)
            acc *= extent
        return tuple(reversed(strides))


class IndexExpr(namedtuple("IndexExpr", ["terms", "const"])):
    """Affine index expression ``sum(coeff * var) + const``.

    ``terms`` is a sorted tuple of ``(var_name, coeff)`` pairs with non-zero
    coefficients, so two equal expressions always compare equal.
    """

    __slots__ = ()

    def __new__(cls, terms=(), const: int = 0):
        if isinstance(terms, dict):
            terms = terms.items()
        merged: Dict[str, int] = {}
        for var, coeff in terms:
            merged[var] = merged.get(var, 0) + int(coeff)
        normalized = tuple(sorted((v, c) for v, c in merged.items() if c != 0))
        return super().__new__(cls, normalized, int(const))

    @staticmethod
    def var(name: str) -> "IndexExpr":
        return IndexExpr(((name, 1),), 0)

    @staticmethod
    def convert(value: Union["IndexExpr", int, str]) -> "IndexExpr":
        if isinstance(value, IndexExpr):
            return value
        if isinstance(value, str):
            return IndexExpr.var(value)
        if isinstance(value, int):
            return IndexExpr((), value)
        raise TypeError(f"Cannot convert {type(value).__name__} to IndexExpr")

    @property
    def vars(self) -> Tuple[str, ...]:
        return tuple(v for v, _ in self.terms)

    def coeff(self, var: str) -> int:
        for v, c in self.terms:
            if v == var:
                return c
        return 0

    def __add__(self, other):
        other = IndexExpr.convert(other)
        return IndexExpr(self.terms + other.terms, self.const + other.const)

    __radd__ = __add__

    def __mul__(self, factor: int):
        return IndexExpr(tuple((v, c * factor) for v, c in self.terms), self.const * factor)

    __rmul__ = __mul__

    def substitute(self, vmap: Dict[str, "IndexExpr"]) -> "IndexExpr":
        """Replace variables by expressions; unmapped variables are kept."""
        result = IndexExpr((), self.const)
        for v, c in self.terms:
            result = result + (vmap[v] * c if v in vmap else IndexExpr(((v, c),)))
        return result

    def bound(self, extents: Dict[str, int]) -> Tuple[int, int]:
        """The inclusive range of values when each var ranges over ``[0, extent)``.

        Raises ``KeyError`` for variables without an extent.
        """
        lo = hi = self.const
        for v, c in self.terms:
            span = c * (extents[v] - 1)
            if span > 0:
                hi += span
            else:
                lo += span
        return lo, hi

    def __str__(self) -> str:
        parts = [v if c == 1 else f"{v}*{c}" for v, c in self.terms]
        if self.const or not parts:
            parts.append(str(self.const))
        return " + ".join(parts)


def _indices(indices) -> Tuple[IndexExpr, ...]:
    return tuple(IndexExpr.convert(i) for i in indices)


class FloatImm(namedtuple("FloatImm", ["value", "dtype"])):
    __slots__ = ()

    def __new__(cls, value: float, dtype: str = "float32"):
        return super().__new__(cls, float(value), dtype)


class Load(namedtuple("Load", ["buffer", "indices"])):
    """Read one element of a buffer."""

    __slots__ = ()

    def __new__(cls, buffer: Buffer, indices):
        return super().__new__(cls, buffer, _indices(indices))


class BinaryOp(namedtuple("BinaryOp", ["op", "a", "b"])):
    """Arithmetic on two value expressions, ``op`` is one of ``+ - * max min``."""

    __slots__ = ()
    OPS = ("+", "-", "*", "max", "min")

    def __new__(cls, op: str, a, b):
        if op not in cls.OPS:
            raise ValueError(f"Unsupported binary op: {op}")
        return super().__new__(cls, op, a, b)


class Store(namedtuple("Store", ["buffer", "indices", "value"])):
    """Write one element of a buffer."""

    __slots__ = ()

    def __new__(cls, buffer: Buffer, indices, value):
        return super().__new__(cls, buffer, _indices(indices), value)


class For(namedtuple("For", ["loop_var", "extent", "body", "kind"])):
    """A loop ``for loop_var in range(extent)``."""

    __slots__ = ()

    def __new__(cls, loop_var: str, extent: int, body, kind: ForKind = ForKind.SERIAL):
        return super().__new__(cls, loop_var, int(extent), body, ForKind(kind))


class SeqStmt(namedtuple("SeqStmt", ["seq"])):
    __slots__ = ()

    def __new__(cls, seq):
        return super().__new__(cls, tuple(seq))


class LoweredFunc(namedtuple("LoweredFunc", ["name", "args", "body", "ret_type", "alloc_buffers"])):
    """A lowered function.

    The identity of a function is its name, its ordered argument list and its
    return type; only the body is replaced by scheduling.

    Parameters
    ----------
    name : str
        The function name.
    args : Tuple[Buffer, ...]
        The ordered buffer arguments.
    ret_type : str
        The return type, ``void`` for kernels writing their outputs in place.
    body : Stmt
        The function body.
    alloc_buffers : Tuple[Buffer, ...]
        Buffers allocated inside the function.
    """

    __slots__ = ()

    def __new__(cls, name: str, args, body, ret_type: str = "void", alloc_buffers=()):
        return super().__new__(cls, name, tuple(args), body, ret_type, tuple(alloc_buffers))

    def with_body(self, body) -> "LoweredFunc":
        """Rebuild the function with a new body, keeping its signature."""
        return self._replace(body=body)


def post_order_visit(node, fvisit: Callable) -> None:
    """Visit every statement and value expression below ``node`` in post order."""
    if isinstance(node, LoweredFunc):
        post_order_visit(node.body, fvisit)
        return
    if isinstance(node, For):
        post_order_visit(node.body, fvisit)
    elif isinstance(node, SeqStmt):
        for stmt in node.seq:
            post_order_visit(stmt, fvisit)
    elif isinstance(node, Store):
        post_order_visit(node.value, fvisit)
    elif isinstance(node, BinaryOp):
        post_order_visit(node.a, fvisit)
        post_order_visit(node.b, fvisit)
    fvisit(node)


def substitute(node, vmap: Dict[str, IndexExpr]):
    """Substitute loop variables inside the indices of a statement or expression."""
    if isinstance(node, Load):
        return Load(node.buffer, [i.substitute(vmap) for i in node.indices])
    if isinstance(node, BinaryOp):
        return BinaryOp(node.op, substitute(node.a, vmap), substitute(node.b, vmap))
    if isinstance(node, Store):
        return Store(
            node.buffer,
            [i.substitute(vmap) for i in node.indices],
            substitute(node.value, vmap),
        )
    if isinstance(node, For):
        return node._replace(body=substitute(node.body, vmap))
    if isinstance(node, SeqStmt):
        return SeqStmt([substitute(s, vmap) for s in node.seq])
    return node


def _script_expr(expr) -> str:
    if isinstance(expr, FloatImm):
        return repr(expr.value)
    if isinstance(expr, Load):
        return f"{expr.buffer.name}[{', '.join(str(i) for i in expr.indices)}]"
    if isinstance(expr, BinaryOp):
        if expr.op in ("max", "min"):
            return f"{expr.op}({_script_expr(expr.a)}, {_script_expr(expr.b)})"
        return f"({_script_expr(expr.a)} {expr.op} {_script_expr(expr.b)})"
    raise TypeError(f"Unknown expression node: {type(expr).__name__}")


def _script_stmt(stmt, indent: int, lines) -> None:
    pad = "  " * indent
    if isinstance(stmt, For):
        kind = "" if stmt.kind == ForKind.SERIAL else f"  # {stmt.kind.name.lower()}"
        lines.append(f"{pad}for {stmt.loop_var} in range({stmt.extent}):{kind}")
        _script_stmt(stmt.body, indent + 1, lines)
    elif isinstance(stmt, SeqStmt):
        for s in stmt.seq:
            _script_stmt(s, indent, lines)
    elif isinstance(stmt, Store):
        target = f"{stmt.buffer.name}[{', '.join(str(i) for i in stmt.indices)}]"
        lines.append(f"{pad}{target} = {_script_expr(stmt.value)}")
    else:
        raise TypeError(f"Unknown statement node: {type(stmt).__name__}")


def script(node) -> str:
    """Print a function or statement in a deterministic python-like text form."""
    lines = []
    if isinstance(node, LoweredFunc):
        args = ", ".join(f"{b.name}: {b.dtype}{list(b.shape)}" for b in node.args)
        lines.append(f"def {node.name}({args}) -> {node.ret_type}:")
        for buf in node.alloc_buffers:
            lines.append(f"  {buf.name} = alloc({buf.dtype}{list(buf.shape)})")
        _script_stmt(node.body, 1, lines)
    elif isinstance(node, (For, SeqStmt, Store)):
        _script_stmt(node, 0, lines)
    else:
        lines.append(_script_expr(node))
    return "\n".join(lines)
