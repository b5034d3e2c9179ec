"""Two-dimensional convolution computed as im2col followed by a matrix product."""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from modularml.node import IOMap, Node, fetch_input, fetch_output
from modularml.tensor import DType, Tensor

_NODE_NAME = "ConvNode"
_SUPPORTED = frozenset({DType.FLOAT32, DType.FLOAT64})


def gemm(
    a: Tensor,
    b: Tensor,
    m: int,
    n: int,
    k: int,
    alpha: float,
    beta: float,
    c: Tensor,
) -> None:
    """Compute ``C = alpha * A @ B + beta * C`` in place.

    A is read as a row-major m x k matrix, B as k x n and C as m x n, all
    through flat indexing, so the tensors' shapes are not consulted.
    """
    if min(m, n, k) < 0:
        raise ValueError("gemm: matrix dimensions must not be negative")
    for tensor, needed, label in ((a, m * k, "A"), (b, k * n, "B"), (c, m * n, "C")):
        if tensor.size < needed:
            raise ValueError(
                f"gemm: matrix {label} holds {tensor.size} values but {needed} "
                "are needed"
            )
    if m == 0 or n == 0:
        return

    a_values = list(a)
    b_values = list(b)[: k * n]
    rows = [a_values[i * k:(i + 1) * k] for i in range(m)]
    columns = [b_values[j::n] for j in range(n)]

    for i, row in enumerate(rows):
        for j, column in enumerate(columns):
            value = alpha * sum(x * y for x, y in zip(row, column))
            if beta:
                value += beta * c[i * n + j]
            c[i * n + j] = value


@dataclass(frozen=True)
class _Geometry:
    batch: int
    in_channels: int
    in_height: int
    in_width: int
    out_channels: int
    kernel_height: int
    kernel_width: int
    stride_height: int
    stride_width: int
    pad_top: int
    pad_bottom: int
    pad_left: int
    pad_right: int

    @property
    def out_height(self) -> int:
        extent = self.in_height + self.pad_top + self.pad_bottom - self.kernel_height
        return extent // self.stride_height + 1

    @property
    def out_width(self) -> int:
        extent = self.in_width + self.pad_left + self.pad_right - self.kernel_width
        return extent // self.stride_width + 1


def _check_length(values: tuple[int, ...], expected: int, label: str) -> None:
    if len(values) != expected:
        raise ValueError(
            f"Invalid {label} size. Expected a sequence of size {expected}, "
            f"but got: {len(values)}."
        )


def _ints(values: Iterable[Any]) -> tuple[int, ...]:
    return tuple(int(v) for v in values)


class ConvNode(Node):
    """Convolution of an N x C x H x W input with O x C x KH x KW weights.

    Padding is given as (top, bottom, left, right) and stride as
    (height, width). The kernel size is taken from the weight tensor.
    """

    def __init__(
        self,
        x: str,
        w: str,
        y: str,
        dilations: Iterable[int],
        padding: Iterable[int],
        kernel_shape: Iterable[int],
        stride: Iterable[int],
        b: Optional[str] = None,
        group: int = 1,
    ) -> None:
        dilations = _ints(dilations)
        padding = _ints(padding)
        kernel_shape = _ints(kernel_shape)
        stride = _ints(stride)
        _check_length(dilations, 2, "dilations")
        _check_length(padding, 4, "padding")
        _check_length(kernel_shape, 2, "kernel_shape")
        _check_length(stride, 2, "stride")
        self._configure(x, w, y, dilations, padding, kernel_shape, stride, b, group)

    def _configure(
        self,
        x: str,
        w: str,
        y: str,
        dilations: tuple[int, ...],
        padding: tuple[int, ...],
        kernel_shape: tuple[int, ...],
        stride: tuple[int, ...],
        b: Optional[str],
        group: int,
    ) -> None:
        self.x = x
        self.w = w
        self.y = y
        self.b = b
        self.dilations = dilations
        self.padding = padding
        self.kernel_shape = kernel_shape
        self.stride = stride
        self.group = group

    @classmethod
    def from_json(cls, node: Mapping[str, Any]) -> "ConvNode":
        """Build a node from its JSON description.

        Attribute lists are not validated here; missing padding or stride is
        reported when the node is run.
        """
        x = w = y = ""
        b: Optional[str] = None
        inputs = node.get("input")
        if isinstance(inputs, list):
            x = inputs[0]
            w = inputs[1]
            if len(inputs) > 2:
                b = inputs[2]
        outputs = node.get("output")
        if isinstance(outputs, list):
            y = outputs[0]

        lists: dict[str, tuple[int, ...]] = {
            "dilations": (),
            "pads": (),
            "kernel_shape": (),
            "strides": (),
        }
        group = 1
        attributes = node.get("attribute")
        if isinstance(attributes, list):
            for attr in attributes:
                name = attr.get("name")
                if name in lists:
                    lists[name] = _ints(attr["ints"])
                elif name == "group":
                    group = int(attr["i"])

        conv = cls.__new__(cls)
        conv._configure(
            x,
            w,
            y,
            lists["dilations"],
            lists["pads"],
            lists["kernel_shape"],
            lists["strides"],
            b,
            group,
        )
        return conv

    def inputs(self) -> list[str]:
        return [self.x, self.w] if self.b is None else [self.x, self.w, self.b]

    def outputs(self) -> list[str]:
        return [self.y]

    def forward(self, iomap: IOMap) -> None:
        x = fetch_input(iomap, self.x, _NODE_NAME, _SUPPORTED)
        w = fetch_input(iomap, self.w, _NODE_NAME)
        if w.dtype is not x.dtype:
            raise TypeError(f"{_NODE_NAME}: Unsupported data type for tensor data")
        if len(x.shape) < 4 or len(w.shape) < 4:
            raise ValueError(
                "Input tensor must have 4 dimensions: "
                "(Features x Channels x Height x Width)."
            )

        y = fetch_output(iomap, self.y, x, _NODE_NAME)
        geometry = self._geometry(x.shape, w.shape)
        columns = self._im2col(x, geometry)

        flattened = geometry.in_channels * geometry.kernel_height * geometry.kernel_width
        weights = w.copy()
        weights.reshape((geometry.out_channels, flattened))

        width = columns.shape[1]
        result = Tensor((geometry.out_channels, width), dtype=x.dtype)
        gemm(weights, columns, geometry.out_channels, width, flattened, 1.0, 0.0, result)
        result.reshape(
            (
                geometry.batch,
                geometry.out_channels,
                geometry.out_height,
                geometry.out_width,
            )
        )

        if self.b is not None:
            if self.b not in iomap:
                raise KeyError(f"{_NODE_NAME}: Input tensor B not found in iomap")
            bias = iomap[self.b]
            if not isinstance(bias, Tensor) or bias.dtype is not x.dtype:
                raise TypeError(f"{_NODE_NAME}: Bias tensor B has incorrect type")
            self._add_bias(result, bias, geometry)

        y.assign(result)

    def _geometry(
        self, input_shape: tuple[int, ...], weight_shape: tuple[int, ...]
    ) -> _Geometry:
        _check_length(self.padding, 4, "padding")
        _check_length(self.stride, 2, "stride")
        if 0 in self.stride:
            raise ValueError("Stride values must be positive")
        geometry = _Geometry(
            batch=input_shape[0],
            in_channels=input_shape[1],
            in_height=input_shape[2],
            in_width=input_shape[3],
            out_channels=weight_shape[0],
            kernel_height=weight_shape[2],
            kernel_width=weight_shape[3],
            stride_height=self.stride[0],
            stride_width=self.stride[1],
            pad_top=self.padding[0],
            pad_bottom=self.padding[1],
            pad_left=self.padding[2],
            pad_right=self.padding[3],
        )
        if (
            geometry.in_height + geometry.pad_top + geometry.pad_bottom
            < geometry.kernel_height
            or geometry.in_width + geometry.pad_left + geometry.pad_right
            < geometry.kernel_width
        ):
            raise ValueError("Kernel is larger than the padded input")
        return geometry

    @staticmethod
    def _im2col(x: Tensor, g: _Geometry) -> Tensor:
        """Unroll every kernel-sized patch of the input into a column."""
        kernel_area = g.kernel_height * g.kernel_width
        rows = g.in_channels * kernel_area
        spatial = g.out_height * g.out_width
        zero = x.dtype.coerce(0)
        out = [zero] * (rows * g.batch * spatial)
        source = list(x)
        plane = g.in_height * g.in_width
        limit = g.in_channels * plane

        for n, h, w in itertools.product(
            range(g.batch), range(g.out_height), range(g.out_width)
        ):
            col = h * g.out_width + w
            for c, kh, kw in itertools.product(
                range(g.in_channels), range(g.kernel_height), range(g.kernel_width)
            ):
                ih = h * g.stride_height - g.pad_top + kh
                iw = w * g.stride_width - g.pad_left + kw
                if (
                    ih < 0
                    or ih >= g.in_height + g.pad_bottom
                    or iw < 0
                    or iw >= g.in_width + g.pad_right
                ):
                    out[col] = zero
                    continue
                row = c * kernel_area + kh * g.kernel_width + kw
                src = n * limit + c * plane + ih * g.in_width + iw
                if src < limit:
                    out[row * spatial + col] = source[src]

        return Tensor((rows, g.batch * spatial), out, x.dtype)

    @staticmethod
    def _add_bias(result: Tensor, bias: Tensor, g: _Geometry) -> None:
        """Add bias[i] to every value of output channel i."""
        for b, i, h, w in itertools.product(
            range(g.batch),
            range(g.out_channels),
            range(g.out_height),
            range(g.out_width),
        ):
            index = ((b * g.out_channels + i) * g.out_height + h) * g.out_width + w
            result[index] = result[index] + bias[i]