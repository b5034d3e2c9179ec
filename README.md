# modularml

A small, dependency-free Python library of n-dimensional tensors and
ONNX-style inference nodes that read and write named tensors.

## Contents

- `modularml.tensor`
  - `DType` — element types (`FLOAT32`, `FLOAT64`, `INT8`, `UINT8`,
    `INT16`, `INT32`, `INT64`, `UINT32`, `UINT64`). `DType.coerce` converts
    a value to the type, rounding to single precision for `FLOAT32` and
    wrapping integers in two's complement.
  - `Tensor` — a typed tensor over a flat, row-major buffer. It supports
    flat or multi-index access (`t[3]`, `t[(0, 1)]`), `reshape` (in place,
    same size only), `copy`, `assign`, `fill`, `reverse_buffer`,
    `transpose(dim0, dim1)` (the last two dimensions by default),
    `permute(perm)`, `can_broadcast_to` and `broadcast_reshape`.
    `slice(indices)` returns a view that shares the parent's buffer: with
    one index fewer than the rank it is a column, otherwise the sub-tensor
    selected by the indices. `shape` is a tuple; `data` is a tuple copy of
    the whole buffer. Two tensors are equal when type, shape and values
    match.
  - `random_integral_array` and `random_real_array` — lists of random
    values whose length is drawn from a given range.
- `modularml.node` — the abstract `Node` base class (`forward(iomap)`,
  `inputs()`, `outputs()`) and the helpers `fetch_input` and
  `fetch_output`. An *iomap* is a dict from tensor name to `Tensor`; a
  missing output is created as a copy of the input and then overwritten.
- `modularml.conv` — `ConvNode`, a 2-D convolution of an
  N x C x H x W input with O x C x KH x KW weights, computed as im2col
  followed by `gemm`, with an optional per-channel bias. Padding is
  `(top, bottom, left, right)` and stride `(height, width)`; the kernel
  size is read from the weight tensor. Only float tensors are accepted.
  `gemm(a, b, m, n, k, alpha, beta, c)` computes
  `C = alpha * A @ B + beta * C` in place.
- `modularml.activations` — `EluNode` (parameter `alpha`, default 1.0) and
  `GeluNode` (`approximate` is `"none"` or `"tanh"`), for float tensors.
- `modularml.dropout` — `DropoutNode`, which copies its input to its output;
  with `training_mode=True` it raises `RuntimeError`.
- `modularml.flatten` — `FlattenNode`, which reshapes to
  `(prod(shape[:axis]), prod(shape[axis:]))`.
- `modularml.base64codec.decode(text, dtype)` — decodes base64 text into a
  list of little-endian values of the given `DType`.
- `modularml.profiler.Profiler` — times named sections and prints their
  duration in milliseconds.

Every node class except the base has a `from_json` class method that builds
the node from the JSON form of an ONNX node (a dict with `input`, `output`
and `attribute` lists).

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Example

```python
from modularml.conv import ConvNode
from modularml.tensor import Tensor

x = Tensor([1, 1, 3, 3], [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0])
w = Tensor([1, 1, 2, 2], [1.0, 1.0, 1.0, 1.0])
iomap = {"X": x, "W": w}

conv = ConvNode("X", "W", "Y", [1, 1], [0, 0, 0, 0], [2, 2], [1, 1], None, 1)
conv.forward(iomap)

print(iomap["Y"].shape)  # (1, 1, 2, 2)
print(iomap["Y"].data)   # (12.0, 16.0, 24.0, 28.0)
```

## Profiling

```python
from modularml.profiler import Profiler

profiler = Profiler()
with profiler.section("inference"):
    conv.forward(iomap)
```

`Profiler.end` also returns the elapsed milliseconds. An output stream and a
clock function can be passed to the constructor.

## What it does not do

- It does not load or parse whole models and has no graph runner: nodes are
  built one at a time and their `forward` methods are called by the user.
- It has no command-line tool and no image loading or preprocessing.
- Convolution ignores dilations and groups; dropout only runs in inference
  mode.
- All arithmetic is plain Python; nothing is vectorised.