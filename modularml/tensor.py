"""N-dimensional tensors stored in a flat, row-major buffer."""

from __future__ import annotations

import enum
import itertools
import math
import operator
import random
import struct
from collections.abc import Iterable, Iterator, Sequence
from typing import Optional, Union

Number = Union[int, float]
Index = Union[int, Sequence[int]]


class DType(enum.Enum):
    """Element types a tensor can hold."""

    FLOAT32 = "float32"
    FLOAT64 = "float64"
    INT8 = "int8"
    UINT8 = "uint8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"

    @property
    def is_float(self) -> bool:
        return self in (DType.FLOAT32, DType.FLOAT64)

    @property
    def bits(self) -> int:
        return int("".join(ch for ch in self.value if ch.isdigit()))

    @property
    def signed(self) -> bool:
        return not self.value.startswith("uint")

    def coerce(self, value: Number) -> Number:
        """Convert a value to this type, with single-precision rounding and
        two's-complement wrap-around where the type calls for it."""
        if self is DType.FLOAT64:
            return float(value)
        if self is DType.FLOAT32:
            number = float(value)
            try:
                return struct.unpack("<f", struct.pack("<f", number))[0]
            except OverflowError:
                return math.copysign(math.inf, number)
        wrapped = int(value) & ((1 << self.bits) - 1)
        if self.signed and wrapped >= 1 << (self.bits - 1):
            wrapped -= 1 << self.bits
        return wrapped


def _as_shape(shape: Iterable[int]) -> tuple[int, ...]:
    dims = tuple(operator.index(d) for d in shape)
    if any(d < 0 for d in dims):
        raise ValueError(f"Invalid shape: {dims}")
    return dims


def _compute_offsets(shape: tuple[int, ...]) -> tuple[int, ...]:
    if not shape:
        return ()
    strides = itertools.accumulate(reversed(shape[1:]), operator.mul, initial=1)
    return tuple(reversed(list(strides)))


class Tensor:
    """A typed tensor; slices are views that share the parent's buffer."""

    def __init__(
        self,
        shape: Iterable[int],
        data: Optional[Iterable[Number]] = None,
        dtype: DType = DType.FLOAT32,
        jump_indexes: int = 0,
        jump_columns: int = 0,
        jump_rows: int = 1,
        sliced: bool = False,
    ) -> None:
        dims = _as_shape(shape)
        size = math.prod(dims)
        if data is None:
            buffer = [dtype.coerce(0)] * size
        else:
            buffer = [dtype.coerce(v) for v in data]
            if not sliced and len(buffer) != size:
                raise ValueError(
                    f"Data holds {len(buffer)} values but shape {list(dims)} "
                    f"needs {size}"
                )
        self._setup(dims, buffer, dtype, jump_indexes, jump_columns, jump_rows, sliced)

    def _setup(
        self,
        shape: tuple[int, ...],
        buffer: list,
        dtype: DType,
        jump_indexes: int,
        jump_columns: int,
        jump_rows: int,
        sliced: bool,
    ) -> None:
        self.dtype = dtype
        self._shape = shape
        self._offsets = _compute_offsets(shape)
        self._size = math.prod(shape)
        self._data = buffer
        self._jump_indexes = jump_indexes
        self._jump_columns = jump_columns
        self._jump_rows = jump_rows
        self._sliced = sliced

    @classmethod
    def _view(
        cls,
        shape: tuple[int, ...],
        buffer: list,
        dtype: DType,
        jump_indexes: int,
        jump_columns: int,
        jump_rows: int,
    ) -> "Tensor":
        view = cls.__new__(cls)
        view._setup(shape, buffer, dtype, jump_indexes, jump_columns, jump_rows, True)
        return view

    @property
    def data(self) -> tuple:
        """The underlying buffer; for a slice, the whole shared buffer."""
        return tuple(self._data)

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def offsets(self) -> tuple[int, ...]:
        return self._offsets

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Number]:
        return (self[i] for i in range(self._size))

    def _format(self, value: Number) -> str:
        return f"{value:.6f}" if self.dtype.is_float else str(value)

    def __str__(self) -> str:
        if self._size > 30:
            head = ", ".join(self._format(self[i]) for i in range(10))
            tail = ", ".join(
                self._format(self[i]) for i in range(self._size - 10, self._size)
            )
            body = f"[{head}, ... , {tail}]"
        else:
            body = "[" + ", ".join(self._format(v) for v in self) + "]"
        shape = ", ".join(map(str, self._shape))
        return (
            f"Tensor<{self.dtype.value}> Pointer: {id(self)}, Shape: [{shape}], "
            f"Size: {self._size}, Data: {body}"
        )

    def __repr__(self) -> str:
        return f"Tensor(shape={self._shape}, dtype={self.dtype.value})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tensor):
            return NotImplemented
        return (
            self.dtype is other.dtype
            and self._size == other._size
            and self._shape == other._shape
            and all(a == b for a, b in zip(self, other))
        )

    __hash__ = None  # type: ignore[assignment]

    def _flat_from_indices(self, indices: Sequence[int]) -> int:
        indices = tuple(operator.index(i) for i in indices)
        if len(indices) != len(self._shape) or any(
            not 0 <= i < d for i, d in zip(indices, self._shape)
        ):
            raise IndexError(f"Invalid tensor indices: {list(indices)}")
        return sum(i * o for i, o in zip(indices, self._offsets))

    def _position(self, index: Index) -> int:
        if isinstance(index, (tuple, list)):
            flat = self._flat_from_indices(index)
        else:
            flat = operator.index(index)
            if not 0 <= flat < self._size:
                raise IndexError(f"Invalid tensor index: {flat}")
        if self._sliced:
            return self._jump_indexes + flat * self._jump_rows + self._jump_columns
        return flat

    def __getitem__(self, index: Index) -> Number:
        return self._data[self._position(index)]

    def __setitem__(self, index: Index, value: Number) -> None:
        self._data[self._position(index)] = self.dtype.coerce(value)

    def copy(self) -> "Tensor":
        """Return a deep copy, keeping slice layout if this is a view."""
        clone = type(self).__new__(type(self))
        clone._setup(
            self._shape,
            list(self._data),
            self.dtype,
            self._jump_indexes,
            self._jump_columns,
            self._jump_rows,
            self._sliced,
        )
        return clone

    def assign(self, other: "Tensor") -> None:
        """Overwrite this tensor with a copy of another of the same type."""
        if other is self:
            return
        if other.dtype is not self.dtype:
            raise TypeError(
                f"Cannot assign a {other.dtype.value} tensor to a "
                f"{self.dtype.value} tensor"
            )
        self._setup(
            other._shape,
            list(other._data),
            other.dtype,
            other._jump_indexes,
            other._jump_columns,
            other._jump_rows,
            other._sliced,
        )

    def reshape(self, new_shape: Iterable[int]) -> None:
        dims = _as_shape(new_shape)
        if math.prod(dims) != self._size:
            raise ValueError("Invalid shape")
        self._shape = dims
        self._offsets = _compute_offsets(dims)

    def reverse_buffer(self) -> None:
        """Reverse the first `size` values of the buffer in place."""
        self._data[: self._size] = self._data[: self._size][::-1]

    def slice(self, indices: Sequence[int]) -> "Tensor":
        """Return a view that shares this tensor's buffer.

        With one index fewer than the rank the view is a column; otherwise
        it is the sub-tensor selected by the leading indices.
        """
        indices = tuple(operator.index(i) for i in indices)
        rank = len(self._shape)
        if not indices or len(indices) >= rank:
            raise IndexError("Invalid slice indices")
        trailing = self._shape[rank - len(indices):]
        if any(not 0 <= i < d for i, d in zip(indices, trailing)):
            raise IndexError("Invalid slice indices")

        jump_indexes = self._jump_indexes if self._sliced else 0
        if rank > 2:
            count = max(len(indices) - 1, 1)
            jump_indexes += sum(
                o * i for o, i in zip(self._offsets[:count], indices[:count])
            )

        if len(indices) == rank - 1:
            shape: tuple[int, ...] = (self._shape[-2],)
            jump_columns = indices[-1]
            jump_rows = self._shape[-1]
        else:
            shape = self._shape[len(indices):]
            jump_columns = 0
            jump_rows = 1

        return self._view(
            shape, self._data, self.dtype, jump_indexes, jump_columns, jump_rows
        )

    def is_matrix(self) -> bool:
        return len(self._shape) == 2

    def fill(self, value: Number) -> None:
        """Set every value of the buffer."""
        coerced = self.dtype.coerce(value)
        self._data[:] = [coerced] * len(self._data)

    def _all_indices(self) -> Iterator[tuple[int, ...]]:
        return itertools.product(*(range(d) for d in self._shape))

    def transpose(
        self, dim0: Optional[int] = None, dim1: Optional[int] = None
    ) -> "Tensor":
        """Swap two dimensions; by default the last two."""
        rank = len(self._shape)
        d0 = dim0 if dim0 is not None else (rank - 2 if rank > 1 else 0)
        d1 = dim1 if dim1 is not None else (rank - 1 if rank > 1 else 0)
        if not (0 <= d0 < rank and 0 <= d1 < rank):
            raise ValueError("Transpose dimensions out of range")
        if d0 == d1:
            return self.copy()

        new_shape = list(self._shape)
        new_shape[d0], new_shape[d1] = new_shape[d1], new_shape[d0]
        result = Tensor(new_shape, dtype=self.dtype)
        for idx in self._all_indices():
            target = list(idx)
            target[d0], target[d1] = target[d1], target[d0]
            result[target] = self[idx]
        return result

    def permute(self, perm: Sequence[int]) -> "Tensor":
        """Return a tensor whose dimension i is dimension perm[i] of this one."""
        perm = [operator.index(p) for p in perm]
        if len(perm) != len(self._shape):
            raise ValueError("Transpose: perm size must be equal to tensor rank")
        if sorted(perm) != list(range(len(perm))):
            raise ValueError("Transpose: invalid or duplicate entry in perm")

        result = Tensor([self._shape[p] for p in perm], dtype=self.dtype)
        for idx in self._all_indices():
            result[tuple(idx[p] for p in perm)] = self[idx]
        return result

    def can_broadcast_to(self, target_shape: Iterable[int]) -> bool:
        target = _as_shape(target_shape)
        current = self._shape
        for c, t in zip(reversed(current), reversed(target)):
            if c != t and c != 1 and t != 1:
                return False
        extra = current[: max(len(current) - len(target), 0)]
        return all(d == 1 for d in extra)

    def broadcast_reshape(self, target_shape: Iterable[int]) -> "Tensor":
        """Repeat the buffer to fill the target shape."""
        target = _as_shape(target_shape)
        if target == self._shape:
            return self.copy()
        if not self.can_broadcast_to(target):
            raise ValueError("Cannot broadcast tensor to target shape")
        if self._sliced:
            raise ValueError("Cannot broadcast a sliced tensor")

        target_size = math.prod(target)
        repeat_count = target_size // len(self._data) if self._data else 0
        buffer = self._data * repeat_count
        if len(buffer) != target_size:
            raise ValueError("Cannot broadcast tensor to target shape")
        return Tensor(target, buffer, self.dtype)


def random_integral_array(
    lo_size: int, hi_size: int, lo_value: int, hi_value: int
) -> list[int]:
    """Random integers in [lo_value, hi_value]; length in [lo_size, hi_size]."""
    rng = random.Random()
    count = rng.randint(lo_size, hi_size)
    return [rng.randint(lo_value, hi_value) for _ in range(count)]


def random_real_array(
    lo_size: int, hi_size: int, lo_value: float, hi_value: float
) -> list[float]:
    """Random floats in [lo_value, hi_value); length in [lo_size, hi_size]."""
    rng = random.Random()
    count = rng.randint(lo_size, hi_size)
    return [lo_value + (hi_value - lo_value) * rng.random() for _ in range(count)]