"""Base class for graph nodes and helpers for looking up their tensors."""

from __future__ import annotations

import abc
from collections.abc import Collection, MutableMapping
from typing import Optional

from modularml.tensor import DType, Tensor

IOMap = MutableMapping[str, Tensor]


class Node(abc.ABC):
    """A computation step that reads and writes named tensors in an io map."""

    @abc.abstractmethod
    def forward(self, iomap: IOMap) -> None:
        """Compute the outputs from the inputs found in ``iomap``."""

    @abc.abstractmethod
    def inputs(self) -> list[str]:
        """Names of the tensors this node reads."""

    @abc.abstractmethod
    def outputs(self) -> list[str]:
        """Names of the tensors this node writes."""


def fetch_input(
    iomap: IOMap,
    name: str,
    node_name: str,
    supported: Optional[Collection[DType]] = None,
) -> Tensor:
    """Return the named input, checking that its type is supported."""
    try:
        tensor = iomap[name]
    except KeyError:
        raise KeyError(
            f"{node_name}: Input tensor {name} not found in iomap"
        ) from None
    if not isinstance(tensor, Tensor) or (
        supported is not None and tensor.dtype not in supported
    ):
        raise TypeError(f"{node_name}: Unsupported data type for tensor {name}")
    return tensor


def fetch_output(iomap: IOMap, name: str, source: Tensor, node_name: str) -> Tensor:
    """Return the named output, creating it as a copy of ``source`` if absent."""
    existing = iomap.get(name)
    if existing is None:
        created = source.copy()
        iomap[name] = created
        return created
    if not isinstance(existing, Tensor) or existing.dtype is not source.dtype:
        raise TypeError(f"{node_name}: Output tensor {name} has incorrect type")
    return existing