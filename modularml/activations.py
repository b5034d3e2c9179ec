"""Element-wise activation nodes: ELU and GELU."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from typing import Any

from modularml.node import IOMap, Node, fetch_input, fetch_output
from modularml.tensor import DType, Tensor

_FLOAT_TYPES = frozenset({DType.FLOAT32, DType.FLOAT64})
_GELU_MODES = ("none", "tanh")


def _first_name(node: Mapping[str, Any], key: str) -> str:
    names = node.get(key)
    if isinstance(names, list) and names:
        return names[0]
    return ""


def _attributes(node: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    attributes = node.get("attribute")
    return attributes if isinstance(attributes, list) else []


def _map_into(
    iomap: IOMap,
    x_name: str,
    y_name: str,
    node_name: str,
    fn: Callable[[float], float],
) -> None:
    """Apply ``fn`` to every value of input ``x_name`` and store it in ``y_name``."""
    x = fetch_input(iomap, x_name, node_name, _FLOAT_TYPES)
    y = fetch_output(iomap, y_name, x, node_name)
    y.assign(Tensor(x.shape, (fn(v) for v in x), x.dtype))


class EluNode(Node):
    """Exponential linear unit: ``alpha * (exp(x) - 1)`` for x < 0, else x."""

    def __init__(self, x: str, y: str, alpha: float = 1.0) -> None:
        self.x = x
        self.y = y
        self.alpha = float(alpha)

    @classmethod
    def from_json(cls, node: Mapping[str, Any]) -> "EluNode":
        alpha = 1.0
        for attr in _attributes(node):
            if attr.get("name") == "alpha":
                alpha = float(attr["f"])
        return cls(_first_name(node, "input"), _first_name(node, "output"), alpha)

    def _elu(self, value: float) -> float:
        return self.alpha * (math.exp(value) - 1) if value < 0 else value

    def forward(self, iomap: IOMap) -> None:
        _map_into(iomap, self.x, self.y, "ELUNode", self._elu)

    def inputs(self) -> list[str]:
        return [self.x]

    def outputs(self) -> list[str]:
        return [self.y]


def _gelu_exact(value: float) -> float:
    return 0.5 * value * (1.0 + math.erf(value / math.sqrt(2.0)))


def _gelu_tanh(value: float) -> float:
    inner = math.sqrt(2.0 / math.pi) * (value + 0.044715 * value**3)
    return 0.5 * value * (1.0 + math.tanh(inner))


class GeluNode(Node):
    """Gaussian error linear unit, exact or with the tanh approximation."""

    def __init__(self, x: str, y: str, approximate: str = "none") -> None:
        if approximate not in _GELU_MODES:
            raise ValueError("Invalid value for argument approximate.")
        self.x = x
        self.y = y
        self.approximate = approximate

    @classmethod
    def from_json(cls, node: Mapping[str, Any]) -> "GeluNode":
        """Build a node from JSON; any mode other than "none" uses tanh."""
        approximate = "none"
        for attr in _attributes(node):
            if attr.get("name") == "approximate":
                approximate = attr["s"]
        gelu = cls(_first_name(node, "input"), _first_name(node, "output"))
        gelu.approximate = approximate
        return gelu

    def forward(self, iomap: IOMap) -> None:
        fn = _gelu_exact if self.approximate == "none" else _gelu_tanh
        _map_into(iomap, self.x, self.y, "GELUNode", fn)

    def inputs(self) -> list[str]:
        return [self.x]

    def outputs(self) -> list[str]:
        return [self.y]