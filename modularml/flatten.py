"""Flatten node: collapses a tensor into a 2-D matrix around an axis."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from modularml.node import IOMap, Node, fetch_input, fetch_output

_NODE_NAME = "FlattenNode"


class FlattenNode(Node):
    """Reshape to (prod(shape[:axis]), prod(shape[axis:]))."""

    def __init__(self, x: str, y: str, axis: int = 1) -> None:
        self.x = x
        self.y = y
        self.axis = int(axis)

    @classmethod
    def from_json(cls, node: Mapping[str, Any]) -> "FlattenNode":
        x = ""
        y = ""
        inputs = node.get("input")
        if isinstance(inputs, list) and inputs:
            x = inputs[0]
        outputs = node.get("output")
        if isinstance(outputs, list) and outputs:
            y = outputs[0]
        axis = 1
        attributes = node.get("attribute")
        if isinstance(attributes, list):
            for attr in attributes:
                if attr.get("name") == "axis":
                    axis = int(attr["i"])
        return cls(x, y, axis)

    def forward(self, iomap: IOMap) -> None:
        source = fetch_input(iomap, self.x, _NODE_NAME)
        target = fetch_output(iomap, self.y, source, _NODE_NAME)
        shape = source.shape
        if not 0 <= self.axis < len(shape):
            raise ValueError("Flatten axis is out of range")
        flattened = source.copy()
        flattened.reshape(
            (math.prod(shape[: self.axis]), math.prod(shape[self.axis:]))
        )
        target.assign(flattened)

    def inputs(self) -> list[str]:
        return [self.x]

    def outputs(self) -> list[str]:
        return [self.y]