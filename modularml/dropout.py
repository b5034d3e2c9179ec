"""Dropout node; in inference mode it passes its input through unchanged."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from modularml.node import IOMap, Node, fetch_input, fetch_output

_NODE_NAME = "DropoutNode"


class DropoutNode(Node):
    """Copies ``data`` to ``output``; training mode is rejected."""

    def __init__(
        self,
        data: str,
        output: str,
        mask: Optional[str] = None,
        ratio: float = 0.5,
        training_mode: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        self.data = data
        self.output = output
        self.mask = mask
        self.ratio = float(ratio)
        self.training_mode = training_mode
        self.seed = seed

    @classmethod
    def from_json(cls, node: Mapping[str, Any]) -> "DropoutNode":
        """Build a node from JSON; the training_mode attribute is ignored."""
        data = ""
        output = ""
        mask: Optional[str] = None
        inputs = node.get("input")
        if isinstance(inputs, list) and inputs:
            data = inputs[0]
        outputs = node.get("output")
        if isinstance(outputs, list) and outputs:
            output = outputs[0]
            if len(outputs) > 1:
                mask = outputs[1]

        ratio = 0.5
        seed: Optional[int] = None
        attributes = node.get("attribute")
        if isinstance(attributes, list):
            for attr in attributes:
                name = attr.get("name")
                if name == "ratio":
                    ratio = float(attr["f"])
                elif name == "seed":
                    seed = int(attr["i"])
        return cls(data, output, mask, ratio, False, seed)

    def forward(self, iomap: IOMap) -> None:
        source = fetch_input(iomap, self.data, _NODE_NAME)
        target = fetch_output(iomap, self.output, source, _NODE_NAME)
        if len(source.shape) < 1:
            raise ValueError("Tensor data must be at least 1D.")
        if self.training_mode:
            raise RuntimeError("DropoutNode does not support training mode.")
        target.assign(source)

    def inputs(self) -> list[str]:
        return [self.data]

    def outputs(self) -> list[str]:
        return [self.output] if self.mask is None else [self.output, self.mask]