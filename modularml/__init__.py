"""Pure-Python tensors and ONNX-style inference nodes."""

__version__ = "0.1.0"

__all__ = [
    "activations",
    "base64codec",
    "conv",
    "dropout",
    "flatten",
    "node",
    "profiler",
    "tensor",
]