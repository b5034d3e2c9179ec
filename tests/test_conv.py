import pytest

from modularml.conv import ConvNode, gemm
from modularml.tensor import DType, Tensor

DEFAULTS = dict(
    dilations=[1, 1], padding=[0, 0, 0, 0], kernel_shape=[2, 2], stride=[1, 1]
)

RAMP_25 = list(range(1, 26))
EIGHT_SAME_FILTERS = [1, 0, 0, -1] * 24


def make_conv(b=None, group=1, **overrides):
    params = dict(DEFAULTS)
    params.update(overrides)
    return ConvNode("X", "W", "Y", b=b, group=group, **params)


def values(tensor):
    return list(tensor.data)


def test_forward_simple():
    iomap = {
        "X": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9]),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
        "Y": Tensor([1, 1, 2, 2], [0, 0, 0, 0]),
    }
    make_conv().forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 1, 2, 2)
    assert values(result) == pytest.approx([12, 16, 24, 28])


def test_forward_5x5_input_2x2_filter():
    iomap = {
        "X": Tensor([1, 1, 5, 5], RAMP_25),
        "W": Tensor([1, 1, 2, 2], [1, 0, 0, -1]),
        "Y": Tensor([1, 2, 3, 3]),
    }
    make_conv(group=8).forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 1, 4, 4)
    assert values(result) == pytest.approx([-6.0] * 16, abs=1e-5)


def test_forward_three_in_channels_eight_out_channels():
    iomap = {
        "X": Tensor([1, 3, 5, 5], RAMP_25 * 3),
        "W": Tensor([8, 3, 2, 2], EIGHT_SAME_FILTERS),
        "Y": Tensor([1, 2, 3, 3]),
    }
    make_conv(group=8).forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 8, 4, 4)
    assert values(result) == pytest.approx([-18.0] * 128, abs=1e-5)


def test_forward_matches_reference_convolution():
    x_values = (
        RAMP_25
        + [1] * 5 + [2] * 5 + [3] * 5 + [4] * 5 + [5] * 5
        + [0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0]
    )
    w_values = [
        1, 0, 0, -1, 0, 1, -1, 0, 1, -1, 0, 1, -1, 1, 1, 0,
        0, -1, 1, 1, 1, 0, -1, -1, 1, 1, 0, -1, 1, 0, -1, -1,
        -1, 1, 1, 0, 0, -1, 1, 1, -1, -1, 1, 0, 1, 0, -1, 1,
        1, 0, -1, 1, 1, -1, -1, 0, -1, 1, 1, 0, -1, 1, 0, -1,
        0, 1, 1, -1, 1, -1, 0, 1, 1, -1, 1, 0, 0, 1, -1, 1,
        -1, 1, 0, -1, 0, 1, -1, 1, -1, 1, 0, -1, 1, 0, 1, -1,
    ]
    expected = [
        -8, -5, -8, -5, -5, -8, -5, -8, -8, -5, -8, -5, -5, -8, -5, -8,
        9, 11, 11, 13, 16, 16, 18, 18, 21, 23, 23, 25, 28, 28, 30, 30,
        -5, -7, -3, -5, -4, 0, -2, 2, 3, 1, 5, 3, 4, 8, 6, 10,
        10, 14, 12, 16, 17, 15, 19, 17, 18, 22, 20, 24, 25, 23, 27, 25,
        2, 0, 4, 2, 3, 7, 5, 9, 10, 8, 12, 10, 11, 15, 13, 17,
        -6, -4, -8, -6, -7, -11, -9, -13, -14, -12, -16, -14, -15, -19, -17, -21,
        7, 5, 9, 7, 10, 14, 12, 16, 19, 17, 21, 19, 22, 26, 24, 28,
        2, 2, 4, 4, 5, 7, 7, 9, 10, 10, 12, 12, 13, 15, 15, 17,
    ]
    iomap = {
        "X": Tensor([1, 3, 5, 5], x_values),
        "W": Tensor([8, 3, 2, 2], w_values),
        "Y": Tensor([1, 8, 4, 4]),
    }
    make_conv(group=8).forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 8, 4, 4)
    assert values(result) == pytest.approx(expected, abs=1e-5)


def test_bias_add_creates_output():
    iomap = {
        "X": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9]),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
        "B": Tensor([1], [10]),
    }
    make_conv(b="B").forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 1, 2, 2)
    assert values(result) == pytest.approx([22, 26, 34, 38])


def test_bias_multiple_out_channels():
    iomap = {
        "X": Tensor([1, 3, 5, 5], RAMP_25 * 3),
        "W": Tensor([8, 3, 2, 2], EIGHT_SAME_FILTERS),
        "B": Tensor([8], [10.0] * 8),
    }
    make_conv(b="B", group=8).forward(iomap)
    result = iomap["Y"]
    assert result.shape == (1, 8, 4, 4)
    assert values(result) == pytest.approx([-8.0] * 128, abs=1e-5)


def test_padding_changes_output_shape():
    iomap = {
        "X": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9]),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
    }
    make_conv(padding=[1, 1, 0, 0]).forward(iomap)
    assert iomap["Y"].shape == (1, 1, 4, 2)


def test_forward_float64():
    iomap = {
        "X": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9], DType.FLOAT64),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1], DType.FLOAT64),
    }
    make_conv().forward(iomap)
    assert iomap["Y"].dtype is DType.FLOAT64
    assert values(iomap["Y"]) == [12.0, 16.0, 24.0, 28.0]


def test_stride_two():
    iomap = {
        "X": Tensor([1, 1, 4, 4], list(range(1, 17))),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
    }
    make_conv(stride=[2, 2]).forward(iomap)
    assert iomap["Y"].shape == (1, 1, 2, 2)
    assert values(iomap["Y"]) == pytest.approx([14, 22, 46, 54])


@pytest.mark.parametrize(
    "override",
    [
        {"dilations": [1]},
        {"padding": [0, 0, 0]},
        {"kernel_shape": [2, 2, 2]},
        {"stride": [1]},
    ],
)
def test_constructor_rejects_wrong_lengths(override):
    with pytest.raises(ValueError):
        make_conv(**override)


def test_missing_input_raises():
    iomap = {"X": Tensor([1, 1, 3, 3])}
    with pytest.raises(KeyError):
        make_conv().forward(iomap)


def test_missing_bias_raises():
    iomap = {
        "X": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9]),
        "W": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
    }
    with pytest.raises(KeyError):
        make_conv(b="B").forward(iomap)


def test_unsupported_dtype_raises():
    iomap = {
        "X": Tensor([1, 1, 3, 3], dtype=DType.INT32),
        "W": Tensor([1, 1, 2, 2], dtype=DType.INT32),
    }
    with pytest.raises(TypeError):
        make_conv().forward(iomap)


def test_mismatched_weight_dtype_raises():
    iomap = {
        "X": Tensor([1, 1, 3, 3]),
        "W": Tensor([1, 1, 2, 2], dtype=DType.FLOAT64),
    }
    with pytest.raises(TypeError):
        make_conv().forward(iomap)


def test_output_of_wrong_type_raises():
    iomap = {
        "X": Tensor([1, 1, 3, 3]),
        "W": Tensor([1, 1, 2, 2]),
        "Y": Tensor([1], dtype=DType.FLOAT64),
    }
    with pytest.raises(TypeError):
        make_conv().forward(iomap)


def test_low_rank_input_raises():
    iomap = {"X": Tensor([3, 3]), "W": Tensor([1, 1, 2, 2])}
    with pytest.raises(ValueError):
        make_conv().forward(iomap)


def test_inputs_and_outputs():
    assert make_conv().inputs() == ["X", "W"]
    assert make_conv(b="B").inputs() == ["X", "W", "B"]
    assert make_conv().outputs() == ["Y"]


def test_from_json_parses_attributes_and_runs():
    description = {
        "input": ["in", "weights", "bias"],
        "output": ["out"],
        "attribute": [
            {"name": "dilations", "ints": ["1", "1"]},
            {"name": "pads", "ints": ["0", "0", "0", "0"]},
            {"name": "kernel_shape", "ints": ["2", "2"]},
            {"name": "strides", "ints": ["1", "1"]},
            {"name": "group", "i": "1"},
        ],
    }
    conv = ConvNode.from_json(description)
    assert conv.inputs() == ["in", "weights", "bias"]
    assert conv.outputs() == ["out"]
    assert conv.padding == (0, 0, 0, 0)
    assert conv.stride == (1, 1)
    assert conv.group == 1

    iomap = {
        "in": Tensor([1, 1, 3, 3], [1, 2, 3, 4, 5, 6, 7, 8, 9]),
        "weights": Tensor([1, 1, 2, 2], [1, 1, 1, 1]),
        "bias": Tensor([1], [10]),
    }
    conv.forward(iomap)
    assert values(iomap["out"]) == pytest.approx([22, 26, 34, 38])


def test_from_json_without_padding_fails_on_forward():
    conv = ConvNode.from_json({"input": ["X", "W"], "output": ["Y"]})
    assert conv.inputs() == ["X", "W"]
    iomap = {"X": Tensor([1, 1, 3, 3]), "W": Tensor([1, 1, 2, 2])}
    with pytest.raises(ValueError):
        conv.forward(iomap)


def test_gemm_plain_product():
    a = Tensor([2, 2], [1, 2, 3, 4])
    b = Tensor([2, 2], [5, 6, 7, 8])
    c = Tensor([2, 2])
    gemm(a, b, 2, 2, 2, 1.0, 0.0, c)
    assert values(c) == [19.0, 22.0, 43.0, 50.0]


def test_gemm_alpha_and_beta():
    a = Tensor([2, 2], [1, 2, 3, 4])
    b = Tensor([2, 2], [5, 6, 7, 8])
    c = Tensor([2, 2], [1, 1, 1, 1])
    gemm(a, b, 2, 2, 2, 2.0, 3.0, c)
    assert values(c) == [41.0, 47.0, 89.0, 103.0]


def test_gemm_rectangular():
    a = Tensor([1, 3], [1, 2, 3])
    b = Tensor([3, 2], [1, 0, 0, 1, 1, 1])
    c = Tensor([1, 2])
    gemm(a, b, 1, 2, 3, 1.0, 0.0, c)
    assert values(c) == [4.0, 5.0]


def test_gemm_rejects_small_matrix():
    a = Tensor([1, 2], [1, 2])
    b = Tensor([2, 2], [1, 2, 3, 4])
    c = Tensor([2, 2])
    with pytest.raises(ValueError):
        gemm(a, b, 2, 2, 2, 1.0, 0.0, c)