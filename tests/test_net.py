"""
Tests for the Net container and whole-net gradient checks.
"""

import numpy as np
import pytest

from gradcheck.core.blob import Blob
from gradcheck.core.checks import GradientChecker
from gradcheck.nn import (
    ElementwiseLayer,
    InnerProductLayer,
    Net,
    PowerLayer,
    ReLULayer,
    TanhLayer,
)
from gradcheck.nn.modules.base import write_diff


class DoubledGradientLayer(ElementwiseLayer):
    """Identity whose backward reports twice the true gradient."""

    def forward(self, bottom, top):
        top[0].data = bottom[0].data
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if propagate_down[0]:
            write_diff(bottom[0], 2.0 * top[0].diff, accum_down[0])


def build_net(middle=None):
    net = Net(name="mlp")
    net.add_input("data", (2, 3))
    net.add_layer(InnerProductLayer(4, name="ip1"), ["data"], ["ip1"])
    net.add_layer(middle or TanhLayer(name="tanh1"), ["ip1"], ["hidden"])
    net.add_layer(PowerLayer(power=1.0, scale=0.5, name="scale"), ["hidden"], ["out"])
    return net


class TestNet:
    def test_wiring(self):
        net = build_net()
        assert len(net) == 3
        assert [layer.name for layer in net] == ["ip1", "tanh1", "scale"]
        assert net.top_vecs[0][0] is net.bottom_vecs[1][0]
        assert net.blobs["out"].shape == (2, 4)
        assert len(net.params()) == 2

    def test_forward(self, rng):
        net = build_net()
        x = rng.normal(size=(2, 3))
        loss = net.forward([Blob(data=x)])

        ip = net[0]
        expected = 0.5 * np.tanh(x @ ip.weight.data + ip.bias.data)
        assert loss == 0.0
        assert np.allclose(net.blobs["out"].data, expected)

    def test_forward_input_mismatch(self):
        net = build_net()
        with pytest.raises(ValueError):
            net.forward([Blob((2, 3)), Blob((2, 3))])
        with pytest.raises(ValueError):
            net.forward([Blob((3, 3))])

    def test_unknown_bottom(self):
        net = Net()
        with pytest.raises(ValueError):
            net.add_layer(TanhLayer(), ["missing"], ["out"])

    def test_duplicate_input(self):
        net = Net()
        net.add_input("data", 3)
        with pytest.raises(ValueError):
            net.add_input("data", 3)

    def test_initialization_is_reproducible(self):
        first, second = build_net(), build_net()
        assert np.array_equal(first[0].weight.data, second[0].weight.data)
        assert first[0].random is first.random

        other = Net(seed=1)
        other.add_input("data", (2, 3))
        other.add_layer(InnerProductLayer(4), ["data"], ["ip1"])
        assert not np.array_equal(first[0].weight.data, other[0].weight.data)

    def test_in_place_wiring(self):
        net = Net()
        net.add_input("data", (2, 2))
        net.add_layer(ReLULayer(), ["data"], ["data"])
        assert net.top_vecs[0][0] is net.bottom_vecs[0][0]

        net.forward([Blob(data=[[-1.0, 2.0], [3.0, -4.0]])])
        assert np.array_equal(net.blobs["data"].data, [[0.0, 2.0], [3.0, 0.0]])


class TestNetGradientCheck:
    def test_correct_net_passes(self, rng):
        checker = GradientChecker(stepsize=1e-2, threshold=1e-3)
        net = build_net()
        inputs = [Blob(data=rng.normal(size=(2, 3)))]
        assert checker.check_gradient_net(net, inputs) == []

    def test_failure_is_attributed_to_layer(self, rng):
        checker = GradientChecker(stepsize=1e-2, threshold=1e-3, raise_on_failure=False)
        net = build_net(middle=DoubledGradientLayer(name="doubled"))
        inputs = [Blob(data=rng.normal(size=(2, 3)))]

        failures = checker.check_gradient_net(net, inputs)
        assert failures
        assert {failure.layer for failure in failures} == {"doubled"}

    def test_failure_raises(self, rng):
        checker = GradientChecker(stepsize=1e-2, threshold=1e-3)
        net = build_net(middle=DoubledGradientLayer(name="doubled"))
        with pytest.raises(AssertionError):
            checker.check_gradient_net(net, [Blob(data=rng.normal(size=(2, 3)))])
