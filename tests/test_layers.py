"""
Tests for the forward and backward passes of the built-in layers.
"""

import numpy as np
import pytest

from gradcheck.core.blob import Blob
from gradcheck.core.random import RandomSource
from gradcheck.nn import (
    DropoutLayer,
    EltwiseSumLayer,
    EuclideanLossLayer,
    InnerProductLayer,
    PowerLayer,
    ReLULayer,
    SigmoidLayer,
    SplitLayer,
    TanhLayer,
)


def run_forward(layer, *arrays, num_top=1):
    bottom = [Blob(data=a) for a in arrays]
    top = [Blob() for _ in range(num_top)]
    layer.setup(bottom, top)
    loss = layer.forward(bottom, top)
    return bottom, top, loss


class TestActivations:
    def test_relu_forward(self):
        _, top, loss = run_forward(ReLULayer(), np.array([-1.0, 0.0, 1.0, 2.0]))
        assert np.array_equal(top[0].data, np.array([0.0, 0.0, 1.0, 2.0]))
        assert loss == 0.0

    def test_relu_backward(self):
        layer = ReLULayer()
        bottom, top, _ = run_forward(layer, np.array([-1.0, 0.0, 1.0, 2.0]))
        top[0].diff = np.ones(4)
        layer.backward(top, [True], bottom)

        # grad flows only through positive inputs
        assert np.array_equal(bottom[0].diff, np.array([0.0, 0.0, 1.0, 1.0]))

    def test_relu_negative_slope(self):
        layer = ReLULayer(negative_slope=0.1)
        bottom, top, _ = run_forward(layer, np.array([-2.0, 3.0]))
        assert np.allclose(top[0].data, [-0.2, 3.0])

        top[0].diff = np.ones(2)
        layer.backward(top, [True], bottom)
        assert np.allclose(bottom[0].diff, [0.1, 1.0])

    def test_accum_backward_adds(self):
        layer = ReLULayer()
        bottom, top, _ = run_forward(layer, np.array([-1.0, 1.0]))
        top[0].diff = np.ones(2)
        bottom[0].diff = np.array([10.0, 10.0])

        layer.accum_backward(top, [True], [True], bottom)
        assert np.array_equal(bottom[0].diff, np.array([10.0, 11.0]))

        layer.backward(top, [True], bottom)
        assert np.array_equal(bottom[0].diff, np.array([0.0, 1.0]))

    def test_no_propagation(self):
        layer = TanhLayer()
        bottom, top, _ = run_forward(layer, np.array([0.5]))
        bottom[0].diff = np.array([3.0])
        top[0].diff = np.array([1.0])
        layer.backward(top, [False], bottom)
        assert bottom[0].diff[0] == 3.0

    def test_tanh(self):
        layer = TanhLayer()
        x = np.array([-1.0, 0.0, 1.0])
        bottom, top, _ = run_forward(layer, x)
        assert np.allclose(top[0].data, np.tanh(x))

        top[0].diff = np.ones(3)
        layer.backward(top, [True], bottom)

        # Derivative of tanh(x) is 1 - tanh(x)^2
        assert np.allclose(bottom[0].diff, 1 - np.tanh(x) ** 2)
        assert not layer.backward_uses_bottom_data(0)

    def test_sigmoid(self):
        layer = SigmoidLayer()
        bottom, top, _ = run_forward(layer, np.array([0.0, 2.0]))
        assert np.isclose(top[0].data[0], 0.5)

        top[0].diff = np.ones(2)
        layer.backward(top, [True], bottom)
        s = 1.0 / (1.0 + np.exp(-2.0))
        assert np.allclose(bottom[0].diff, [0.25, s * (1 - s)])

    def test_dropout_same_seed_same_mask(self):
        layer = DropoutLayer(p=0.5)
        layer.bind_random(RandomSource(7))
        bottom, top, _ = run_forward(layer, np.ones((10, 10)))
        first = top[0].data.copy()

        # Check that some elements are zeroed out and the rest are scaled
        assert np.sum(first == 0) > 0
        assert np.all((first == 0) | (first == 2.0))

        layer.random.reseed()
        layer.forward(bottom, top)
        assert np.array_equal(top[0].data, first)

        layer.forward(bottom, top)
        assert not np.array_equal(top[0].data, first)

    def test_dropout_backward_uses_mask(self):
        layer = DropoutLayer(p=0.5)
        bottom, top, _ = run_forward(layer, np.ones(20))
        top[0].diff = np.ones(20)
        layer.backward(top, [True], bottom)
        assert np.array_equal(bottom[0].diff, layer.mask)

    def test_dropout_eval(self):
        layer = DropoutLayer(p=0.5)
        layer.eval()
        x = np.arange(5.0)
        _, top, _ = run_forward(layer, x)
        assert np.array_equal(top[0].data, x)

    def test_dropout_invalid_probability(self):
        with pytest.raises(ValueError):
            DropoutLayer(p=1.0)


class TestElementwise:
    def test_power_square(self):
        layer = PowerLayer(power=2.0)
        x = np.array([1.0, -2.0, 3.0])
        bottom, top, _ = run_forward(layer, x)
        assert np.allclose(top[0].data, x ** 2)

        top[0].diff = np.ones(3)
        layer.backward(top, [True], bottom)
        assert np.allclose(bottom[0].diff, 2 * x)
        assert layer.backward_uses_bottom_data(0)

    def test_power_affine(self):
        layer = PowerLayer(power=1.0, scale=2.0, shift=1.0)
        bottom, top, _ = run_forward(layer, np.array([0.0, 1.0]))
        assert np.allclose(top[0].data, [1.0, 3.0])

        top[0].diff = np.array([1.0, 0.5])
        layer.backward(top, [True], bottom)
        assert np.allclose(bottom[0].diff, [2.0, 1.0])
        assert not layer.backward_uses_bottom_data(0)
        assert not layer.backward_uses_top_data(0)

    def test_eltwise_sum(self):
        layer = EltwiseSumLayer(coeffs=[2.0, -1.0])
        a = np.array([[1.0, 2.0], [3.0, 4.0]])
        b = np.array([[0.5, 0.5], [1.0, 1.0]])
        bottom, top, _ = run_forward(layer, a, b)
        assert np.allclose(top[0].data, 2 * a - b)

        top[0].diff = np.ones((2, 2))
        layer.backward(top, [True, True], bottom)
        assert np.allclose(bottom[0].diff, 2.0)
        assert np.allclose(bottom[1].diff, -1.0)

    def test_eltwise_sum_in_place_backward(self):
        layer = EltwiseSumLayer(coeffs=[3.0, 1.0])
        bottom, top, _ = run_forward(layer, np.ones(3), np.ones(3))
        bottom[0].share_diff(top[0])
        top[0].diff = np.array([1.0, 2.0, 3.0])
        layer.backward(top, [True, True], bottom)
        assert np.allclose(bottom[0].diff, [3.0, 6.0, 9.0])
        assert np.allclose(bottom[1].diff, [1.0, 2.0, 3.0])

    def test_eltwise_sum_shape_mismatch(self):
        layer = EltwiseSumLayer()
        with pytest.raises(ValueError):
            layer.setup([Blob(3), Blob(4)], [Blob()])

    def test_eltwise_sum_coeff_mismatch(self):
        layer = EltwiseSumLayer(coeffs=[1.0])
        with pytest.raises(ValueError):
            layer.setup([Blob(3), Blob(3)], [Blob()])

    def test_split(self):
        layer = SplitLayer()
        x = np.array([1.0, 2.0, 3.0])
        bottom, top, _ = run_forward(layer, x, num_top=2)
        assert np.array_equal(top[0].data, x)
        assert np.array_equal(top[1].data, x)

        top[0].diff = np.array([1.0, 1.0, 1.0])
        top[1].diff = np.array([0.0, 1.0, 2.0])
        layer.backward(top, [True], bottom)
        assert np.array_equal(bottom[0].diff, [1.0, 2.0, 3.0])


class TestInnerProduct:
    def make_layer(self):
        layer = InnerProductLayer(3)
        bottom = [Blob(data=np.array([[1.0, 2.0], [3.0, 4.0]]))]
        top = [Blob()]
        layer.setup(bottom, top)

        # Fix the weights and biases for deterministic testing
        layer.weight.data = np.array([[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]])
        layer.bias.data = np.array([0.1, 0.2, 0.3])
        return layer, bottom, top

    def test_setup_shapes(self):
        layer, bottom, top = self.make_layer()
        assert layer.weight.shape == (2, 3)
        assert layer.bias.shape == (3,)
        assert top[0].shape == (2, 3)
        assert len(layer.blobs()) == 2

    def test_forward(self):
        layer, bottom, top = self.make_layer()
        layer.forward(bottom, top)
        # x @ W + b
        expected = np.array([[1.0, 1.4, 1.8], [2.0, 2.8, 3.6]])
        assert np.allclose(top[0].data, expected)

    def test_backward(self):
        layer, bottom, top = self.make_layer()
        bottom[0].data = np.array([[1.0, 2.0], [0.0, 0.0]])
        layer.forward(bottom, top)
        top[0].diff = np.array([[1.0, 1.0, 1.0], [0.0, 0.0, 0.0]])
        layer.backward(top, [True], bottom)

        # x_grad = out.grad @ weight.T
        assert np.allclose(bottom[0].diff, [[0.6, 1.5], [0.0, 0.0]])
        assert np.allclose(layer.weight.diff, [[1.0, 1.0, 1.0], [2.0, 2.0, 2.0]])
        assert np.allclose(layer.bias.diff, [1.0, 1.0, 1.0])

    def test_setup_again_keeps_weights(self):
        layer, bottom, top = self.make_layer()
        weight = layer.weight.data.copy()
        layer.setup([Blob(data=np.zeros((5, 2)))], [Blob()])
        assert np.array_equal(layer.weight.data, weight)

    def test_setup_again_wrong_features(self):
        layer, _, _ = self.make_layer()
        with pytest.raises(ValueError):
            layer.setup([Blob(data=np.zeros((2, 4)))], [Blob()])

    def test_blob_count_mismatch(self):
        with pytest.raises(ValueError):
            InnerProductLayer(3).setup([Blob(2), Blob(2)], [Blob()])


class TestEuclideanLoss:
    def test_forward(self):
        layer = EuclideanLossLayer()
        _, top, loss = run_forward(
            layer, np.array([[1.0, 2.0], [3.0, 4.0]]), np.zeros((2, 2)), num_top=0
        )
        # sum of squares 30, batch size 2
        assert np.isclose(loss, 7.5)
        assert top == []

    def test_backward(self):
        layer = EuclideanLossLayer()
        bottom, top, _ = run_forward(
            layer, np.array([[1.0, 2.0], [3.0, 4.0]]), np.ones((2, 2)), num_top=0
        )
        layer.backward(top, [True, True], bottom)
        expected = np.array([[0.0, 0.5], [1.0, 1.5]])
        assert np.allclose(bottom[0].diff, expected)
        assert np.allclose(bottom[1].diff, -expected)

    def test_size_mismatch(self):
        with pytest.raises(ValueError):
            EuclideanLossLayer().setup([Blob(3), Blob(4)], [])
