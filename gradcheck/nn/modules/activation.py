"""
Implementation of activation layers.
"""

import numpy as np

from gradcheck.nn.modules.base import ElementwiseLayer, write_diff


class ReLULayer(ElementwiseLayer):
    """
    Rectified linear unit, with an optional slope for negative inputs.

    The derivative is discontinuous at zero, so gradient checks should
    exclude a small band around it (kink=0, kink_range=stepsize or so).
    """

    def __init__(self, negative_slope: float = 0.0, name=None):
        super().__init__(name=name)
        self.negative_slope = negative_slope

    def forward(self, bottom, top):
        x = bottom[0].data
        top[0].data = np.where(x > 0, x, self.negative_slope * x)
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        x = bottom[0].data
        # Multiply with upstream grad
        grad = top[0].diff * np.where(x > 0, 1.0, self.negative_slope)
        write_diff(bottom[0], grad, accum_down[0])

    def backward_uses_top_data(self, top_index):
        return False

    def get_config(self):
        return {"negative_slope": self.negative_slope}


class SigmoidLayer(ElementwiseLayer):
    """Logistic sigmoid; its gradient only needs the output."""

    def forward(self, bottom, top):
        top[0].data = 1.0 / (1.0 + np.exp(-bottom[0].data))
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        y = top[0].data
        grad = top[0].diff * y * (1.0 - y)
        write_diff(bottom[0], grad, accum_down[0])

    def backward_uses_bottom_data(self, bottom_index):
        return False


class TanhLayer(ElementwiseLayer):
    """
    Hyperbolic tangent (tanh) activation function.

    The tanh function is defined as tanh(x) = (e^x - e^-x) / (e^x + e^-x).
    It maps inputs to outputs in the range (-1, 1).
    """

    def forward(self, bottom, top):
        top[0].data = np.tanh(bottom[0].data)
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        y = top[0].data
        # Derivative of tanh(x) is 1 - tanh(x)^2
        grad = (1.0 - y * y) * top[0].diff
        write_diff(bottom[0], grad, accum_down[0])

    def backward_uses_bottom_data(self, bottom_index):
        return False


class DropoutLayer(ElementwiseLayer):
    """
    Inverted dropout.

    In training mode each element is kept with probability 1 - p and scaled
    by 1 / (1 - p). The mask is drawn from the layer's random source, so
    reseeding the source reproduces the same mask.
    """

    def __init__(self, p: float = 0.5, name=None):
        super().__init__(name=name)
        if not 0.0 <= p < 1.0:
            raise ValueError(f"Dropout probability must be in [0, 1), got {p}")
        self.p = p
        self.mask = None

    def forward(self, bottom, top):
        x = bottom[0].data
        if not self.training or self.p == 0.0:
            self.mask = np.ones_like(x)
        else:
            keep_prob = 1.0 - self.p
            draws = self.random.generator.random(x.shape)
            self.mask = (draws < keep_prob).astype(np.float64) / keep_prob
        top[0].data = x * self.mask
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        grad = top[0].diff * self.mask
        write_diff(bottom[0], grad, accum_down[0])

    def backward_uses_bottom_data(self, bottom_index):
        return False

    def backward_uses_top_data(self, top_index):
        return False

    def get_config(self):
        return {"p": self.p}
