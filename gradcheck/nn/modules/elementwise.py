"""
Elementwise arithmetic layers: power, weighted sum and split.
"""

import numpy as np
from typing import Optional, Sequence

from gradcheck.nn.modules.base import ElementwiseLayer, Layer, write_diff


class PowerLayer(ElementwiseLayer):
    """
    Computes y = (shift + scale * x) ^ power.

    With power=1 this is an affine map whose gradient needs no input data;
    with power=2, scale=1, shift=0 it squares its input.
    """

    def __init__(self, power: float = 1.0, scale: float = 1.0, shift: float = 0.0, name=None):
        super().__init__(name=name)
        self.power = power
        self.scale = scale
        self.shift = shift

    def forward(self, bottom, top):
        base = self.shift + self.scale * bottom[0].data
        top[0].data = np.power(base, self.power)
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        if self.power == 0.0 or self.scale == 0.0:
            grad = np.zeros_like(top[0].diff)
        elif self.power == 1.0:
            grad = self.scale * top[0].diff
        else:
            base = self.shift + self.scale * bottom[0].data
            grad = self.power * self.scale * np.power(base, self.power - 1.0) * top[0].diff
        write_diff(bottom[0], grad, accum_down[0])

    def backward_uses_bottom_data(self, bottom_index):
        return not (self.power in (0.0, 1.0) or self.scale == 0.0)

    def backward_uses_top_data(self, top_index):
        return False

    def get_config(self):
        return {"power": self.power, "scale": self.scale, "shift": self.shift}


class EltwiseSumLayer(Layer):
    """
    Weighted sum of any number of equally shaped bottoms: y = sum_i c_i * x_i.
    """

    exact_num_top_blobs = 1

    def __init__(self, coeffs: Optional[Sequence[float]] = None, name=None):
        super().__init__(name=name)
        self.coeffs = list(coeffs) if coeffs is not None else None

    def _coeffs(self, num_bottom):
        if self.coeffs is None:
            return [1.0] * num_bottom
        return self.coeffs

    def layer_setup(self, bottom, top):
        if not bottom:
            raise ValueError(f"{self.name} needs at least one bottom blob")
        if self.coeffs is not None and len(self.coeffs) != len(bottom):
            raise ValueError(
                f"{self.name} has {len(self.coeffs)} coefficients for {len(bottom)} bottoms"
            )

    def reshape(self, bottom, top):
        for blob in bottom[1:]:
            if blob.shape != bottom[0].shape:
                raise ValueError(
                    f"{self.name} needs equally shaped bottoms, got {blob.shape} "
                    f"and {bottom[0].shape}"
                )
        top[0].reshape_like(bottom[0])

    def forward(self, bottom, top):
        total = np.zeros(bottom[0].shape, dtype=np.float64)
        for coeff, blob in zip(self._coeffs(len(bottom)), bottom):
            total += coeff * blob.data
        top[0].data = total
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        # bottom[0].diff may share storage with the top diff
        top_diff = top[0].diff.copy()
        for i, (coeff, blob) in enumerate(zip(self._coeffs(len(bottom)), bottom)):
            if propagate_down[i]:
                write_diff(blob, coeff * top_diff, accum_down[i])

    def forward_reuses_bottom_data(self, bottom_index):
        return False

    def backward_reuses_top_diff(self, top_index):
        return False

    def backward_uses_bottom_data(self, bottom_index):
        return False

    def backward_uses_top_data(self, top_index):
        return False

    def elementwise_only_computation(self):
        return True

    def get_config(self):
        return {"coeffs": self.coeffs}


class SplitLayer(Layer):
    """Copies one bottom into every top; the bottom gradient is the sum of the top diffs."""

    exact_num_bottom_blobs = 1

    def layer_setup(self, bottom, top):
        if not top:
            raise ValueError(f"{self.name} needs at least one top blob")

    def reshape(self, bottom, top):
        for blob in top:
            blob.reshape_like(bottom[0])

    def forward(self, bottom, top):
        data = bottom[0].data.copy()
        for blob in top:
            blob.data = data
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if not propagate_down[0]:
            return
        grad = np.zeros(bottom[0].shape, dtype=np.float64)
        for blob in top:
            grad += blob.diff
        write_diff(bottom[0], grad, accum_down[0])

    def forward_reuses_bottom_data(self, bottom_index):
        return False

    def backward_reuses_top_diff(self, top_index):
        return False

    def backward_uses_bottom_data(self, bottom_index):
        return False

    def backward_uses_top_data(self, top_index):
        return False

    def elementwise_only_computation(self):
        return True
