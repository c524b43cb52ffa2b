"""
Loss layers.

Loss layers have no top blobs; their forward pass returns the loss value
and their backward pass treats that value as the objective.
"""

import numpy as np

from gradcheck.nn.modules.base import Layer, write_diff


class EuclideanLossLayer(Layer):
    """
    Euclidean loss between a prediction and a target blob:

        loss = 1 / (2N) * sum((prediction - target)^2)

    where N is the size of the first (batch) axis.
    """

    exact_num_bottom_blobs = 2
    exact_num_top_blobs = 0

    def reshape(self, bottom, top):
        if bottom[0].count() != bottom[1].count():
            raise ValueError(
                f"{self.name} needs bottoms of equal size, got "
                f"{bottom[0].count()} and {bottom[1].count()}"
            )

    @staticmethod
    def _num(blob):
        return blob.shape[0] if blob.shape else 1

    def forward(self, bottom, top):
        difference = bottom[0].data - bottom[1].data.reshape(bottom[0].shape)
        return float(np.sum(difference * difference) / self._num(bottom[0]) / 2.0)

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        difference = bottom[0].data - bottom[1].data.reshape(bottom[0].shape)
        grad = difference / self._num(bottom[0])
        for i, sign in enumerate((1.0, -1.0)):
            if propagate_down[i]:
                write_diff(bottom[i], sign * grad, accum_down[i])
