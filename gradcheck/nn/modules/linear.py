import numpy as np

from gradcheck.nn.initialization import ConstantFiller, get_filler
from gradcheck.core.blob import Blob
from gradcheck.nn.modules.base import Layer, write_diff


class InnerProductLayer(Layer):
    """
    Fully connected layer: y = xW + b.

    The first bottom axis is the batch axis; the remaining axes are
    flattened into in_features. Parameter blobs are [weight, bias] with the
    weight stored as (in_features, out_features).
    """

    exact_num_bottom_blobs = 1
    exact_num_top_blobs = 1

    def __init__(self, out_features, bias_term=True, weight_filler="xavier",
                 bias_filler=None, name=None):
        super().__init__(name=name)
        self.out_features = out_features
        self.bias_term = bias_term
        self.weight_filler = get_filler(weight_filler) if isinstance(weight_filler, str) else weight_filler
        self.bias_filler = bias_filler or ConstantFiller(0.0)
        self.in_features = None

    @property
    def weight(self) -> Blob:
        return self._blobs[0]

    @property
    def bias(self) -> Blob:
        return self._blobs[1]

    def layer_setup(self, bottom, top):
        in_features = self._flat_shape(bottom[0])[1]
        if self._blobs:
            if self.in_features != in_features:
                raise ValueError(
                    f"{self.name} was set up with {self.in_features} input features, "
                    f"got {in_features}"
                )
            return

        self.in_features = in_features
        weight = Blob((in_features, self.out_features))
        self.weight_filler.fill(weight, self.random.generator)
        self.add_blob(weight)

        if self.bias_term:
            bias = Blob((self.out_features,))
            self.bias_filler.fill(bias, self.random.generator)
            self.add_blob(bias)

    def reshape(self, bottom, top):
        batch_size = self._flat_shape(bottom[0])[0]
        top[0].reshape((batch_size, self.out_features))

    @staticmethod
    def _flat_shape(blob):
        # For single sample input without batch dimension, add a batch dimension
        if len(blob.shape) <= 1:
            return 1, blob.count()
        return blob.shape[0], blob.count() // blob.shape[0]

    def forward(self, bottom, top):
        x = bottom[0].data.reshape(self._flat_shape(bottom[0]))
        out = np.matmul(x, self.weight.data)
        if self.bias_term:
            out = out + self.bias.data
        top[0].data = out
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        x = bottom[0].data.reshape(self._flat_shape(bottom[0]))
        top_diff = top[0].diff

        # Parameter gradients are overwritten, not accumulated
        self.weight.diff = np.matmul(x.T, top_diff)
        if self.bias_term:
            self.bias.diff = np.sum(top_diff, axis=0)

        if propagate_down[0]:
            # x_grad = out.grad @ weight.T
            x_grad = np.matmul(top_diff, self.weight.data.T)
            write_diff(bottom[0], x_grad, accum_down[0])

    def backward_uses_top_data(self, top_index):
        return False

    def get_config(self):
        """Get configuration for serialization."""
        return {
            "out_features": self.out_features,
            "bias_term": self.bias_term,
        }
