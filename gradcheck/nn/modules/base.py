"""
Base class for layers operating on blobs.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np

from gradcheck.core.blob import Blob
from gradcheck.core.random import RandomSource


class Layer(ABC):
    """
    Base class for all layers.

    A layer reads its inputs from a list of bottom blobs and writes its
    outputs into a list of top blobs. ``forward`` fills the tops' data and
    returns the layer's scalar loss contribution (0 for non-loss layers);
    ``accum_backward`` turns the tops' diffs into bottom and parameter diffs.

    Subclasses describe which buffers they actually touch through the
    capability queries below. The defaults are conservative ("may use",
    "may reuse"), so a layer only opts into the extra checks that a
    narrower claim enables.
    """

    # None means any number of blobs is accepted
    exact_num_bottom_blobs: Optional[int] = None
    exact_num_top_blobs: Optional[int] = None

    def __init__(self, name: Optional[str] = None):
        """
        Initialize the layer.

        Args:
            name: Optional name used in logs and failure reports
        """
        self.name = name or self.__class__.__name__
        self._blobs: List[Blob] = []
        self.random = RandomSource()
        self.training = True
        self.is_setup = False

    def blobs(self) -> List[Blob]:
        """Return the trainable parameter blobs of this layer."""
        return self._blobs

    def add_blob(self, blob: Blob):
        if blob not in self._blobs:
            self._blobs.append(blob)

    def bind_random(self, source: RandomSource):
        """Draw all randomness from the given source from now on."""
        self.random = source

    def setup(self, bottom: Sequence[Blob], top: Sequence[Blob]):
        """
        Check blob counts, run layer-specific setup and shape the tops.

        Raises:
            ValueError: If the number of bottom or top blobs is wrong
        """
        self.check_blob_counts(bottom, top)
        self.layer_setup(bottom, top)
        self.reshape(bottom, top)
        self.is_setup = True

    def check_blob_counts(self, bottom: Sequence[Blob], top: Sequence[Blob]):
        if self.exact_num_bottom_blobs is not None and len(bottom) != self.exact_num_bottom_blobs:
            raise ValueError(
                f"{self.name} takes {self.exact_num_bottom_blobs} bottom blob(s), "
                f"got {len(bottom)}"
            )
        if self.exact_num_top_blobs is not None and len(top) != self.exact_num_top_blobs:
            raise ValueError(
                f"{self.name} produces {self.exact_num_top_blobs} top blob(s), "
                f"got {len(top)}"
            )

    def layer_setup(self, bottom: Sequence[Blob], top: Sequence[Blob]):
        """
        Layer-specific one-time setup such as parameter initialization.

        Parameters must only be created when ``self.blobs()`` is still empty,
        so that setting the layer up again on other blobs keeps its weights.
        """

    @abstractmethod
    def reshape(self, bottom: Sequence[Blob], top: Sequence[Blob]):
        """Shape the top blobs to fit the bottom blobs."""
        raise NotImplementedError("Subclasses must implement reshape method")

    @abstractmethod
    def forward(self, bottom: Sequence[Blob], top: Sequence[Blob]) -> float:
        """Compute the tops from the bottoms and return the loss contribution."""
        raise NotImplementedError("Subclasses must implement forward method")

    @abstractmethod
    def accum_backward(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        accum_down: Sequence[bool],
        bottom: Sequence[Blob],
    ):
        """
        Compute bottom diffs from top diffs.

        For every bottom with ``propagate_down[i]``, the gradient is added to
        the existing diff when ``accum_down[i]`` is true and written over it
        otherwise. Parameter diffs are always overwritten.
        """
        raise NotImplementedError("Subclasses must implement accum_backward method")

    def backward(
        self,
        top: Sequence[Blob],
        propagate_down: Sequence[bool],
        bottom: Sequence[Blob],
    ):
        self.accum_backward(top, propagate_down, [False] * len(bottom), bottom)

    # Capability queries

    def forward_reuses_bottom_data(self, bottom_index: int) -> bool:
        """False if forward still works when top[i] is the same blob as bottom[i]."""
        return True

    def backward_reuses_top_diff(self, top_index: int) -> bool:
        """False if backward still works when bottom[i].diff shares top[i].diff."""
        return True

    def backward_uses_bottom_data(self, bottom_index: int) -> bool:
        return True

    def backward_uses_top_data(self, top_index: int) -> bool:
        return True

    def elementwise_only_computation(self) -> bool:
        """True if top[j] only depends on element j of each bottom."""
        return False

    def train(self):
        self.training = True

    def eval(self):
        self.training = False

    def get_config(self):
        """Get configuration for serialization."""
        return {}

    def __repr__(self):
        extra_repr = ", ".join(f"{k}={v}" for k, v in self.get_config().items())
        return f"{self.__class__.__name__}({extra_repr})"


def write_diff(blob: Blob, gradient: np.ndarray, accumulate: bool):
    """Add to or overwrite a blob's diff, in place."""
    if accumulate:
        blob.diff += gradient.reshape(blob.shape)
    else:
        blob.diff = gradient.reshape(blob.shape)


class ElementwiseLayer(Layer):
    """
    Base class for layers mapping one bottom to one top of the same shape,
    element by element.
    """

    exact_num_bottom_blobs = 1
    exact_num_top_blobs = 1

    def reshape(self, bottom, top):
        top[0].reshape_like(bottom[0])

    def forward_reuses_bottom_data(self, bottom_index):
        return False

    def backward_reuses_top_diff(self, top_index):
        return False

    def elementwise_only_computation(self):
        return True
