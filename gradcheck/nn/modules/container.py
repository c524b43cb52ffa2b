"""
Container wiring layers together through named blobs.
"""

from collections import OrderedDict
from typing import Iterator, List, Optional, Sequence

from gradcheck.core.blob import Blob
from gradcheck.core.random import RandomSource
from gradcheck.nn.modules.base import Layer


class Net:
    """
    Ordered collection of layers connected by named blobs.

    Layers run in the order they are added. A layer's top named like an
    already existing blob reuses that blob, which wires the layer in place.
    """

    def __init__(self, name: str = "net", seed: Optional[int] = 0):
        """
        Initialize an empty net.

        Args:
            name: Name of the net, used in logs
            seed: Seed of the random source its layers are initialized from
        """
        self.name = name
        self.random = RandomSource(seed)
        self.layers: List[Layer] = []
        self.bottom_vecs: List[List[Blob]] = []
        self.top_vecs: List[List[Blob]] = []
        self.blobs: "OrderedDict[str, Blob]" = OrderedDict()
        self.input_names: List[str] = []

    def add_input(self, name: str, shape) -> Blob:
        """Declare an input blob that ``forward`` fills from its arguments."""
        if name in self.blobs:
            raise ValueError(f"Blob '{name}' already exists in {self.name}")
        blob = Blob(shape)
        self.blobs[name] = blob
        self.input_names.append(name)
        return blob

    @property
    def input_blobs(self) -> List[Blob]:
        return [self.blobs[name] for name in self.input_names]

    def add_layer(self, layer: Layer, bottoms: Sequence[str], tops: Sequence[str]) -> Layer:
        """
        Append a layer, resolve its blob names and set it up.

        The layer is bound to the net's random source first, so parameter
        initialization is reproducible for a given seed.

        Args:
            layer: Layer to add
            bottoms: Names of existing blobs the layer reads
            tops: Names of the blobs the layer writes; unknown names are created

        Returns:
            The added layer
        """
        bottom_vec = []
        for name in bottoms:
            if name not in self.blobs:
                raise ValueError(f"Unknown bottom blob '{name}' for layer {layer.name}")
            bottom_vec.append(self.blobs[name])

        top_vec = []
        for name in tops:
            if name not in self.blobs:
                self.blobs[name] = Blob()
            top_vec.append(self.blobs[name])

        layer.bind_random(self.random)
        layer.setup(bottom_vec, top_vec)
        self.layers.append(layer)
        self.bottom_vecs.append(bottom_vec)
        self.top_vecs.append(top_vec)
        return layer

    def forward(self, inputs: Optional[Sequence[Blob]] = None) -> float:
        """
        Run every layer in order.

        Args:
            inputs: Blobs whose data is copied into the declared input blobs

        Returns:
            Sum of the layers' loss contributions
        """
        if inputs is not None:
            if len(inputs) != len(self.input_names):
                raise ValueError(
                    f"{self.name} expects {len(self.input_names)} input(s), got {len(inputs)}"
                )
            for blob, source in zip(self.input_blobs, inputs):
                blob.copy_from(source)

        loss = 0.0
        for layer, bottom, top in zip(self.layers, self.bottom_vecs, self.top_vecs):
            loss += layer.forward(bottom, top)
        return loss

    def params(self) -> List[Blob]:
        params = []
        for layer in self.layers:
            params.extend(layer.blobs())
        return params

    def bind_random(self, source: RandomSource):
        self.random = source
        for layer in self.layers:
            layer.bind_random(source)

    def train(self):
        """Set all layers to training mode."""
        for layer in self.layers:
            layer.train()

    def eval(self):
        """Set all layers to evaluation mode."""
        for layer in self.layers:
            layer.eval()

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, idx: int) -> Layer:
        return self.layers[idx]

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)
