from gradcheck.nn.modules.base import ElementwiseLayer, Layer
from gradcheck.nn.modules.activation import DropoutLayer, ReLULayer, SigmoidLayer, TanhLayer
from gradcheck.nn.modules.container import Net
from gradcheck.nn.modules.elementwise import EltwiseSumLayer, PowerLayer, SplitLayer
from gradcheck.nn.modules.linear import InnerProductLayer
from gradcheck.nn.modules.loss import EuclideanLossLayer

__all__ = [
    "Layer",
    "ElementwiseLayer",
    "DropoutLayer",
    "ReLULayer",
    "SigmoidLayer",
    "TanhLayer",
    "Net",
    "EltwiseSumLayer",
    "PowerLayer",
    "SplitLayer",
    "InnerProductLayer",
    "EuclideanLossLayer",
]
