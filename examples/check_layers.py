"""
Gradient-check a few layers and a small net.

Shows a passing exhaustive check, a net check, and what the report looks
like for a layer whose backward pass overwrites instead of accumulating.
"""

import numpy as np

from gradcheck import Blob, GradientChecker
from gradcheck.nn import ElementwiseLayer, InnerProductLayer, Net, ReLULayer, TanhLayer
from gradcheck.nn.modules.base import write_diff


class BrokenScaleLayer(ElementwiseLayer):
    """y = 3x with a backward pass that ignores accumulation."""

    def forward(self, bottom, top):
        top[0].data = 3.0 * bottom[0].data
        return 0.0

    def accum_backward(self, top, propagate_down, accum_down, bottom):
        if propagate_down[0]:
            write_diff(bottom[0], 3.0 * top[0].diff, False)


def main():
    rng = np.random.default_rng(42)

    print("===== Single layer =====")
    checker = GradientChecker(stepsize=1e-2, threshold=1e-3, kink=0.0, kink_range=0.01)
    bottom = [Blob(data=rng.normal(size=(2, 5)))]
    checker.check_gradient_exhaustive(ReLULayer(), bottom, [Blob()])
    print("ReLU passed")

    print("\n===== Net =====")
    net = Net(name="mlp")
    net.add_input("data", (4, 3))
    net.add_layer(InnerProductLayer(5, name="ip1"), ["data"], ["ip1"])
    net.add_layer(TanhLayer(name="tanh1"), ["ip1"], ["tanh1"])
    net.add_layer(InnerProductLayer(2, name="ip2"), ["tanh1"], ["out"])
    checker.check_gradient_net(net, [Blob(data=rng.normal(size=(4, 3)))])
    print("All layers of the net passed")

    print("\n===== Broken layer =====")
    reporting_checker = GradientChecker(stepsize=1e-2, threshold=1e-3, raise_on_failure=False)
    failures = reporting_checker.check_gradient(
        BrokenScaleLayer(name="broken"), [Blob(data=rng.normal(size=4))], [Blob()]
    )
    print(f"{len(failures)} violation(s):")
    for failure in failures:
        print(f"  {failure!r}")


if __name__ == "__main__":
    main()
