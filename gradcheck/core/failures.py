"""
Records describing verification failures found by the gradient checker.
"""

from typing import Dict, List, Optional


class GradientCheckFailure:
    """
    One violated comparison.

    Attributes:
        kind: "gradient", "forward_in_place", "forward_in_place_objective"
            or "backward_in_place"
        layer: Name of the layer under check
        indices: Identifying indices, e.g. top_id, top_data_id, blob_id, feat_id
        expected: Reference value (analytic gradient or non-in-place result)
        actual: Value that disagreed with it
        tolerance: Allowed absolute difference (0 for exact comparisons)
    """

    def __init__(
        self,
        kind: str,
        layer: str,
        indices: Dict[str, Optional[int]],
        expected: float,
        actual: float,
        tolerance: float = 0.0,
    ):
        self.kind = kind
        self.layer = layer
        self.indices = dict(indices)
        self.expected = float(expected)
        self.actual = float(actual)
        self.tolerance = float(tolerance)

    def __repr__(self):
        location = ", ".join(f"{k}={v}" for k, v in self.indices.items())
        return (
            f"GradientCheckFailure({self.kind} in {self.layer}: ({location}) "
            f"expected {self.expected:.6g}, got {self.actual:.6g}, "
            f"tolerance {self.tolerance:.3g})"
        )


class GradientCheckError(AssertionError):
    """Raised at the end of a check run when any comparison failed."""

    def __init__(self, failures: List[GradientCheckFailure]):
        self.failures = list(failures)
        lines = [f"Gradient check failed with {len(self.failures)} violation(s):"]
        lines.extend(f"  {failure!r}" for failure in self.failures)
        super().__init__("\n".join(lines))
