"""
This module provides gradient checking utilities to verify the backward pass
of layers against finite-difference estimates.

The checker puts an L2 objective on top of a layer's top blobs (or picks a
single top element as the objective) and compares the layer's analytic
gradient for every parameter and bottom element against a symmetric
difference quotient. On the way it also probes:

- accumulation: bottom diffs are pre-filled with noise before the backward
  pass, so a layer that overwrites instead of adding is caught;
- undeclared dependencies: data a layer claims not to need in backward is
  overwritten with random values first;
- in-place safety of forward and backward for layers that claim it.

The checker borrows the caller's blobs and does not guarantee that their
data or diffs are unchanged afterwards.
"""

import numpy as np
from typing import List, Optional, Sequence

from gradcheck.core.blob import Blob
from gradcheck.core.failures import GradientCheckError, GradientCheckFailure
from gradcheck.core.random import RandomSource
from gradcheck.nn.initialization import GaussianFiller, UniformFiller
from gradcheck.utils.logger import get_logger

logger = get_logger(__name__)

NOISE_MEAN = 10.0
NOISE_STD = 1.0
CORRUPTION_RANGE = 10.0


class GradientChecker:
    """
    Finite-difference gradient checker for layers and nets.

    ``kink`` and ``kink_range`` specify an ignored nonsmooth region of the
    form kink - kink_range <= |feature value| <= kink + kink_range. The
    default kink_range of -1 makes that region empty.
    """

    def __init__(
        self,
        stepsize: float,
        threshold: float,
        seed: int = 1701,
        kink: float = 0.0,
        kink_range: float = -1.0,
        raise_on_failure: bool = True,
    ):
        """
        Initialize the checker.

        Args:
            stepsize: Finite-difference step added to and subtracted from each feature
            threshold: Relative tolerance of the gradient comparison
            seed: Seed used every time the random source is reset
            kink: Center of the excluded nonsmooth band
            kink_range: Half-width of the excluded nonsmooth band
            raise_on_failure: Raise GradientCheckError at the end of a run with failures
        """
        if stepsize <= 0:
            raise ValueError(f"stepsize must be positive, got {stepsize}")
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")

        self._stepsize = float(stepsize)
        self._threshold = float(threshold)
        self._seed = int(seed)
        self._kink = float(kink)
        self._kink_range = float(kink_range)
        self._raise_on_failure = bool(raise_on_failure)

        self.random = RandomSource(self._seed)
        self.failures: List[GradientCheckFailure] = []

    @property
    def stepsize(self) -> float:
        return self._stepsize

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def kink(self) -> float:
        return self._kink

    @property
    def kink_range(self) -> float:
        return self._kink_range

    @property
    def raise_on_failure(self) -> bool:
        return self._raise_on_failure

    def get_config(self):
        """Get configuration for serialization."""
        return {
            "stepsize": self.stepsize,
            "threshold": self.threshold,
            "seed": self.seed,
            "kink": self.kink,
            "kink_range": self.kink_range,
            "raise_on_failure": self.raise_on_failure,
        }

    @classmethod
    def from_config(cls, config):
        return cls(**config)

    def __repr__(self):
        args = ", ".join(f"{k}={v}" for k, v in self.get_config().items())
        return f"GradientChecker({args})"

    # Drivers

    def check_gradient(self, layer, bottom: Sequence[Blob], top: Sequence[Blob],
                       check_bottom: Optional[int] = None) -> List[GradientCheckFailure]:
        """
        Set the layer up and check it against the aggregate L2 objective.

        Args:
            layer: Layer to check
            bottom: Bottom blobs
            top: Top blobs
            check_bottom: Only check this bottom index (None checks all bottoms)

        Returns:
            List of failures (empty when the check passed)
        """
        self._begin(layer)
        layer.setup(bottom, top)
        self._check_single(layer, bottom, top, check_bottom, None, None)
        return self._finish()

    def check_gradient_single(self, layer, bottom, top, check_bottom=None,
                              top_id=None, top_data_id=None) -> List[GradientCheckFailure]:
        """
        Check one target: top[top_id][top_data_id], or the aggregate L2
        objective when both are None. The layer is set up if it has not been.
        """
        self._begin(layer)
        if not layer.is_setup:
            layer.setup(bottom, top)
        self._check_single(layer, bottom, top, check_bottom, top_id, top_data_id)
        return self._finish()

    def check_gradient_exhaustive(self, layer, bottom, top,
                                  check_bottom=None) -> List[GradientCheckFailure]:
        """Check the gradient of every single top element separately."""
        self._begin(layer)
        self._check_exhaustive(layer, bottom, top, check_bottom)
        return self._finish()

    def check_gradient_net(self, net, inputs: Sequence[Blob]) -> List[GradientCheckFailure]:
        """
        Check every layer of a net, one layer at a time.

        The net should not contain loss layers. Before each layer the whole
        net is run forward on ``inputs``, so the layer sees the data its
        upstream layers produce, and errors stay attributed to one layer
        instead of compounding along the chain.
        """
        self.failures = []
        net.bind_random(self.random)
        for i, layer in enumerate(net.layers):
            net.forward(inputs)
            logger.info("Checking gradient for %s", layer.name)
            self._check_exhaustive(layer, net.bottom_vecs[i], net.top_vecs[i])
        return self._finish()

    def _begin(self, layer):
        self.failures = []
        layer.bind_random(self.random)
        logger.info("Checking gradient for %s", layer.name)

    def _finish(self) -> List[GradientCheckFailure]:
        failures = list(self.failures)
        if not failures:
            logger.info("Gradient check passed")
            return failures

        logger.warning("Gradient check found %d violation(s)", len(failures))
        if self.raise_on_failure:
            raise GradientCheckError(failures)
        return failures

    def _check_exhaustive(self, layer, bottom, top, check_bottom=None):
        layer.setup(bottom, top)
        if len(top) == 0:
            raise ValueError("Exhaustive mode requires at least one top blob.")
        for top_id, blob in enumerate(top):
            logger.debug("Exhaustive: top %d with %d elements", top_id, blob.count())
            for top_data_id in range(blob.count()):
                self._check_single(layer, bottom, top, check_bottom, top_id, top_data_id)

    # Single target

    def _check_single(self, layer, bottom, top, check_bottom, top_id, top_data_id):
        self._validate_target(layer, bottom, top, check_bottom, top_id, top_data_id)

        # First, figure out what blobs we need to check against
        blobs_to_check, add_noise, bottom_ids, propagate_down = self._select_blobs(
            layer, bottom, check_bottom
        )
        noise_blobs = self._inject_noise(blobs_to_check, add_noise)

        # Compute the gradient analytically using backward
        self.random.reseed(self.seed)
        computed_objective = layer.forward(bottom, top)
        self.check_forward_in_place(layer, bottom, top, check_bottom, computed_objective)
        computed_objective += self.get_obj_and_gradient(top, top_id, top_data_id)

        backup_bottom = self._corrupt_unused_data(layer, bottom, top)
        layer.accum_backward(top, propagate_down, [True] * len(bottom), bottom)

        # Store computed gradients for all checked blobs, subtracting the noise
        computed_gradients = []
        bottom_gradients: List[Optional[np.ndarray]] = [None] * len(bottom)
        for blob, noise, bottom_id in zip(blobs_to_check, noise_blobs, bottom_ids):
            gradient = blob.diff.copy()
            if noise is not None:
                gradient -= noise.data
            computed_gradients.append(gradient)
            if bottom_id is not None:
                bottom_gradients[bottom_id] = gradient

        self._restore_bottom(bottom, backup_bottom)
        self.check_backward_in_place(layer, bottom, top, bottom_gradients, propagate_down,
                                     check_bottom, top_id, top_data_id)

        for blob_id, (blob, gradient) in enumerate(zip(blobs_to_check, computed_gradients)):
            logger.debug("Blob %d: checking %d features", blob_id, blob.count())
            flat_gradient = gradient.reshape(-1)
            for feat_id in range(blob.count()):
                estimated = self._estimate_gradient(layer, bottom, top, blob, feat_id,
                                                    top_id, top_data_id)
                self._compare_feature(layer, blob, feat_id, flat_gradient[feat_id], estimated,
                                      top_id, top_data_id, blob_id)

    def _validate_target(self, layer, bottom, top, check_bottom, top_id, top_data_id):
        if check_bottom is not None and not 0 <= check_bottom < len(bottom):
            raise ValueError(
                f"check_bottom={check_bottom} is out of range for {len(bottom)} bottom blob(s)"
            )
        if (top_id is None) != (top_data_id is None):
            raise ValueError("top_id and top_data_id must be given together")
        if top_id is None:
            return

        if not 0 <= top_id < len(top):
            raise ValueError(f"top_id={top_id} is out of range for {len(top)} top blob(s)")
        top_count = top[top_id].count()
        if not 0 <= top_data_id < top_count:
            raise ValueError(
                f"top_data_id={top_data_id} is out of range for a top of {top_count} elements"
            )

        if layer.elementwise_only_computation():
            if layer.blobs():
                raise ValueError(f"Elementwise layer {layer.name} must not have parameters")
            for blob in bottom:
                if blob.count() != top_count:
                    raise ValueError(
                        f"Elementwise layer {layer.name} has a bottom of {blob.count()} "
                        f"elements for a top of {top_count}"
                    )

    @staticmethod
    def _select_blobs(layer, bottom, check_bottom):
        blobs_to_check = []
        add_noise = []
        bottom_ids = []
        propagate_down = [False] * len(bottom)

        for blob in layer.blobs():
            blobs_to_check.append(blob)
            add_noise.append(False)
            bottom_ids.append(None)

        bottom_range = range(len(bottom)) if check_bottom is None else [check_bottom]
        for i in bottom_range:
            blobs_to_check.append(bottom[i])
            add_noise.append(True)
            bottom_ids.append(i)
            propagate_down[i] = True

        return blobs_to_check, add_noise, bottom_ids, propagate_down

    def _inject_noise(self, blobs_to_check, add_noise) -> List[Optional[Blob]]:
        """
        Fill the diff of each noise-eligible blob with Gaussian noise.

        The noise is subtracted again after the backward pass; a layer whose
        accumulating backward overwrites the diff instead of adding to it
        ends up with a gradient that is off by roughly the noise mean.
        """
        self.random.reseed(self.seed)
        filler = GaussianFiller(mean=NOISE_MEAN, std=NOISE_STD)
        noise_blobs = []
        for blob, noisy in zip(blobs_to_check, add_noise):
            if not noisy:
                noise_blobs.append(None)
                continue
            noise = Blob.like(blob)
            filler.fill(noise, self.random.generator)
            blob.diff = noise.data
            noise_blobs.append(noise)
        return noise_blobs

    def _corrupt_unused_data(self, layer, bottom, top) -> List[Optional[Blob]]:
        """
        Overwrite data the layer claims not to read in backward.

        Bottom data is backed up, since finite differencing needs the
        original values; top data is recomputed by the next forward pass.
        """
        filler = UniformFiller(-CORRUPTION_RANGE, CORRUPTION_RANGE)
        backup_bottom: List[Optional[Blob]] = [None] * len(bottom)
        for i, blob in enumerate(bottom):
            if not layer.backward_uses_bottom_data(i):
                backup = Blob()
                backup.copy_from(blob, reshape=True)
                backup_bottom[i] = backup
                filler.fill(blob, self.random.generator)
        for i, blob in enumerate(top):
            if not layer.backward_uses_top_data(i):
                filler.fill(blob, self.random.generator)
        return backup_bottom

    @staticmethod
    def _restore_bottom(bottom, backup_bottom):
        for blob, backup in zip(bottom, backup_bottom):
            if backup is not None:
                blob.copy_from(backup)

    # Objective

    def get_obj_and_gradient(self, top: Sequence[Blob], top_id: Optional[int] = None,
                             top_data_id: Optional[int] = None) -> float:
        """
        Compute the objective on the top blobs and seed their diffs with its gradient.

        Without a target the objective is half the sum of squares of all top
        elements, and each top diff becomes a copy of its data. With a target
        the objective is top[top_id][top_data_id]: all top diffs are zeroed
        and that single entry is set to 1.
        """
        loss = 0.0
        if top_id is None:
            for blob in top:
                loss += float(np.sum(blob.data * blob.data))
                # set the diff: simply the data
                blob.diff = blob.data
            loss /= 2.0
        else:
            for blob in top:
                blob.diff = 0.0
            loss = float(top[top_id].flat_data[top_data_id])
            top[top_id].flat_diff[top_data_id] = 1.0
        return loss

    # In-place probes

    def check_forward_in_place(self, layer, bottom, top, check_bottom, computed_objective):
        """
        Run forward with top[i] replaced by bottom[i] for every index the
        layer claims is safe, and compare with the regular result that must
        already be in ``top``. The bottom data is restored afterwards.
        """
        in_place_top = list(top)
        backup_bottom = {}
        for i in range(min(len(bottom), len(top))):
            if ((check_bottom is None or i == check_bottom)
                    and top[i].count() == bottom[i].count()
                    and not layer.forward_reuses_bottom_data(i)):
                backup = Blob()
                backup.copy_from(bottom[i], reshape=True)
                backup_bottom[i] = backup
                in_place_top[i] = bottom[i]

        if not backup_bottom:
            return

        self.random.reseed(self.seed)
        in_place_objective = layer.forward(bottom, in_place_top)
        if in_place_objective != computed_objective:
            self._record("forward_in_place_objective", layer, {},
                         computed_objective, in_place_objective)

        for i, backup in backup_bottom.items():
            orig_top_data = top[i].flat_data
            in_place_top_data = bottom[i].flat_data
            for j in np.flatnonzero(orig_top_data != in_place_top_data):
                self._record("forward_in_place", layer, {"top_id": i, "element": int(j)},
                             orig_top_data[j], in_place_top_data[j])
            bottom[i].copy_from(backup)

    def check_backward_in_place(self, layer, bottom, top, computed_gradients, propagate_down,
                                check_bottom, top_id, top_data_id):
        """
        Recompute the gradient on copies of the blobs, with bottom[i].diff
        sharing top[i].diff for every index the layer claims is safe, and
        compare with the analytic gradients already computed.
        """
        num = min(len(bottom), len(top))
        backward_in_place = [
            (check_bottom is None or i == check_bottom)
            and top[i].count() == bottom[i].count()
            and not layer.backward_reuses_top_diff(i)
            for i in range(num)
        ]
        if not any(backward_in_place):
            return

        temp_bottom = []
        for blob in bottom:
            temp = Blob()
            temp.copy_from(blob, reshape=True)
            temp_bottom.append(temp)
        temp_top = [Blob() for _ in top]

        layer.setup(temp_bottom, temp_top)
        for i in range(num):
            if backward_in_place[i]:
                temp_bottom[i].share_diff(temp_top[i])

        self.random.reseed(self.seed)
        layer.forward(temp_bottom, temp_top)
        self.get_obj_and_gradient(temp_top, top_id, top_data_id)
        layer.backward(temp_top, propagate_down, temp_bottom)

        for i in range(num):
            if not propagate_down[i] or computed_gradients[i] is None:
                continue
            orig_bottom_diff = computed_gradients[i].reshape(-1)
            in_place_bottom_diff = temp_bottom[i].flat_diff
            within = np.abs(orig_bottom_diff - in_place_bottom_diff) <= self.threshold
            for j in np.flatnonzero(~within):
                self._record(
                    "backward_in_place", layer,
                    {"top_id": top_id, "top_data_id": top_data_id,
                     "bottom_id": i, "element": int(j)},
                    orig_bottom_diff[j], in_place_bottom_diff[j], self.threshold,
                )

    # Finite differencing

    def _estimate_gradient(self, layer, bottom, top, blob, feat_id, top_id, top_data_id) -> float:
        # For an elementwise layer, top[top_id][top_data_id] only depends on
        # element top_data_id of each bottom; every other derivative is 0.
        if (layer.elementwise_only_computation() and top_data_id is not None
                and feat_id != top_data_id):
            return 0.0

        data = blob.flat_data
        original = data[feat_id]

        data[feat_id] = original + self.stepsize
        self.random.reseed(self.seed)
        positive_objective = layer.forward(bottom, top)
        positive_objective += self.get_obj_and_gradient(top, top_id, top_data_id)

        data[feat_id] = original - self.stepsize
        self.random.reseed(self.seed)
        negative_objective = layer.forward(bottom, top)
        negative_objective += self.get_obj_and_gradient(top, top_id, top_data_id)

        data[feat_id] = original
        return (positive_objective - negative_objective) / self.stepsize / 2.0

    def in_kink_region(self, feature: float) -> bool:
        return self.kink - self.kink_range <= abs(feature) <= self.kink + self.kink_range

    def _compare_feature(self, layer, blob, feat_id, computed, estimated,
                         top_id, top_data_id, blob_id):
        feature = blob.flat_data[feat_id]
        if self.in_kink_region(feature):
            return

        # Relative accuracy, with the scale floored at 1 for small values
        scale = max(abs(computed), abs(estimated), 1.0)
        tolerance = self.threshold * scale
        if not abs(computed - estimated) <= tolerance:
            self._record(
                "gradient", layer,
                {"top_id": top_id, "top_data_id": top_data_id,
                 "blob_id": blob_id, "feat_id": feat_id},
                computed, estimated, tolerance,
            )

    def _record(self, kind, layer, indices, expected, actual, tolerance=0.0):
        failure = GradientCheckFailure(kind, layer.name, indices, expected, actual, tolerance)
        logger.warning("%r", failure)
        self.failures.append(failure)
