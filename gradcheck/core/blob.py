"""
Blob: the value/gradient buffer pair that layers read from and write to.
"""

import numpy as np
from typing import Optional, Tuple, Union


class Blob:
    """
    A pair of float64 arrays of identical shape: ``data`` and ``diff``.

    Layers and the gradient checker always write into the existing storage
    (``blob.data[...] = value``) instead of rebinding the arrays, so a blob
    that shares storage with another one through ``share_data`` or
    ``share_diff`` keeps seeing the other blob's writes.
    """

    def __init__(self, shape: Union[int, Tuple[int, ...]] = (), data=None):
        """
        Initialize a blob.

        Args:
            shape: Shape of the blob (ignored when data is given)
            data: Optional initial values (numpy array or compatible)
        """
        if data is not None:
            data = np.array(data, dtype=np.float64)
            shape = data.shape
        if isinstance(shape, int):
            shape = (shape,)

        self._data = np.zeros(shape, dtype=np.float64)
        self._diff = np.zeros(shape, dtype=np.float64)
        if data is not None:
            self._data[...] = data

    def __repr__(self) -> str:
        return f"Blob(shape={self.shape})"

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def data(self) -> np.ndarray:
        return self._data

    @data.setter
    def data(self, value):
        # Write in place so shared storage stays shared
        self._data[...] = value

    @property
    def diff(self) -> np.ndarray:
        return self._diff

    @diff.setter
    def diff(self, value):
        self._diff[...] = value

    @property
    def flat_data(self) -> np.ndarray:
        """Writable one-dimensional view of the data storage."""
        return self._data.reshape(-1)

    @property
    def flat_diff(self) -> np.ndarray:
        """Writable one-dimensional view of the diff storage."""
        return self._diff.reshape(-1)

    def count(self) -> int:
        """Number of scalar elements."""
        return int(self._data.size)

    def reshape(self, shape: Union[int, Tuple[int, ...]]):
        """
        Change the shape of the blob.

        Keeps the storage (and therefore any sharing) when the element count
        is unchanged, otherwise allocates fresh zero-filled arrays.
        """
        if isinstance(shape, int):
            shape = (shape,)
        shape = tuple(shape)

        if int(np.prod(shape, dtype=np.int64)) == self.count():
            self._data = self._data.reshape(shape)
            self._diff = self._diff.reshape(shape)
        else:
            self._data = np.zeros(shape, dtype=np.float64)
            self._diff = np.zeros(shape, dtype=np.float64)

    def reshape_like(self, other: "Blob"):
        self.reshape(other.shape)

    def copy_from(self, other: "Blob", copy_diff: bool = False, reshape: bool = False):
        """
        Copy values from another blob.

        Args:
            other: Source blob
            copy_diff: Copy the diff array instead of the data array
            reshape: Reshape this blob to match the source first

        Raises:
            ValueError: If the counts differ and reshape is False
        """
        if other.count() != self.count() or other.shape != self.shape:
            if not reshape:
                raise ValueError(
                    f"Cannot copy blob of shape {other.shape} into shape {self.shape}"
                )
            self.reshape_like(other)

        if copy_diff:
            np.copyto(self._diff, other.diff)
        else:
            np.copyto(self._data, other.data)

    def share_data(self, other: "Blob"):
        """Make this blob's data a view onto the other blob's data storage."""
        self._check_same_count(other)
        self._data = other._data.reshape(self.shape)

    def share_diff(self, other: "Blob"):
        """Make this blob's diff a view onto the other blob's diff storage."""
        self._check_same_count(other)
        self._diff = other._diff.reshape(self.shape)

    def shares_diff_with(self, other: "Blob") -> bool:
        return np.shares_memory(self._diff, other._diff)

    def _check_same_count(self, other: "Blob"):
        if other.count() != self.count():
            raise ValueError(
                f"Cannot share storage between blobs of {self.count()} "
                f"and {other.count()} elements"
            )

    @classmethod
    def like(cls, other: "Blob", data: Optional[np.ndarray] = None) -> "Blob":
        """Create a zero-filled blob with the same shape as another one."""
        blob = cls(other.shape)
        if data is not None:
            blob.data = data
        return blob
