# Copyright 2025 BrainX Ecosystem Limited. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# -*- coding: utf-8 -*-

import operator
from typing import Sequence, Tuple

import numpy as np

from densedia._error import DiaConfigurationError
from densedia._misc import cdiv, is_tracer
from densedia._typing import MatrixShape, Offsets

__all__ = [
    'DiaPattern',
]


class DiaPattern:
    """The sparsity pattern of a diagonal-sparse (DIA) matrix.

    A pattern is the sorted set of unique diagonal offsets ``S`` plus the
    matrix shape. Offset ``d`` designates the positions ``(i, i + d)``;
    ``d = 0`` is the main diagonal, positive offsets lie above it.

    Patterns are immutable and hashable, so they can be used as static
    metadata under ``jax.jit`` and compared by value to detect stale block
    descriptors.

    Parameters
    ----------
    offsets : sequence of int
        Diagonal offsets. They are sorted here; duplicates are rejected.
    shape : tuple of int
        ``(rows, cols)`` of the matrix.

    Raises
    ------
    DiaConfigurationError
        If the shape is not two positive integers, if an offset is repeated,
        or if an offset is outside ``(-rows, cols)``.

    Examples
    --------
    .. code-block:: python

        >>> from densedia import DiaPattern
        >>> p = DiaPattern([1, 0, -2], shape=(4, 5))
        >>> p.offsets
        (-2, 0, 1)
        >>> p.tile_grid(16)
        (1, 1)
    """
    __module__ = 'densedia'
    __slots__ = ('_offsets', '_shape')

    def __init__(self, offsets: Offsets, shape: MatrixShape):
        if not isinstance(shape, (tuple, list)) or len(shape) != 2:
            raise DiaConfigurationError(f'shape must be a (rows, cols) pair, but got {shape!r}.')
        try:
            rows, cols = (operator.index(s) for s in shape)
        except TypeError:
            raise DiaConfigurationError(f'shape must contain integers, but got {shape!r}.') from None
        if rows <= 0 or cols <= 0:
            raise DiaConfigurationError(f'shape must contain positive integers, but got {shape!r}.')
        if is_tracer(offsets):
            raise DiaConfigurationError('Diagonal offsets must be concrete; they cannot be traced.')

        offsets = np.asarray(offsets)
        if offsets.ndim != 1:
            raise DiaConfigurationError(f'offsets must be one-dimensional, but got shape {offsets.shape}.')
        if offsets.size and not np.issubdtype(offsets.dtype, np.integer):
            raise DiaConfigurationError(f'offsets must be integers, but got dtype {offsets.dtype}.')
        sorted_offsets = np.sort(offsets.astype(np.int64))
        if np.any(np.diff(sorted_offsets) == 0):
            raise DiaConfigurationError(f'offsets must be unique, but got {offsets.tolist()}.')
        bad = sorted_offsets[(sorted_offsets <= -rows) | (sorted_offsets >= cols)]
        if bad.size:
            raise DiaConfigurationError(
                f'offsets {bad.tolist()} are out of range for a {rows}x{cols} matrix; '
                f'every offset d must satisfy {-rows} < d < {cols}.'
            )
        self._offsets: Tuple[int, ...] = tuple(int(d) for d in sorted_offsets)
        self._shape: MatrixShape = (rows, cols)

    @property
    def offsets(self) -> Tuple[int, ...]:
        """The sorted, unique diagonal offsets."""
        return self._offsets

    @property
    def shape(self) -> MatrixShape:
        return self._shape

    @property
    def rows(self) -> int:
        return self._shape[0]

    @property
    def cols(self) -> int:
        return self._shape[1]

    @property
    def num_diags(self) -> int:
        return len(self._offsets)

    def offsets_array(self, dtype=np.int32) -> np.ndarray:
        """The offsets as a NumPy array."""
        return np.asarray(self._offsets, dtype=dtype)

    def tile_grid(self, tile_size: int) -> Tuple[int, int]:
        """Number of tile rows and tile columns covering the matrix.

        Parameters
        ----------
        tile_size : int
            Side ``T`` of the square tiles.

        Returns
        -------
        tuple of int
            ``(ceil(rows / T), ceil(cols / T))``.
        """
        if int(tile_size) <= 0:
            raise DiaConfigurationError(f'tile_size must be a positive integer, but got {tile_size!r}.')
        return cdiv(self.rows, tile_size), cdiv(self.cols, tile_size)

    def diag_lengths(self) -> Sequence[int]:
        """Number of matrix positions on each stored diagonal."""
        rows, cols = self._shape
        return tuple(min(rows, cols - d) if d >= 0 else min(rows + d, cols) for d in self._offsets)

    def column_indices(self) -> np.ndarray:
        """Column ``i + offsets[k]`` addressed by the storage slot ``(k, i)``.

        Returns an ``int32`` array of shape ``(num_diags, rows)``. Padding
        slots hold columns outside ``[0, cols)``.
        """
        rows = np.arange(self.rows, dtype=np.int64)
        return (rows[None, :] + self.offsets_array(np.int64)[:, None]).astype(np.int32)

    def valid_mask(self) -> np.ndarray:
        """Boolean ``(num_diags, rows)`` mask of the storage slots that are matrix positions."""
        cols = self.column_indices()
        return (cols >= 0) & (cols < self.cols)

    def __eq__(self, other):
        if not isinstance(other, DiaPattern):
            return NotImplemented
        return self._shape == other._shape and self._offsets == other._offsets

    def __hash__(self):
        return hash((self._shape, self._offsets))

    def __repr__(self):
        return f'DiaPattern(offsets={list(self._offsets)}, shape={self._shape})'
