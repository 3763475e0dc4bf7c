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
from typing import Optional, Union

import brainunit as u
import jax
import jax.numpy as jnp
import numpy as np

from densedia._compatible_import import JAXSparse
from densedia._error import DiaConfigurationError
from densedia._misc import is_tracer
from densedia._typing import Data, MatrixShape, Offsets
from .pattern import DiaPattern

__all__ = [
    'DIA',
]


@jax.tree_util.register_pytree_node_class
class DIA(JAXSparse):
    """
    Diagonal-sparse (DIA) matrix.

    Only a fixed set of diagonals is stored. Diagonal ``offsets[k]`` is
    stored as row ``k`` of ``data``, indexed by the matrix row::

        data[k, i] == C[i, i + offsets[k]]

    so ``data`` has shape ``(len(offsets), rows)``. Slots where
    ``i + offsets[k]`` falls outside ``[0, cols)`` are padding: they are not
    matrix entries and no operation of this package reads them as values or
    writes to them.

    ``data`` is the only pytree leaf; the offsets and the shape are static.

    Parameters
    ----------
    args : tuple
        ``(data, offsets)``. If the offsets are not sorted, the rows of
        ``data`` are permuted along with them.
    shape : tuple of int
        ``(rows, cols)`` of the matrix.

    Attributes
    ----------
    data : jax.Array or Quantity
        Diagonal storage of shape ``(len(offsets), rows)``.
    shape : tuple of int
        ``(rows, cols)``.

    See Also
    --------
    DiaPattern : The static pattern of a DIA matrix.
    densedense_to_dia : Restricted ``A @ B.T`` onto the stored diagonals.

    Examples
    --------
    .. code-block:: python

        >>> import jax.numpy as jnp
        >>> from densedia import DIA
        >>> data = jnp.array([[1., 2., 3.], [4., 5., 0.]])
        >>> m = DIA((data, [0, 1]), shape=(3, 3))
        >>> m.todense()
        Array([[1., 4., 0.],
               [0., 2., 5.],
               [0., 0., 3.]], dtype=float32)
    """
    __module__ = 'densedia'

    data: Data
    shape: MatrixShape

    def __init__(self, args, *, shape: MatrixShape):
        assert len(args) == 2, 'Expected two arguments: data, offsets.'
        data, offsets = args
        if is_tracer(offsets):
            raise DiaConfigurationError('Diagonal offsets must be concrete; they cannot be traced.')
        offsets = np.asarray(offsets)
        pattern = DiaPattern(offsets, shape)
        data = u.math.asarray(data)
        if data.ndim != 2 or data.shape != (pattern.num_diags, pattern.rows):
            raise DiaConfigurationError(
                f'data must have shape {(pattern.num_diags, pattern.rows)} '
                f'for {pattern!r}, but got {data.shape}.'
            )
        order = np.argsort(offsets, kind='stable')
        if np.any(order != np.arange(order.size)):
            data = data[order]
        self.data = data
        self._pattern = pattern
        super().__init__(args, shape=pattern.shape)

    @property
    def pattern(self) -> DiaPattern:
        """The static sparsity pattern."""
        return self._pattern

    @property
    def offsets(self):
        return self._pattern.offsets

    @property
    def num_diags(self) -> int:
        return self._pattern.num_diags

    @property
    def dtype(self):
        return self.data.dtype

    @property
    def nse(self) -> int:
        """Number of stored matrix entries, padding excluded."""
        return int(sum(self._pattern.diag_lengths()))

    def valid_mask(self) -> np.ndarray:
        """Boolean mask, shaped like ``data``, of the slots holding matrix entries."""
        return self._pattern.valid_mask()

    def tree_flatten(self):
        return (self.data,), {'pattern': self._pattern}

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        obj = object.__new__(cls)
        obj.data, = children
        obj._pattern = aux_data['pattern']
        obj.shape = obj._pattern.shape
        return obj

    @classmethod
    def fromdense(cls, mat, offsets: Optional[Offsets] = None) -> 'DIA':
        """
        Create a DIA matrix holding the given diagonals of a dense matrix.

        Parameters
        ----------
        mat : array_like or Quantity
            Dense 2D matrix.
        offsets : sequence of int, optional
            Diagonals to store. By default every diagonal holding at least
            one non-zero entry is stored, which needs a concrete ``mat``.

        Returns
        -------
        DIA
            The matrix restricted to the stored diagonals.

        Examples
        --------
        .. code-block:: python

            >>> import jax.numpy as jnp
            >>> from densedia import DIA
            >>> DIA.fromdense(jnp.eye(3) + jnp.eye(3, k=-1)).offsets
            (-1, 0)
        """
        mat = u.math.asarray(mat)
        if mat.ndim != 2:
            raise DiaConfigurationError(f'Expected a 2D matrix, but got {mat.ndim}D.')
        mantissa, unit = u.split_mantissa_unit(mat)
        if offsets is None:
            if is_tracer(mantissa):
                raise DiaConfigurationError('Offsets must be given when converting a traced matrix.')
            rows, cols = np.nonzero(np.asarray(mantissa))
            offsets = np.unique(cols - rows)
        pattern = DiaPattern(np.asarray(offsets, dtype=np.int64), mantissa.shape)
        data = _gather_diagonals(mantissa, pattern)
        return cls((u.maybe_decimal(data * unit), pattern.offsets), shape=pattern.shape)

    def todense(self) -> Union[jax.Array, u.Quantity]:
        """Dense matrix with zeros outside the stored diagonals."""
        mantissa, unit = u.split_mantissa_unit(self.data)
        cols = self._pattern.column_indices()
        cols = np.where(self.valid_mask(), cols, self.shape[1])
        rows = np.broadcast_to(np.arange(self.shape[0]), cols.shape)
        dense = jnp.zeros(self.shape, dtype=mantissa.dtype)
        dense = dense.at[rows, cols].set(mantissa, mode='drop')
        return u.maybe_decimal(dense * unit)

    def with_data(self, data: Data) -> 'DIA':
        """
        A DIA matrix with the same pattern and new diagonal storage.

        ``data`` must have the shape and dtype of the current storage.
        """
        assert data.shape == self.data.shape, f'Expected data of shape {self.data.shape}, got {data.shape}.'
        assert data.dtype == self.data.dtype, f'Expected data of dtype {self.data.dtype}, got {data.dtype}.'
        obj = object.__new__(DIA)
        obj.data = data
        obj._pattern = self._pattern
        obj.shape = self.shape
        return obj

    def diagonal(self, offset: int = 0) -> Union[jax.Array, u.Quantity]:
        """
        The entries of diagonal ``offset``, padding excluded.

        Diagonals that are not stored are returned as zeros.
        """
        rows, cols = self.shape
        offset = int(offset)
        if not -rows < offset < cols:
            raise DiaConfigurationError(f'offset {offset} is out of range for a {rows}x{cols} matrix.')
        start = max(0, -offset)
        length = min(rows, cols - offset) - start
        if offset not in self.offsets:
            mantissa, unit = u.split_mantissa_unit(self.data)
            return u.maybe_decimal(jnp.zeros(length, dtype=mantissa.dtype) * unit)
        k = self.offsets.index(offset)
        return self.data[k, start:start + length]

    def transpose(self, axes=None) -> 'DIA':
        """
        The transposed matrix, stored out of place.

        Diagonal ``d`` of this matrix becomes diagonal ``-d`` of the result.
        """
        assert axes is None, 'transpose does not support the axes argument.'
        rows, cols = self.shape
        offsets = np.asarray(self.offsets[::-1], dtype=np.int64)
        # row j of the transpose holds C[j - d, j] = data[k, j - d] on diagonal -d
        src = np.arange(cols)[None, :] - offsets[:, None]
        valid = (src >= 0) & (src < rows)
        mantissa, unit = u.split_mantissa_unit(self.data)
        data = jnp.take_along_axis(mantissa[::-1], jnp.asarray(np.clip(src, 0, rows - 1)), axis=1)
        data = jnp.where(valid, data, jnp.zeros_like(data))
        return DIA((u.maybe_decimal(data * unit), -offsets), shape=(cols, rows))

    def apply(self, fn) -> 'DIA':
        """Apply ``fn`` to the diagonal storage, keeping the pattern."""
        return self.with_data(fn(self.data))

    def _scalar_op(self, other, op, reverse: bool = False):
        if np.ndim(other) != 0:
            raise NotImplementedError(f'{op.__name__} between DIA and an array is not supported.')
        data = op(other, self.data) if reverse else op(self.data, other)
        obj = object.__new__(DIA)
        obj.data = data
        obj._pattern = self._pattern
        obj.shape = self.shape
        return obj

    def __neg__(self):
        return self.apply(operator.neg)

    def __pos__(self):
        return self

    def __mul__(self, other: Data):
        return self._scalar_op(other, operator.mul)

    def __rmul__(self, other: Data):
        return self._scalar_op(other, operator.mul, reverse=True)

    def __truediv__(self, other: Data):
        return self._scalar_op(other, operator.truediv)

    def densedense(
        self,
        A: Data,
        B: Data,
        descriptor=None,
        config=None,
        *,
        backend: Optional[str] = None,
    ) -> 'DIA':
        """
        Restricted ``fact_ab * A @ B.T + fact_c * self`` on the stored diagonals.

        When ``descriptor`` is ``None`` one is built for this pattern with
        the platform default strategy and released after the call. Reuse
        a descriptor across calls to avoid rebuilding it.

        See Also
        --------
        densedia.densedense_to_dia : The underlying operation.
        densedia.build_block_descriptor : Build a reusable descriptor.
        """
        from .block_descriptor import build_block_descriptor
        from .densedense import densedense_to_dia

        if descriptor is None:
            with build_block_descriptor(self._pattern) as descriptor:
                return densedense_to_dia(self, descriptor, A, B, config, backend=backend)
        return densedense_to_dia(self, descriptor, A, B, config, backend=backend)


def _gather_diagonals(mat: jax.Array, pattern: DiaPattern) -> jax.Array:
    cols = pattern.column_indices()
    valid = pattern.valid_mask()
    rows = np.broadcast_to(np.arange(pattern.rows), cols.shape)
    values = jnp.asarray(mat)[rows, np.clip(cols, 0, pattern.cols - 1)]
    return jnp.where(valid, values, jnp.zeros_like(values))
