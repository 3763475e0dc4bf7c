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

"""Block descriptors: spatial indexes of the tiles crossed by a diagonal pattern.

A block descriptor partitions the output index space of a DIA matrix into
square ``T x T`` tiles and records only the tiles crossed by at least one
stored diagonal. The tiled kernels iterate over these records, so tiles
outside the diagonal band are never visited.

Record layout (``int32``, one row per stored tile, ``3 + 2T`` columns)::

    [startx, starty, first_diag, local_0, ..., local_{n-1}, SENTINEL, ...]

``(startx, starty)`` is the upper-left ``(row, col)`` of the tile,
``first_diag`` the index (into the sorted offsets) of the first diagonal
crossing the tile, and ``local_s = offsets[first_diag + s] - (starty - startx)``
the ascending local offsets, each in ``[-(T - 1), T - 1]``. The list is
padded with ``SENTINEL = 2T``.
"""

from typing import List, Optional, Tuple, Union

import jax
import numpy as np
from jax.errors import JaxRuntimeError

from densedia._config import TILE_SIZE
from densedia._error import DescriptorAllocationError, DiaConfigurationError
from .pattern import DiaPattern

__all__ = [
    'BlockDescriptor',
    'TiledBlockDescriptor',
    'NullBlockDescriptor',
    'build_block_descriptor',
    'block_record_width',
    'block_sentinel',
]

_HEADER = 3


def block_record_width(tile_size: int) -> int:
    """Number of ``int32`` entries per stored tile."""
    return _HEADER + 2 * tile_size


def block_sentinel(tile_size: int) -> int:
    """Value padding the local-offset list of a record."""
    return 2 * tile_size


class BlockDescriptor:
    """Common interface of the block descriptor strategies.

    A descriptor is built once from a :class:`DiaPattern` and is immutable
    afterwards. It can be reused by every multiply-accumulate call whose
    target matrix has an equal pattern. Descriptors are context managers
    that release their storage on exit.
    """
    __module__ = 'densedia'

    strategy: str = ''

    def __init__(self, pattern: DiaPattern, tile_size: int):
        self._pattern = pattern
        self._tile_size = int(tile_size)
        self._released = False

    @property
    def pattern(self) -> DiaPattern:
        return self._pattern

    @property
    def tile_size(self) -> int:
        return self._tile_size

    @property
    def released(self) -> bool:
        return self._released

    @property
    def blocks(self) -> Optional[jax.Array]:
        """Opaque handle to the block records consumed by the kernels."""
        raise NotImplementedError

    def __len__(self) -> int:
        raise NotImplementedError

    def matches(self, pattern: DiaPattern) -> bool:
        """Whether this descriptor indexes ``pattern``."""
        return self._pattern == pattern

    def check_usable(self, pattern: DiaPattern):
        """Raise :class:`DiaConfigurationError` unless the descriptor can serve ``pattern``."""
        if self._released:
            raise DiaConfigurationError(f'The {self.strategy} block descriptor has already been released.')
        if not self.matches(pattern):
            raise DiaConfigurationError(
                f'The block descriptor was built for {self._pattern!r}, '
                f'but the target matrix has {pattern!r}. Rebuild the descriptor.'
            )

    def release(self):
        """Free the descriptor storage. Releasing twice is a no-op."""
        self._released = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@jax.tree_util.register_pytree_node_class
class NullBlockDescriptor(BlockDescriptor):
    """Descriptor of the sequential strategy.

    It stores no index: the sequential kernels iterate over the pattern
    offsets directly. Only the pattern is kept, to detect stale reuse.

    Examples
    --------
    .. code-block:: python

        >>> from densedia import DiaPattern, build_block_descriptor
        >>> bd = build_block_descriptor(DiaPattern([0], (4, 4)), strategy='null')
        >>> bd.blocks is None
        True
    """
    __module__ = 'densedia'
    strategy = 'null'

    def __init__(self, pattern: DiaPattern, tile_size: int = TILE_SIZE):
        super().__init__(pattern, tile_size)

    @property
    def blocks(self) -> None:
        return None

    def __len__(self) -> int:
        return 0

    def tiles(self) -> List[Tuple[int, int]]:
        return []

    def tree_flatten(self):
        return (), (self._pattern, self._tile_size)

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        pattern, tile_size = aux_data
        return cls(pattern, tile_size)

    def __repr__(self):
        return f'NullBlockDescriptor({self._pattern!r})'


@jax.tree_util.register_pytree_node_class
class TiledBlockDescriptor(BlockDescriptor):
    """Descriptor of the parallel strategy: the compact tile index.

    Use :func:`build_block_descriptor` to construct one.

    Parameters
    ----------
    pattern : DiaPattern
        The indexed pattern.
    blocks : jax.Array
        ``int32`` record array of shape ``(n_blocks, 3 + 2 * tile_size)``.
    tile_size : int
        Side of the square tiles.
    """
    __module__ = 'densedia'
    strategy = 'tiled'

    def __init__(self, pattern: DiaPattern, blocks: jax.Array, tile_size: int = TILE_SIZE):
        super().__init__(pattern, tile_size)
        self._blocks = blocks
        self._n_blocks = int(blocks.shape[0])

    @property
    def blocks(self) -> jax.Array:
        if self._released:
            raise DiaConfigurationError('The tiled block descriptor has already been released.')
        return self._blocks

    def __len__(self) -> int:
        return self._n_blocks

    def to_numpy(self) -> np.ndarray:
        """Host copy of the record array."""
        return np.asarray(self.blocks)

    def tiles(self) -> List[Tuple[int, int]]:
        """Upper-left ``(row, col)`` of every stored tile, in scan order."""
        records = self.to_numpy()
        return [(int(x), int(y)) for x, y in records[:, :2]]

    def local_offsets(self, index: int) -> Tuple[int, ...]:
        """The local diagonal offsets recorded for the ``index``-th stored tile."""
        record = self.to_numpy()[index, _HEADER:]
        return tuple(int(d) for d in record if d != block_sentinel(self._tile_size))

    def release(self):
        if not self._released:
            blocks, self._blocks = self._blocks, None
            if isinstance(blocks, jax.Array) and not blocks.is_deleted():
                blocks.delete()
        super().release()

    def tree_flatten(self):
        return (self.blocks,), (self._pattern, self._tile_size)

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        pattern, tile_size = aux_data
        obj = object.__new__(cls)
        BlockDescriptor.__init__(obj, pattern, tile_size)
        obj._blocks, = children
        obj._n_blocks = int(obj._blocks.shape[0])
        return obj

    def __repr__(self):
        return f'TiledBlockDescriptor({self._pattern!r}, tile_size={self._tile_size}, n_blocks={self._n_blocks})'


def _tile_crossings(pattern: DiaPattern, tile_size: int):
    """Per-tile crossing ranges, evaluated for all tiles at once.

    Returns the tile corners in row-major scan order and, for each tile,
    the half-open range ``[lo, hi)`` of indices into the sorted offsets of
    the diagonals crossing it.
    """
    T = tile_size
    rows, cols = pattern.shape
    n_bx, n_by = pattern.tile_grid(T)
    offsets = pattern.offsets_array(np.int64)

    bx, by = np.meshgrid(np.arange(n_bx, dtype=np.int64), np.arange(n_by, dtype=np.int64), indexing='ij')
    startx = bx.ravel() * T
    starty = by.ravel() * T
    # tiles on the bottom and right edges are clipped to the matrix
    height = np.minimum(T, rows - startx)
    width = np.minimum(T, cols - starty)
    low = starty - (startx + height - 1)
    high = (starty + width - 1) - startx

    lo = np.searchsorted(offsets, low, side='left')
    hi = np.searchsorted(offsets, high, side='right')
    return startx, starty, lo, hi


def _pack_records(
    pattern: DiaPattern,
    tile_size: int,
    startx: np.ndarray,
    starty: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
) -> np.ndarray:
    T = tile_size
    count = hi - lo
    max_count = int(count.max()) if count.size else 0
    assert max_count <= 2 * T - 1, (
        f'{max_count} diagonals cross one {T}x{T} tile; at most {2 * T - 1} are possible.'
    )

    # stream compaction: non-empty tiles in scan order
    keep = np.flatnonzero(count > 0)
    n_blocks = keep.size
    width = block_record_width(T)
    try:
        records = np.full((n_blocks, width), block_sentinel(T), dtype=np.int32)
    except MemoryError as e:
        raise DescriptorAllocationError(
            f'Cannot allocate {n_blocks} block records of {width} int32 entries.'
        ) from e
    if n_blocks == 0:
        return records

    offsets = pattern.offsets_array(np.int64)
    lo, count = lo[keep], count[keep]
    base = starty[keep] - startx[keep]
    records[:, 0] = startx[keep]
    records[:, 1] = starty[keep]
    records[:, 2] = lo
    slot = np.arange(2 * T, dtype=np.int64)
    index = np.minimum(lo[:, None] + slot[None, :], offsets.size - 1)
    local = offsets[index] - base[:, None]
    records[:, _HEADER:] = np.where(slot[None, :] < count[:, None], local, block_sentinel(T))
    return records


def _resolve_strategy(strategy: Optional[str], device) -> str:
    if strategy is None:
        platform = device.platform if device is not None else jax.default_backend()
        return 'null' if platform == 'cpu' else 'tiled'
    if strategy not in ('tiled', 'null'):
        raise DiaConfigurationError(f"strategy must be 'tiled' or 'null', but got {strategy!r}.")
    return strategy


def build_block_descriptor(
    pattern: Union[DiaPattern, 'DIA'],
    *,
    strategy: Optional[str] = None,
    tile_size: int = TILE_SIZE,
    device: Optional[jax.Device] = None,
) -> BlockDescriptor:
    """Build the block descriptor of a diagonal pattern.

    Parameters
    ----------
    pattern : DiaPattern or DIA
        The pattern to index, or a DIA matrix whose pattern is used.
    strategy : {'tiled', 'null'} or None, optional
        ``'tiled'`` builds the compact tile index consumed by the parallel
        kernels; ``'null'`` builds the empty descriptor of the sequential
        kernels. ``None`` picks ``'null'`` on CPU and ``'tiled'`` on
        accelerators.
    tile_size : int, optional
        Side ``T`` of the square tiles. Defaults to ``16``.
    device : jax.Device, optional
        Device receiving the record array. Defaults to the default device.

    Returns
    -------
    BlockDescriptor
        A :class:`TiledBlockDescriptor` or a :class:`NullBlockDescriptor`.

    Raises
    ------
    DiaConfigurationError
        If the strategy or the tile size is invalid, or the argument is not
        a pattern.
    DescriptorAllocationError
        If the record array cannot be allocated on the host or the device.

    Notes
    -----
    A diagonal ``d`` crosses the tile with upper-left corner ``(sx, sy)``,
    clipped to ``h x w`` at the matrix border, iff
    ``sy - (sx + h - 1) <= d <= (sy + w - 1) - sx``. For interior tiles
    this is ``|d - (sy - sx)| <= T - 1``. All tiles are tested at once with
    a binary search of these bounds in the sorted offsets, which costs
    ``O(n_tiles * log |S|)``. The non-empty tiles are then compacted into
    the record array in row-major scan order.

    Examples
    --------
    .. code-block:: python

        >>> from densedia import DiaPattern, build_block_descriptor
        >>> pattern = DiaPattern([0], shape=(40, 40))
        >>> with build_block_descriptor(pattern, strategy='tiled') as bd:
        ...     print(len(bd), bd.tiles())
        3 [(0, 0), (16, 16), (32, 32)]
    """
    if not isinstance(pattern, DiaPattern):
        pattern = getattr(pattern, 'pattern', None)
        if not isinstance(pattern, DiaPattern):
            raise DiaConfigurationError('build_block_descriptor expects a DiaPattern or a DIA matrix.')
    if not isinstance(tile_size, (int, np.integer)) or tile_size <= 0:
        raise DiaConfigurationError(f'tile_size must be a positive integer, but got {tile_size!r}.')
    tile_size = int(tile_size)

    if _resolve_strategy(strategy, device) == 'null':
        return NullBlockDescriptor(pattern, tile_size)

    records = _pack_records(pattern, tile_size, *_tile_crossings(pattern, tile_size))
    try:
        blocks = jax.device_put(records, device)
    except JaxRuntimeError as e:
        if 'RESOURCE_EXHAUSTED' in str(e):
            raise DescriptorAllocationError(
                f'Cannot allocate {records.nbytes} bytes of block records on the device.'
            ) from e
        raise
    return TiledBlockDescriptor(pattern, blocks, tile_size)
