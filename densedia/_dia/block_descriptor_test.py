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


import jax
import jax.numpy as jnp
import numpy as np
import pytest
from jax.errors import JaxRuntimeError

from densedia import (
    DIA,
    DiaPattern,
    TiledBlockDescriptor,
    NullBlockDescriptor,
    build_block_descriptor,
    DiaConfigurationError,
    DescriptorAllocationError,
)
from densedia._dia.block_descriptor import block_record_width, block_sentinel


def brute_force_tiles(pattern: DiaPattern, tile_size: int):
    """Tiles containing at least one pattern position, in row-major scan order."""
    rows, cols = pattern.shape
    i, j = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
    on_pattern = np.isin(j - i, pattern.offsets)
    tiles = []
    for sx in range(0, rows, tile_size):
        for sy in range(0, cols, tile_size):
            if on_pattern[sx:sx + tile_size, sy:sy + tile_size].any():
                tiles.append((sx, sy))
    return tiles


class TestTiledBlockDescriptor:
    def test_main_diagonal(self):
        pattern = DiaPattern([0], shape=(40, 40))
        with build_block_descriptor(pattern, strategy='tiled') as bd:
            assert isinstance(bd, TiledBlockDescriptor)
            assert bd.strategy == 'tiled'
            assert len(bd) == 3
            assert bd.tiles() == [(0, 0), (16, 16), (32, 32)]
            for index in range(3):
                assert bd.local_offsets(index) == (0,)

    def test_record_layout(self):
        T = 16
        pattern = DiaPattern([-20, -3, 0, 5, 17], shape=(50, 45))
        with build_block_descriptor(pattern, strategy='tiled', tile_size=T) as bd:
            records = bd.to_numpy()
            assert records.dtype == np.int32
            assert records.shape == (len(bd), block_record_width(T))
            for record in records:
                startx, starty, first = record[:3]
                locals_ = record[3:]
                n = int(np.sum(locals_ != block_sentinel(T)))
                assert n >= 1
                # the live entries come first, the sentinel pads the rest
                assert np.all(locals_[n:] == block_sentinel(T))
                assert np.all(np.diff(locals_[:n]) > 0)
                assert np.all(np.abs(locals_[:n]) <= T - 1)
                for s in range(n):
                    assert pattern.offsets[first + s] - (starty - startx) == locals_[s]

    @pytest.mark.parametrize('tile_size', [4, 16])
    @pytest.mark.parametrize('shape', [(40, 40), (33, 70), (70, 21), (16, 16), (1, 5)])
    def test_selectivity(self, tile_size, shape):
        rng = np.random.RandomState(0)
        rows, cols = shape
        candidates = np.arange(-rows + 1, cols)
        offsets = rng.choice(candidates, size=min(5, candidates.size), replace=False)
        pattern = DiaPattern(offsets, shape=shape)
        with build_block_descriptor(pattern, strategy='tiled', tile_size=tile_size) as bd:
            assert bd.tiles() == brute_force_tiles(pattern, tile_size)

    def test_edge_tiles_are_clipped(self):
        # diagonal -5 of a 17x40 matrix ends at (16, 11); the clipped tile
        # (16, 16) holds row 16 only and is not crossed.
        pattern = DiaPattern([-5], shape=(17, 40))
        with build_block_descriptor(pattern, strategy='tiled') as bd:
            assert bd.tiles() == [(0, 0), (16, 0)]

    @pytest.mark.parametrize('offset, tile', [(19, (0, 16)), (-19, (16, 0))])
    def test_corner_diagonal(self, offset, tile):
        pattern = DiaPattern([offset], shape=(20, 20))
        with build_block_descriptor(pattern, strategy='tiled') as bd:
            assert bd.tiles() == [tile]

    def test_full_band_respects_bound(self):
        T = 16
        pattern = DiaPattern(np.arange(-39, 40), shape=(40, 40))
        with build_block_descriptor(pattern, strategy='tiled', tile_size=T) as bd:
            assert len(bd) == 9
            counts = [len(bd.local_offsets(i)) for i in range(len(bd))]
            assert max(counts) == 2 * T - 1

    def test_empty_pattern(self):
        with build_block_descriptor(DiaPattern([], shape=(8, 8)), strategy='tiled') as bd:
            assert len(bd) == 0
            assert bd.tiles() == []

    def test_deterministic(self):
        pattern = DiaPattern([-7, 0, 3, 30], shape=(64, 48))
        with build_block_descriptor(pattern, strategy='tiled') as a, \
                build_block_descriptor(pattern, strategy='tiled') as b:
            np.testing.assert_array_equal(a.to_numpy(), b.to_numpy())

    def test_accepts_dia_matrix(self):
        mat = DIA.fromdense(jnp.eye(20), offsets=[0, 1])
        with build_block_descriptor(mat, strategy='tiled') as bd:
            assert bd.matches(mat.pattern)
            assert not bd.matches(DiaPattern([0], shape=(20, 20)))

    def test_release(self):
        bd = build_block_descriptor(DiaPattern([0], shape=(20, 20)), strategy='tiled')
        assert not bd.released
        bd.release()
        assert bd.released
        with pytest.raises(DiaConfigurationError):
            _ = bd.blocks
        bd.release()

    def test_context_manager_releases_on_error(self):
        with pytest.raises(RuntimeError):
            with build_block_descriptor(DiaPattern([0], shape=(20, 20)), strategy='tiled') as bd:
                raise RuntimeError('boom')
        assert bd.released

    def test_is_pytree(self):
        with build_block_descriptor(DiaPattern([0, 1], shape=(20, 20)), strategy='tiled') as bd:
            leaves, tree = jax.tree_util.tree_flatten(bd)
            assert len(leaves) == 1
            rebuilt = jax.tree_util.tree_unflatten(tree, leaves)
            assert rebuilt.pattern == bd.pattern
            assert len(rebuilt) == len(bd)


class TestNullBlockDescriptor:
    def test_no_index(self):
        pattern = DiaPattern([0, 1], shape=(40, 40))
        with build_block_descriptor(pattern, strategy='null') as bd:
            assert isinstance(bd, NullBlockDescriptor)
            assert bd.strategy == 'null'
            assert len(bd) == 0
            assert bd.blocks is None
            assert bd.tiles() == []
            assert bd.matches(pattern)
        assert bd.released

    def test_default_strategy_follows_platform(self):
        bd = build_block_descriptor(DiaPattern([0], shape=(4, 4)))
        expected = NullBlockDescriptor if jax.default_backend() == 'cpu' else TiledBlockDescriptor
        assert isinstance(bd, expected)
        bd.release()


class TestBuildErrors:
    def test_unknown_strategy(self):
        with pytest.raises(DiaConfigurationError):
            build_block_descriptor(DiaPattern([0], shape=(4, 4)), strategy='gpu')

    @pytest.mark.parametrize('tile_size', [0, -16, 2.5])
    def test_bad_tile_size(self, tile_size):
        with pytest.raises(DiaConfigurationError):
            build_block_descriptor(DiaPattern([0], shape=(4, 4)), strategy='tiled', tile_size=tile_size)

    def test_not_a_pattern(self):
        with pytest.raises(DiaConfigurationError):
            build_block_descriptor([0, 1], strategy='tiled')

    def test_host_allocation_failure(self, monkeypatch):
        def fail(*args, **kwargs):
            raise MemoryError()

        monkeypatch.setattr(np, 'full', fail)
        with pytest.raises(DescriptorAllocationError):
            build_block_descriptor(DiaPattern([0], shape=(40, 40)), strategy='tiled')

    def test_device_allocation_failure(self, monkeypatch):
        def fail(*args, **kwargs):
            raise JaxRuntimeError('RESOURCE_EXHAUSTED: Out of memory while trying to allocate.')

        monkeypatch.setattr(jax, 'device_put', fail)
        with pytest.raises(DescriptorAllocationError):
            build_block_descriptor(DiaPattern([0], shape=(40, 40)), strategy='tiled')

    def test_other_device_errors_propagate(self, monkeypatch):
        def fail(*args, **kwargs):
            raise JaxRuntimeError('INTERNAL: something else')

        monkeypatch.setattr(jax, 'device_put', fail)
        with pytest.raises(JaxRuntimeError):
            build_block_descriptor(DiaPattern([0], shape=(40, 40)), strategy='tiled')
