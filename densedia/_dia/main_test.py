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


import brainstate
import brainunit as u
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from densedia import DIA, DiaPattern, DiaConfigurationError


def banded(n, m, offsets):
    mat = np.zeros((n, m), dtype=np.float32)
    for d in offsets:
        for i in range(max(0, -d), min(n, m - d)):
            mat[i, i + d] = 1. + i + 10 * d
    return mat


class TestDIA:
    def test_fromdense_infers_offsets(self):
        mat = banded(6, 8, [-2, 0, 5])
        dia = DIA.fromdense(mat)
        assert dia.offsets == (-2, 0, 5)
        assert dia.shape == (6, 8)
        assert dia.data.shape == (3, 6)
        np.testing.assert_array_equal(dia.todense(), mat)

    def test_fromdense_given_offsets_drops_other_diagonals(self):
        mat = banded(5, 5, [-1, 0, 1])
        dia = DIA.fromdense(mat, offsets=[0])
        np.testing.assert_array_equal(dia.todense(), np.diag(np.diag(mat)))

    def test_storage_convention(self):
        data = jnp.array([[1., 2., 3.], [4., 5., 6.]])
        dia = DIA((data, [-1, 1]), shape=(3, 3))
        expected = np.array([
            [0., 4., 0.],
            [2., 0., 5.],
            [0., 3., 0.],
        ])
        np.testing.assert_array_equal(dia.todense(), expected)
        np.testing.assert_array_equal(dia.valid_mask(), [[False, True, True], [True, True, False]])
        assert dia.nse == 4

    def test_unsorted_offsets_reorder_data(self):
        data = jnp.array([[4., 5., 6.], [1., 2., 3.]])
        dia = DIA((data, [1, -1]), shape=(3, 3))
        assert dia.offsets == (-1, 1)
        np.testing.assert_array_equal(dia.data, [[1., 2., 3.], [4., 5., 6.]])

    def test_bad_data_shape(self):
        with pytest.raises(DiaConfigurationError):
            DIA((jnp.zeros((2, 4)), [0]), shape=(4, 4))

    def test_diagonal(self):
        mat = banded(4, 6, [-1, 2])
        dia = DIA.fromdense(mat)
        np.testing.assert_array_equal(dia.diagonal(2), np.diag(mat, 2))
        np.testing.assert_array_equal(dia.diagonal(-1), np.diag(mat, -1))
        np.testing.assert_array_equal(dia.diagonal(0), np.zeros(4))
        with pytest.raises(DiaConfigurationError):
            dia.diagonal(6)

    @pytest.mark.parametrize('shape, offsets', [((5, 5), [-2, 0, 1]), ((4, 7), [-3, 2, 6]), ((7, 3), [-6, -1, 2])])
    def test_transpose(self, shape, offsets):
        mat = banded(*shape, offsets)
        dia = DIA.fromdense(mat, offsets=offsets)
        t = dia.transpose()
        assert t.shape == shape[::-1]
        assert t.offsets == tuple(sorted(-d for d in offsets))
        np.testing.assert_array_equal(t.todense(), mat.T)
        np.testing.assert_array_equal(dia.T.todense(), mat.T)

    def test_transpose_moves_upper_diagonals_below(self):
        mat = np.array([[1., 5., 0.], [0., 2., 6.], [0., 0., 3.]], dtype=np.float32)
        t = DIA.fromdense(mat).transpose()
        assert t.offsets == (-1, 0)
        # row j of diagonal -1 holds T[j, j - 1]; row 0 is padding
        np.testing.assert_array_equal(t.data[0, 1:], [5., 6.])
        np.testing.assert_array_equal(t.diagonal(-1), [5., 6.])
        np.testing.assert_array_equal(t.todense(), mat.T)
        np.testing.assert_array_equal(t.transpose().todense(), mat)

    def test_units(self):
        mat = banded(4, 4, [0, 1]) * u.mV
        dia = DIA.fromdense(mat)
        assert u.get_unit(dia.data) == u.mV
        assert u.math.allclose(dia.todense(), mat)
        assert u.math.allclose(dia.transpose().todense(), mat.T)

    def test_scalar_arithmetic(self):
        dia = DIA.fromdense(banded(4, 4, [0, 1]))
        np.testing.assert_allclose((2. * dia).todense(), 2. * dia.todense())
        np.testing.assert_allclose((dia * 3.).todense(), 3. * dia.todense())
        np.testing.assert_allclose((dia / 2.).todense(), dia.todense() / 2.)
        np.testing.assert_allclose((-dia).todense(), -dia.todense())

    def test_with_data(self):
        dia = DIA.fromdense(banded(4, 4, [0]))
        new = dia.with_data(jnp.ones_like(dia.data))
        assert new.pattern == dia.pattern
        np.testing.assert_array_equal(new.todense(), np.eye(4))

    def test_pytree(self):
        dia = DIA.fromdense(brainstate.random.randn(6, 6), offsets=[-1, 0, 3])
        leaves, tree = jax.tree_util.tree_flatten(dia)
        assert len(leaves) == 1
        rebuilt = jax.tree_util.tree_unflatten(tree, leaves)
        assert rebuilt.pattern == dia.pattern
        doubled = jax.jit(lambda m: m * 2.)(dia)
        np.testing.assert_allclose(doubled.data, dia.data * 2.)

    def test_pattern(self):
        dia = DIA.fromdense(banded(5, 6, [0, 2]))
        assert dia.pattern == DiaPattern([2, 0], shape=(5, 6))
        assert dia.num_diags == 2
