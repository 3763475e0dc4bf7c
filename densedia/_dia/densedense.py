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

"""Dense-dense matrix multiplication restricted to a diagonal pattern.

For a DIA matrix ``C`` with offset set ``S`` and dense ``A`` (``M x K``) and
``B`` (``N x K``) this module computes, for every stored position
``(i, j)`` with ``j - i`` in ``S``::

    C[i, j] = fact_ab * dot(A[i, :], B[j, :]) + fact_c * C[i, j]

Positions that are not on a stored diagonal are never computed.
"""

from typing import Optional

import brainunit as u
import jax
import jax.numpy as jnp
import numpy as np
from jax.interpreters import ad

from densedia._config import BlendConfig, numba_environ
from densedia._error import DiaConfigurationError
from densedia._misc import cdiv, is_tracer, namescope, next_power_of_two
from densedia._op import XLACustomKernel, numba_kernel, jaxinfo_to_warpinfo, jaxtype_to_warptype
from .block_descriptor import BlockDescriptor, NullBlockDescriptor, TiledBlockDescriptor, block_sentinel
from .main import DIA
from .pattern import DiaPattern

__all__ = [
    'densedense_to_dia',
    'dia_sddmm_p',
    'dia_sddmm_p_call',
    'dia_sddmm_tiled_p',
    'dia_sddmm_tiled_p_call',
]


def _resolve_blend(config: Optional[BlendConfig], fact_ab, fact_c):
    if config is None:
        config = BlendConfig()
    elif not isinstance(config, BlendConfig):
        raise DiaConfigurationError(f'config must be a BlendConfig, but got {type(config)}.')
    if fact_ab is None:
        fact_ab = config.fact_ab
    if fact_c is None:
        fact_c = config.fact_c
    for name, value in (('fact_ab', fact_ab), ('fact_c', fact_c)):
        if is_tracer(value) or isinstance(value, u.Quantity):
            raise DiaConfigurationError(f'{name} must be a concrete, unitless scalar, but got {value!r}.')
        if np.ndim(value) != 0:
            raise DiaConfigurationError(f'{name} must be a scalar, but got shape {np.shape(value)}.')
    return float(fact_ab), float(fact_c)


def _check_operands(C, descriptor, A, B):
    if not isinstance(C, DIA):
        raise DiaConfigurationError(f'The target must be a DIA matrix, but got {type(C)}.')
    if not isinstance(descriptor, BlockDescriptor):
        raise DiaConfigurationError(f'Expected a block descriptor, but got {type(descriptor)}.')
    if A.ndim != 2 or B.ndim != 2:
        raise DiaConfigurationError(f'A and B must be 2D, but got {A.ndim}D and {B.ndim}D operands.')
    if A.shape[1] != B.shape[1]:
        raise DiaConfigurationError(
            f'A has {A.shape[1]} columns but B has {B.shape[1]}; the inner dimensions must agree.'
        )
    if C.shape != (A.shape[0], B.shape[0]):
        raise DiaConfigurationError(
            f'The target has shape {C.shape}, but A @ B.T has shape {(A.shape[0], B.shape[0])}.'
        )
    if not (A.dtype == B.dtype == C.dtype):
        raise DiaConfigurationError(
            f'A, B and the target must share a dtype, but got {A.dtype}, {B.dtype} and {C.dtype}.'
        )
    descriptor.check_usable(C.pattern)


def densedense_to_dia(
    C: DIA,
    descriptor: BlockDescriptor,
    A,
    B,
    config: Optional[BlendConfig] = None,
    *,
    fact_ab: Optional[float] = None,
    fact_c: Optional[float] = None,
    backend: Optional[str] = None,
) -> DIA:
    """Multiply ``A @ B.T`` onto the stored diagonals of ``C``.

    Computes, for every stored position ``(i, j)`` of ``C``::

        C[i, j] = fact_ab * dot(A[i, :], B[j, :]) + fact_c * C[i, j]

    Every other position, and every padding slot of ``C.data``, keeps its
    value. The dense product is never formed.

    Parameters
    ----------
    C : DIA
        The target matrix of shape ``(M, N)``.
    descriptor : BlockDescriptor
        A descriptor built from a pattern equal to ``C.pattern``. A
        :class:`TiledBlockDescriptor` selects the tiled kernels that visit
        only the stored tiles; a :class:`NullBlockDescriptor` selects the
        kernels iterating diagonal by diagonal.
    A : jax.Array or Quantity
        Dense matrix of shape ``(M, K)``.
    B : jax.Array or Quantity
        Dense matrix of shape ``(N, K)``.
    config : BlendConfig, optional
        Blend scalars. Defaults to ``BlendConfig(fact_ab=1.0, fact_c=0.0)``,
        which overwrites the stored diagonals with the product.
    fact_ab, fact_c : float, optional
        Override the corresponding fields of ``config``. They are static
        Python scalars.
    backend : str, optional
        Kernel backend, e.g. ``'numba'``, ``'jax_raw'``, ``'warp'`` or
        ``'pallas'``. ``None`` picks the platform default.

    Returns
    -------
    DIA
        A matrix with the pattern of ``C`` holding the updated diagonals.
        Its unit is ``unit(A) * unit(B)``.

    Raises
    ------
    DiaConfigurationError
        If the shapes, dtypes or units of the operands disagree, if the
        descriptor was built for another pattern, or if it has been
        released. These checks run before any kernel is launched.
    KernelFallbackExhaustedError
        If ``backend`` is not registered for the current platform.

    Notes
    -----
    JAX arrays are immutable, so ``C`` is not modified in place: the result
    is a new matrix. The Warp and Pallas kernels write into a copy of the
    diagonal storage, so positions they do not visit carry over unchanged.

    With ``fact_ab=0`` and ``fact_c=1`` the returned diagonals are
    bit-identical to those of ``C``.

    Examples
    --------
    .. code-block:: python

        >>> import jax.numpy as jnp
        >>> from densedia import DIA, build_block_descriptor, densedense_to_dia
        >>> C = DIA.fromdense(jnp.zeros((4, 4)), offsets=[0])
        >>> A = B = jnp.ones((4, 4))
        >>> with build_block_descriptor(C, strategy='tiled') as bd:
        ...     C = densedense_to_dia(C, bd, A, B)
        >>> C.todense()
        Array([[4., 0., 0., 0.],
               [0., 4., 0., 0.],
               [0., 0., 4., 0.],
               [0., 0., 0., 4.]], dtype=float32)
    """
    fact_ab, fact_c = _resolve_blend(config, fact_ab, fact_c)
    with jax.ensure_compile_time_eval():
        A = u.math.asarray(A)
        B = u.math.asarray(B)
    _check_operands(C, descriptor, A, B)

    A, a_unit = u.split_mantissa_unit(A)
    B, b_unit = u.split_mantissa_unit(B)
    out_unit = a_unit * b_unit
    data = C.data
    if not u.have_same_dim(u.get_unit(data), out_unit):
        raise DiaConfigurationError(
            f'The target is in {u.get_unit(data)}, but A @ B.T is in {out_unit}.'
        )
    data = u.Quantity(data).to(out_unit).mantissa

    if isinstance(descriptor, NullBlockDescriptor):
        r = _dia_sddmm(
            data, A, B,
            offsets=C.offsets, shape=C.shape, fact_ab=fact_ab, fact_c=fact_c, backend=backend,
        )
    elif isinstance(descriptor, TiledBlockDescriptor):
        r = _dia_sddmm_tiled(
            data, A, B, descriptor.blocks,
            offsets=C.offsets, shape=C.shape, fact_ab=fact_ab, fact_c=fact_c,
            tile_size=descriptor.tile_size, backend=backend,
        )
    else:
        raise DiaConfigurationError(f'Unknown block descriptor strategy {descriptor.strategy!r}.')
    return C.with_data(u.maybe_decimal(r * out_unit))


@namescope(static_argnames=('offsets', 'shape', 'fact_ab', 'fact_c'))
def _dia_sddmm(data, A, B, *, offsets, shape, fact_ab, fact_c, backend=None):
    return dia_sddmm_p_call(
        data, A, B, offsets=offsets, shape=shape, fact_ab=fact_ab, fact_c=fact_c, backend=backend,
    )[0]


@namescope(static_argnames=('offsets', 'shape', 'fact_ab', 'fact_c', 'tile_size'))
def _dia_sddmm_tiled(data, A, B, blocks, *, offsets, shape, fact_ab, fact_c, tile_size, backend=None):
    return dia_sddmm_tiled_p_call(
        data, A, B, blocks, offsets=offsets, shape=shape, fact_ab=fact_ab, fact_c=fact_c,
        tile_size=tile_size, backend=backend,
    )[0]


def _blend(prod, old, fact_ab: float, fact_c: float):
    # ``fact_ab == 0`` never reads the product; ``fact_c == 0`` never reads the old value.
    if fact_ab == 0.:
        return old if fact_c == 1. else fact_c * old
    if fact_c == 0.:
        return fact_ab * prod
    return fact_ab * prod + fact_c * old


def _diag_gather_indices(offsets, shape):
    pattern = DiaPattern(offsets, shape)
    cols = pattern.column_indices()
    return np.clip(cols, 0, shape[1] - 1), pattern.valid_mask()


# ---------------------------------------------------------------------------
# Diagonal-by-diagonal kernels, used with a NullBlockDescriptor.
# ---------------------------------------------------------------------------


def _dia_sddmm_numba_kernel(
    offsets,
    fact_ab: float,
    fact_c: float,
    **kwargs
):
    import numba

    @numba.njit(**numba_environ.setting, parallel=numba_environ.parallel)
    def sddmm(data, A, B, offs, out):
        out[:] = data[:]
        n_row = A.shape[0]
        n_col = B.shape[0]
        n_inner = A.shape[1]
        for k in numba.prange(offs.size):
            d = offs[k]
            for i in range(max(0, -d), min(n_row, n_col - d)):
                j = i + d
                val = 0.
                if fact_c != 0.:
                    val = fact_c * data[k, i]
                if fact_ab != 0.:
                    acc = 0.
                    for p in range(n_inner):
                        acc += A[i, p] * B[j, p]
                    val = fact_ab * acc + val
                out[k, i] = val

    offs = np.asarray(offsets, dtype=np.int64)

    def kernel(data, A, B):
        return numba_kernel(sddmm, outs=kwargs['outs'])(data, A, B, offs)

    return kernel


def _dia_sddmm_jax_kernel(
    offsets,
    shape,
    fact_ab: float,
    fact_c: float,
    **kwargs
):
    gather_cols, valid = _diag_gather_indices(offsets, shape)

    def kernel(data, A, B):
        if len(offsets) == 0:
            return (data,)
        if fact_ab == 0.:
            prod = None
        else:
            prod = jax.lax.map(lambda cols: jnp.einsum('ik,ik->i', A, B[cols]), jnp.asarray(gather_cols))
        new = _blend(prod, data, fact_ab, fact_c)
        return (jnp.where(valid, new, data).astype(data.dtype),)

    return kernel


# ---------------------------------------------------------------------------
# Tiled kernels, used with a TiledBlockDescriptor.
#
# Each block record owns one T x T tile of C. For the local diagonal slot
# ``s`` and local row ``r``, the output position is
# ``(startx + r, starty + r + local_s)``, stored at
# ``data[first_diag + s, startx + r]``. Tiles are disjoint, so no two
# records write the same position.
# ---------------------------------------------------------------------------


def _dia_sddmm_tiled_jax_kernel(
    offsets,
    shape,
    fact_ab: float,
    fact_c: float,
    tile_size: int,
    **kwargs
):
    n_diag = len(offsets)
    n_row, n_col = shape
    T = tile_size
    sentinel = block_sentinel(T)

    def kernel(data, A, B, blocks):
        n_block = blocks.shape[0]
        if n_block == 0:
            return (data,)
        startx, starty, first = blocks[:, 0], blocks[:, 1], blocks[:, 2]
        local = blocks[:, 3:, None]  # [n_block, 2T, 1]
        r = jnp.arange(T, dtype=blocks.dtype)
        slot = jnp.arange(2 * T, dtype=blocks.dtype)[None, :, None]

        rows = startx[:, None] + r  # [n_block, T]
        a_tile = A[jnp.minimum(rows, n_row - 1)]
        b_tile = B[jnp.minimum(starty[:, None] + r, n_col - 1)]
        tile = jnp.einsum('brk,bck->brc', a_tile, b_tile)  # [n_block, T, T]

        c = r + local  # [n_block, 2T, T]
        i = jnp.broadcast_to(rows[:, None, :], c.shape)
        j = starty[:, None, None] + c
        mask = (local != sentinel) & (c >= 0) & (c < T) & (i < n_row) & (j < n_col)
        k = jnp.where(mask, first[:, None, None] + slot, n_diag)

        prod = tile[jnp.arange(n_block)[:, None, None], r, jnp.clip(c, 0, T - 1)]
        old = data[jnp.minimum(k, n_diag - 1), jnp.minimum(i, n_row - 1)]
        new = _blend(prod, old, fact_ab, fact_c).astype(data.dtype)
        return (data.at[k, i].set(new, mode='drop'),)

    return kernel


def _dia_sddmm_tiled_warp_kernel(
    data_info: jax.ShapeDtypeStruct,
    a_info: jax.ShapeDtypeStruct,
    b_info: jax.ShapeDtypeStruct,
    blocks_info: jax.ShapeDtypeStruct,
    shape,
    fact_ab: float,
    fact_c: float,
    tile_size: int,
    **kwargs
):
    import warp  # pylint: disable=import-outside-toplevel
    from warp.jax_experimental import jax_kernel

    n_row, n_col = shape
    T = tile_size
    sentinel = block_sentinel(T)
    n_block = blocks_info.shape[0]

    data_warp_info = jaxinfo_to_warpinfo(data_info)
    a_warp_info = jaxinfo_to_warpinfo(a_info)
    b_warp_info = jaxinfo_to_warpinfo(b_info)
    blocks_warp_info = jaxinfo_to_warpinfo(blocks_info)
    out_warp_info = jaxinfo_to_warpinfo(kwargs['outs'][0])
    dtype = jaxtype_to_warptype(data_info.dtype)

    @warp.kernel
    def sddmm_tiled_warp(
        data: data_warp_info,
        A: a_warp_info,
        B: b_warp_info,
        blocks: blocks_warp_info,
        out: out_warp_info,
    ):
        i_block, i_slot, i_local_row = warp.tid()
        local = blocks[i_block, 3 + i_slot]
        if local == sentinel:
            return
        i_local_col = i_local_row + local
        if i_local_col < 0 or i_local_col >= T:
            return
        i = blocks[i_block, 0] + i_local_row
        j = blocks[i_block, 1] + i_local_col
        if i >= n_row or j >= n_col:
            return
        k = blocks[i_block, 2] + i_slot
        val = dtype(0.0)
        if fact_c != 0.0:
            val = dtype(fact_c) * data[k, i]
        if fact_ab != 0.0:
            acc = dtype(0.0)
            for p in range(A.shape[1]):
                acc += A[i, p] * B[j, p]
            val = dtype(fact_ab) * acc + val
        out[k, i] = val

    def kernel(data, A, B, blocks):
        if n_block == 0:
            return (data,)
        fn = jax_kernel(
            sddmm_tiled_warp,
            launch_dims=[n_block, 2 * T, T],
            num_outputs=1,
            in_out_argnames=['out'],
        )
        return fn(data, A, B, blocks, jnp.array(data))

    return kernel


def _dia_sddmm_tiled_pallas_kernel(
    data_info: jax.ShapeDtypeStruct,
    a_info: jax.ShapeDtypeStruct,
    blocks_info: jax.ShapeDtypeStruct,
    shape,
    fact_ab: float,
    fact_c: float,
    tile_size: int,
    **kwargs
):
    from jax.experimental import pallas as pl

    T = tile_size
    assert T == next_power_of_two(T), f'The pallas kernel needs a power-of-two tile size, but got {T}.'
    n_row, n_col = shape
    sentinel = block_sentinel(T)
    n_block = blocks_info.shape[0]
    n_inner = a_info.shape[1]
    inner_pad = next_power_of_two(n_inner)
    row_pad = cdiv(n_row, T) * T
    # B is shifted down by T rows so that columns starty + r + local, with
    # local >= -(T - 1), are never negative.
    col_pad = cdiv(n_col, T) * T + 2 * T

    def sddmm_tiled_pallas(data_ref, a_ref, b_ref, blocks_ref, _, out_ref):
        i_block = pl.program_id(0)
        startx = blocks_ref[i_block, 0]
        starty = blocks_ref[i_block, 1]
        first = blocks_ref[i_block, 2]
        r = jnp.arange(T)
        a_tile = a_ref[pl.ds(startx, T), :]

        def loop_fn(i_slot, carry):
            local = blocks_ref[i_block, 3 + i_slot]
            live = local != sentinel
            local = jnp.where(live, local, 0)
            k = jnp.where(live, first + i_slot, 0)
            c = r + local
            j = starty + c
            mask = live & (c >= 0) & (c < T) & (startx + r < n_row) & (j < n_col)
            b_rows = b_ref[pl.ds(starty + local + T, T), :]
            prod = jnp.sum(a_tile * b_rows, axis=1)
            old = data_ref[k, pl.ds(startx, T)]
            new = _blend(prod, old, fact_ab, fact_c).astype(out_ref.dtype)
            pl.store(out_ref, (k, pl.ds(startx, T)), new, mask=mask)
            return carry

        jax.lax.fori_loop(0, 2 * T, loop_fn, 0)

    def kernel(data, A, B, blocks):
        if n_block == 0:
            return (data,)
        data = jnp.pad(data, ((0, 0), (0, row_pad - n_row)))
        A = jnp.pad(A, ((0, row_pad - n_row), (0, inner_pad - n_inner)))
        B = jnp.pad(B, ((T, col_pad - n_col - T), (0, inner_pad - n_inner)))
        fn = pl.pallas_call(
            sddmm_tiled_pallas,
            grid=(n_block,),
            input_output_aliases={4: 0},
            out_shape=jax.ShapeDtypeStruct(data.shape, data.dtype),
            backend='triton',
        )
        out = fn(data, A, B, blocks, jnp.array(data))
        return (out[:, :n_row],)

    return kernel


# ---------------------------------------------------------------------------
# Autodiff rules, shared by both primitives. ``rest`` holds the block
# records of the tiled primitive, which carry no tangent.
# ---------------------------------------------------------------------------


def _jvp_data(call, data_dot, data, A, B, *rest, offsets, shape, fact_c, **kwargs):
    return call(
        data_dot, A, B, *rest, offsets=offsets, shape=shape, fact_ab=0., fact_c=fact_c,
        **_forwarded(kwargs),
    )


def _jvp_a(call, a_dot, data, A, B, *rest, offsets, shape, fact_ab, **kwargs):
    return call(
        jnp.zeros_like(data), a_dot, B, *rest, offsets=offsets, shape=shape, fact_ab=fact_ab, fact_c=0.,
        **_forwarded(kwargs),
    )


def _jvp_b(call, b_dot, data, A, B, *rest, offsets, shape, fact_ab, **kwargs):
    return call(
        jnp.zeros_like(data), A, b_dot, *rest, offsets=offsets, shape=shape, fact_ab=fact_ab, fact_c=0.,
        **_forwarded(kwargs),
    )


def _forwarded(kwargs):
    keep = {'backend': kwargs['backend']}
    if 'tile_size' in kwargs:
        keep['tile_size'] = kwargs['tile_size']
    return keep


def _transpose_rule(ct, data, A, B, *rest, offsets, shape, fact_ab, fact_c, **kwargs):
    assert all(not ad.is_undefined_primal(x) for x in rest)
    ct = ct[0]
    gather_cols, valid = _diag_gather_indices(offsets, shape)
    rest = tuple(None for _ in rest)

    if ad.is_undefined_primal(data):
        if type(ct) is ad.Zero:
            ct_data = ad.Zero(data.aval)
        else:
            ct_data = jnp.where(valid, fact_c * ct, ct).astype(data.aval.dtype)
        return (ct_data, None, None) + rest

    if ad.is_undefined_primal(A):
        if type(ct) is ad.Zero:
            return (None, ad.Zero(A.aval), None) + rest
        ct_valid = jnp.where(valid, ct, 0)
        ct_a = fact_ab * jnp.einsum('di,dik->ik', ct_valid, B[gather_cols])
        return (None, ct_a.astype(A.aval.dtype), None) + rest

    if ad.is_undefined_primal(B):
        if type(ct) is ad.Zero:
            return (None, None, ad.Zero(B.aval)) + rest
        ct_valid = jnp.where(valid, ct, 0)
        ct_b = jnp.zeros(B.aval.shape, B.aval.dtype).at[gather_cols].add(
            fact_ab * ct_valid[:, :, None] * A[None, :, :]
        )
        return (None, None, ct_b) + rest

    raise ValueError('The transpose rule expects one undefined primal among data, A and B.')


# ---------------------------------------------------------------------------
# Primitive calls.
# ---------------------------------------------------------------------------


def _check_primitive_inputs(data, A, B, offsets, shape):
    n_row, n_col = shape
    assert data.ndim == 2 and data.shape == (len(offsets), n_row), (
        f'data must have shape {(len(offsets), n_row)}, but got {data.shape}.'
    )
    assert A.shape[0] == n_row and B.shape[0] == n_col, 'A and B must match the matrix shape.'
    assert A.shape[1] == B.shape[1], 'A and B must have the same number of columns.'
    assert data.dtype == A.dtype == B.dtype, 'data, A and B must have the same dtype.'


def dia_sddmm_p_call(
    data,
    A,
    B,
    *,
    offsets,
    shape,
    fact_ab: float = 1.,
    fact_c: float = 0.,
    backend: Optional[str] = None,
):
    """Invoke the diagonal-by-diagonal primitive on raw diagonal storage.

    Parameters
    ----------
    data : jax.Array
        Diagonal storage of shape ``(len(offsets), rows)``.
    A, B : jax.Array
        Dense operands of shapes ``(rows, K)`` and ``(cols, K)``.
    offsets : tuple of int
        Sorted diagonal offsets.
    shape : tuple of int
        ``(rows, cols)`` of the target matrix.
    fact_ab, fact_c : float
        Static blend scalars.
    backend : str, optional
        ``'numba'`` or ``'jax_raw'``.

    Returns
    -------
    tuple of jax.Array
        A single-element tuple holding the new diagonal storage.
    """
    offsets = tuple(int(d) for d in offsets)
    shape = tuple(int(s) for s in shape)
    _check_primitive_inputs(data, A, B, offsets, shape)
    return dia_sddmm_p(
        data, A, B,
        outs=[jax.ShapeDtypeStruct(data.shape, data.dtype)],
        offsets=offsets,
        shape=shape,
        fact_ab=float(fact_ab),
        fact_c=float(fact_c),
        backend=backend,
    )


def dia_sddmm_tiled_p_call(
    data,
    A,
    B,
    blocks,
    *,
    offsets,
    shape,
    tile_size: int,
    fact_ab: float = 1.,
    fact_c: float = 0.,
    backend: Optional[str] = None,
):
    """Invoke the tiled primitive on raw diagonal storage and block records.

    ``blocks`` is the record array of a :class:`TiledBlockDescriptor` built
    for ``DiaPattern(offsets, shape)`` with the same ``tile_size``. See
    :func:`dia_sddmm_p_call` for the other arguments; ``backend`` is one of
    ``'jax_raw'``, ``'warp'`` or ``'pallas'``.
    """
    offsets = tuple(int(d) for d in offsets)
    shape = tuple(int(s) for s in shape)
    _check_primitive_inputs(data, A, B, offsets, shape)
    assert blocks.ndim == 2 and blocks.shape[1] == 3 + 2 * tile_size, 'blocks do not match the tile size.'
    assert blocks.dtype == jnp.int32, 'blocks must be an int32 array.'
    return dia_sddmm_tiled_p(
        data, A, B, blocks,
        outs=[jax.ShapeDtypeStruct(data.shape, data.dtype)],
        offsets=offsets,
        shape=shape,
        fact_ab=float(fact_ab),
        fact_c=float(fact_c),
        tile_size=int(tile_size),
        backend=backend,
        data_info=jax.ShapeDtypeStruct(data.shape, data.dtype),
        a_info=jax.ShapeDtypeStruct(A.shape, A.dtype),
        b_info=jax.ShapeDtypeStruct(B.shape, B.dtype),
        blocks_info=jax.ShapeDtypeStruct(blocks.shape, blocks.dtype),
    )


def _bind_jvp_rules(prim, call):
    prim.def_jvp_rule2(
        lambda *a, **kw: _jvp_data(call, *a, **kw),
        lambda *a, **kw: _jvp_a(call, *a, **kw),
        lambda *a, **kw: _jvp_b(call, *a, **kw),
        *((None,) if prim is dia_sddmm_tiled_p else ()),
    )


dia_sddmm_p = XLACustomKernel('dia_sddmm')
dia_sddmm_p.def_numba_kernel(_dia_sddmm_numba_kernel)
dia_sddmm_p.def_kernel('jax_raw', 'cpu', _dia_sddmm_jax_kernel)
dia_sddmm_p.def_kernel('jax_raw', 'gpu', _dia_sddmm_jax_kernel)
dia_sddmm_p.def_kernel('jax_raw', 'tpu', _dia_sddmm_jax_kernel)
dia_sddmm_p.def_transpose_rule(_transpose_rule)
dia_sddmm_p.def_call(dia_sddmm_p_call)
dia_sddmm_p.def_tags('dia', 'sddmm')

dia_sddmm_tiled_p = XLACustomKernel('dia_sddmm_tiled')
dia_sddmm_tiled_p.def_kernel('jax_raw', 'cpu', _dia_sddmm_tiled_jax_kernel)
dia_sddmm_tiled_p.def_warp_kernel(_dia_sddmm_tiled_warp_kernel)
dia_sddmm_tiled_p.def_pallas_kernel('gpu', _dia_sddmm_tiled_pallas_kernel)
dia_sddmm_tiled_p.def_kernel('jax_raw', 'gpu', _dia_sddmm_tiled_jax_kernel)
dia_sddmm_tiled_p.def_kernel('jax_raw', 'tpu', _dia_sddmm_tiled_jax_kernel)
dia_sddmm_tiled_p.def_transpose_rule(_transpose_rule)
dia_sddmm_tiled_p.def_call(dia_sddmm_tiled_p_call)
dia_sddmm_tiled_p.def_tags('dia', 'sddmm', 'tiled')

_bind_jvp_rules(dia_sddmm_p, dia_sddmm_p_call)
_bind_jvp_rules(dia_sddmm_tiled_p, dia_sddmm_tiled_p_call)
