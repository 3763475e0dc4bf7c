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

import functools
import importlib.util
from typing import Protocol, Union, Tuple, Sequence

import jax
import numpy as np
from jax import tree_util
from jax.interpreters import ad

from densedia._compatible_import import Primitive
from densedia._error import KernelNotAvailableError

warp_installed = importlib.util.find_spec('warp') is not None

if warp_installed:
    try:
        import warp  # pylint: disable=import-error, import-outside-toplevel

        warp.config.quiet = True
    except ImportError:
        warp_installed = False

__all__ = [
    'defjvp',
    'general_batching_rule',
    'jaxtype_to_warptype',
    'jaxinfo_to_warpinfo',
    'check_pallas_jax_version',
    'check_warp_installed',
]

_MIN_JAX_VERSION_FOR_PALLAS = (0, 7, 1)


def check_pallas_jax_version():
    """Check that the installed JAX is recent enough for the Pallas kernels.

    Raises
    ------
    KernelNotAvailableError
        If the installed JAX version is older than 0.7.1.
    """
    if jax.__version_info__ < _MIN_JAX_VERSION_FOR_PALLAS:
        min_ver = '.'.join(str(v) for v in _MIN_JAX_VERSION_FOR_PALLAS)
        raise KernelNotAvailableError(
            f"Pallas kernels require JAX >= {min_ver}, "
            f"but found JAX {jax.__version__}. "
            f"Please upgrade JAX: pip install --upgrade jax"
        )


def check_warp_installed():
    """Raise :class:`KernelNotAvailableError` unless ``warp-lang`` can be imported."""
    if not warp_installed:
        raise KernelNotAvailableError(
            'The warp backend requires NVIDIA Warp. Install it with: pip install warp-lang'
        )


def defjvp(primitive, *jvp_rules):
    """
    Define per-input JVP rules for a JAX primitive.

    Unlike ``jax.interpreters.ad.defjvp``, this also supports primitives
    with ``multiple_results=True``.

    Args:
        primitive: The JAX ``Primitive`` object or an ``XLACustomKernel`` instance.
        *jvp_rules: One function per primal input. Each rule receives the
            tangent of its input followed by all primal inputs and the
            primitive parameters, and returns the output tangents. ``None``
            marks an input whose tangent contribution is zero.
    """
    from .main import XLACustomKernel

    if isinstance(primitive, XLACustomKernel):
        primitive = primitive.primitive
    assert isinstance(primitive, Primitive), f'The primitive should be a JAX primitive. But we got {primitive}'

    if primitive.multiple_results:
        ad.primitive_jvps[primitive] = functools.partial(_standard_jvp, jvp_rules, primitive)
    else:
        ad.primitive_jvps[primitive] = functools.partial(ad.standard_jvp, jvp_rules, primitive)


def _standard_jvp(jvp_rules, primitive: Primitive, primals, tangents, **params):
    assert primitive.multiple_results
    val_out = tuple(primitive.bind(*primals, **params))
    tree = tree_util.tree_structure(val_out)
    tangents_out = []
    for rule, t in zip(jvp_rules, tangents):
        if rule is not None and type(t) is not ad.Zero:
            r = tuple(rule(t, *primals, **params))
            tangents_out.append(r)
            assert tree_util.tree_structure(r) == tree
    r = functools.reduce(
        _add_tangents,
        tangents_out,
        tree_util.tree_map(_zero_tangent, val_out)
    )
    return val_out, r


def _zero_tangent(primal):
    # ``Zero.from_primal_value`` was removed from recent JAX releases
    if hasattr(ad.Zero, 'from_primal_value'):
        return ad.Zero.from_primal_value(primal)
    return ad.Zero(jax.typeof(primal).to_tangent_aval())


def _add_tangents(xs, ys):
    return tree_util.tree_map(ad.add_tangents, xs, ys, is_leaf=lambda a: isinstance(a, ad.Zero))


def general_batching_rule(prim, args, axes, **kwargs):
    """
    Batch a primitive by scanning it over the leading batch axis.

    Batched arguments have their batch axis moved to 0; unbatched
    arguments are broadcast to every step of the ``jax.lax.scan``.

    Returns:
        ``(outs, out_dims)`` with every output batched along axis 0.
    """
    batch_axes, batch_args, non_batch_args = [], {}, {}
    for ax_i, ax in enumerate(axes):
        if ax is None:
            non_batch_args[f'ax{ax_i}'] = args[ax_i]
        else:
            batch_args[f'ax{ax_i}'] = args[ax_i] if ax == 0 else jax.numpy.moveaxis(args[ax_i], ax, 0)
            batch_axes.append(ax_i)

    def f(_, x):
        pars = tuple(
            [(x[f'ax{i}'] if i in batch_axes else non_batch_args[f'ax{i}'])
             for i in range(len(axes))]
        )
        return 0, prim.bind(*pars, **kwargs)

    _, outs = jax.lax.scan(f, 0, batch_args)
    out_vals, out_tree = jax.tree.flatten(outs)
    out_dim = jax.tree.unflatten(out_tree, (0,) * len(out_vals))
    return outs, out_dim


class ShapeDtype(Protocol):
    """Any object exposing ``shape`` and ``dtype``, e.g. ``jax.ShapeDtypeStruct``."""

    @property
    def shape(self) -> Tuple[int, ...]:
        ...

    @property
    def dtype(self) -> np.dtype:
        ...


OutType = Union[ShapeDtype, Sequence[ShapeDtype]]


def _transform_to_shapedarray(a):
    return jax.core.ShapedArray(a.shape, a.dtype)


def abstract_arguments(outs):
    outs = jax.tree.map(_transform_to_shapedarray, outs)
    outs, tree_def = jax.tree.flatten(outs)
    return outs, tree_def


_WARP_TYPE_NAMES = {
    np.dtype(np.float16): 'float16',
    np.dtype(np.float32): 'float32',
    np.dtype(np.float64): 'float64',
    np.dtype(np.int8): 'int8',
    np.dtype(np.int16): 'int16',
    np.dtype(np.int32): 'int32',
    np.dtype(np.int64): 'int64',
    np.dtype(np.uint8): 'uint8',
    np.dtype(np.uint16): 'uint16',
    np.dtype(np.uint32): 'uint32',
    np.dtype(np.uint64): 'uint64',
    np.dtype(np.bool_): 'bool',
}


def jaxtype_to_warptype(dtype):
    """
    Convert a JAX/NumPy dtype to the corresponding Warp scalar type.

    Raises:
        KernelNotAvailableError: if Warp is not installed.
        ValueError: if Warp has no matching scalar type.
    """
    check_warp_installed()
    name = _WARP_TYPE_NAMES.get(np.dtype(dtype))
    if name is None:
        raise ValueError(f"Warp does not support computations with dtype: {dtype}")
    return getattr(warp, name)


def jaxinfo_to_warpinfo(jax_info: jax.ShapeDtypeStruct):
    """
    Convert JAX shape and dtype information to a Warp array type.

    Parameters
    ----------
    jax_info : jax.ShapeDtypeStruct
        Shape and dtype of the array passed to a Warp kernel.

    Returns
    -------
    warp.types.array
        A Warp array type with matching dtype and dimensionality, usable as
        a kernel argument annotation.
    """
    dtype = jaxtype_to_warptype(jax_info.dtype)
    return warp.array(dtype=dtype, ndim=len(jax_info.shape))
