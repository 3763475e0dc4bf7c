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

import importlib.util
from typing import Sequence, Tuple

import jax
import numpy as np

from .util import OutType

__all__ = [
    'numba_kernel',
]

numba_installed = importlib.util.find_spec('numba') is not None


def _ensure_sequence(outs: OutType):
    if isinstance(outs, Sequence):
        return tuple(outs)
    return (outs,)


def _normalize_outs(outs: OutType) -> Tuple[jax.ShapeDtypeStruct, ...]:
    return tuple(
        jax.ShapeDtypeStruct(tuple(int(dim) for dim in out.shape), np.dtype(out.dtype))
        for out in _ensure_sequence(outs)
    )


def numba_kernel(
    kernel,
    outs: OutType,
    *,
    vmap_method: str | None = None,
):
    """Wrap a Numba ``njit`` function as a host computation callable from JAX.

    The kernel is called as ``kernel(*inputs, *outputs)`` where the outputs
    are freshly allocated, uninitialised NumPy buffers that the kernel must
    fill completely. The call is staged into the XLA program through
    :func:`jax.pure_callback`, so the returned callable can be used inside
    ``jax.jit`` and inside a primitive lowering.

    Parameters
    ----------
    kernel : numba.core.registry.CPUDispatcher
        A Numba JIT-compiled function.
    outs : OutType
        Shape and dtype of every output buffer.
    vmap_method : str or None, optional
        Forwarded to :func:`jax.pure_callback`.

    Returns
    -------
    callable
        ``call(*inputs) -> tuple of jax.Array``.
    """
    if not numba_installed:
        raise ImportError('Numba is required to compile the CPU kernel for the custom operator.')
    from numba.core.registry import CPUDispatcher

    assert isinstance(kernel, CPUDispatcher), 'The kernel must be a Numba JIT-compiled function.'
    out_types = _normalize_outs(outs)

    def host_call(*ins):
        results = tuple(np.empty(o.shape, dtype=o.dtype) for o in out_types)
        kernel(*[np.asarray(x) for x in ins], *results)
        return results

    def call(*ins):
        return jax.pure_callback(host_call, out_types, *ins, vmap_method=vmap_method)

    return call
