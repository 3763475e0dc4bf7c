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

import functools
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from jax.interpreters import xla, batching, ad, mlir

from densedia._compatible_import import Primitive
from densedia._error import KernelFallbackExhaustedError
from densedia._typing import KernelGenerator
from densedia.config import get_backend, get_user_default
from .util import (
    general_batching_rule, defjvp, OutType,
    abstract_arguments, check_pallas_jax_version,
    check_warp_installed
)

__all__ = [
    'XLACustomKernel',
    'KernelEntry',
]


@dataclass
class KernelEntry:
    """A registered kernel implementation for a specific backend and platform.

    Parameters
    ----------
    backend : str
        The backend name (e.g., ``'numba'``, ``'jax_raw'``, ``'warp'``,
        ``'pallas'``).
    platform : str
        The hardware platform name (``'cpu'``, ``'gpu'``, ``'tpu'``).
    kernel_generator : KernelGenerator
        A callable that accepts the keyword arguments of the primitive
        ``bind`` call and returns a concrete kernel function.
    """
    backend: str
    platform: str
    kernel_generator: KernelGenerator


class XLACustomKernel:
    """Creates and manages a custom JAX primitive with per-backend kernels.

    The primitive returns multiple results and is lowered, per platform, by
    whichever registered kernel backend is selected at lowering time:

    1. the ``backend=`` keyword of the call;
    2. the process-wide override from :func:`densedia.config.set_backend`;
    3. the persisted user default from :func:`densedia.config.set_user_default`;
    4. the primitive default (first registered, or set with :meth:`set_default`);
    5. the first registered kernel.

    Supported backends by platform in this package:

    - **CPU**: Numba, plain JAX (``jax_raw``)
    - **GPU**: Warp, Pallas, plain JAX
    - **TPU**: plain JAX

    Parameters
    ----------
    name : str
        The unique name for the custom JAX primitive.

    Examples
    --------
    .. code-block:: python

        >>> kernel = XLACustomKernel('my_custom_op')
        >>> kernel.def_numba_kernel(numba_kernel_generator)  # CPU default
        >>> kernel.def_warp_kernel(warp_kernel_generator)    # GPU default
        >>> kernel.def_pallas_kernel('gpu', pallas_kernel_generator)
        >>> kernel.set_default('gpu', 'pallas')
        >>> result = kernel(x, outs=[jax.ShapeDtypeStruct((10,), jnp.float32)])
    """

    __module__ = 'densedia'

    def __init__(self, name: str, doc: str = None):
        self.name = name
        self.primitive = Primitive(name)
        self.primitive.multiple_results = True
        if doc is not None:
            self.__doc__ = doc

        self.primitive.def_impl(functools.partial(xla.apply_primitive, self.primitive))
        self.primitive.def_abstract_eval(self._abstract_eval)

        self.register_general_batching()

        # platform -> backend -> KernelEntry
        self._kernels: Dict[str, Dict[str, KernelEntry]] = {}
        # platform -> backend_name
        self._defaults: Dict[str, str] = {}
        self._registered_platforms: set = set()
        self._call_fn: Optional[Callable] = None
        self._tags: set = set()

        from densedia._registry import register_primitive
        register_primitive(name, self)

    def _abstract_eval(self, *ins, outs: OutType, **kwargs):
        # Output shapes and dtypes are supplied by the caller in ``outs``.
        return tuple(outs)

    def __call__(self, *ins, outs: OutType, **kwargs):
        """Bind the primitive to ``ins``.

        Parameters
        ----------
        *ins : array_like
            Input arrays to the primitive.
        outs : OutType
            Shape and dtype of every output, a single object or a pytree of
            objects with ``shape`` and ``dtype``.
        **kwargs
            Static parameters forwarded to the kernel generators. ``backend``
            selects a specific backend instead of the platform default.

        Returns
        -------
        result
            The outputs, with the pytree structure of ``outs``.
        """
        outs, tree_def = abstract_arguments(outs)
        r = self.primitive.bind(*ins, **kwargs, outs=tuple(outs))
        assert len(r) == len(outs), 'The number of outputs does not match the expected.'
        return tree_def.unflatten(r)

    def def_kernel(
        self,
        backend: str,
        platform: str,
        kg: KernelGenerator,
        asdefault: bool = False
    ):
        """Register a kernel generator for ``backend`` on ``platform``.

        The first kernel registered for a platform becomes its default;
        ``asdefault=True`` overrides an existing default. A lowering rule is
        registered the first time any kernel targets the platform.
        """
        assert isinstance(backend, str), f'The `backend` should be a string, but got {type(backend)}.'
        assert isinstance(platform, str), f'The `platform` should be a string, but got {type(platform)}.'
        assert callable(kg), f'The `kg` should be a callable, but got {type(kg)}.'

        entry = KernelEntry(backend=backend, platform=platform, kernel_generator=kg)
        self._kernels.setdefault(platform, {})[backend] = entry

        if asdefault or platform not in self._defaults:
            self._defaults[platform] = backend

        if platform not in self._registered_platforms:
            self._register_fallback_lowering(platform)
            self._registered_platforms.add(platform)

    def _select_backend(self, platform: str, requested: Optional[str]) -> str:
        kernels = self._kernels.get(platform, {})
        if not kernels:
            raise KernelFallbackExhaustedError(
                f"No kernels registered for platform '{platform}' in primitive '{self.name}'."
            )
        if requested is not None:
            if isinstance(requested, str) and requested == '':
                raise ValueError(f"backend cannot be an empty string in primitive '{self.name}'.")
            if requested not in kernels:
                raise KernelFallbackExhaustedError(
                    f'{requested} not available for platform {platform} in primitive '
                    f'{self.name}. Available: {list(kernels)}'
                )
            return requested
        for candidate in (
            get_backend(platform),
            get_user_default(self.name, platform),
            self._defaults.get(platform),
        ):
            if candidate is not None and candidate in kernels:
                return candidate
        return next(iter(kernels))

    def _register_fallback_lowering(self, platform: str):
        def fallback_kernel_fn(*args, **kwargs):
            backend_to_use = self._select_backend(platform, kwargs.pop('backend', None))
            if backend_to_use == 'pallas':
                check_pallas_jax_version()
            elif backend_to_use == 'warp':
                check_warp_installed()
            entry = self._kernels[platform][backend_to_use]
            kernel = entry.kernel_generator(**kwargs)
            return kernel(*args)

        lower = mlir.lower_fun(fallback_kernel_fn, multiple_results=True)
        mlir.register_lowering(self.primitive, lower, platform=platform)

    def def_numba_kernel(self, kg: KernelGenerator, asdefault: bool = False):
        """Register a Numba kernel for the CPU platform."""
        self.def_kernel(backend='numba', platform='cpu', kg=kg, asdefault=asdefault)

    def def_warp_kernel(self, kg: KernelGenerator, asdefault: bool = False):
        """Register a Warp kernel for the GPU platform."""
        self.def_kernel(backend='warp', platform='gpu', kg=kg, asdefault=asdefault)

    def def_pallas_kernel(self, platform: str, kg: KernelGenerator, asdefault: bool = False):
        """Register a Pallas kernel for ``platform`` (``'gpu'`` or ``'tpu'``)."""
        assert platform in ['gpu', 'tpu'], f'The `platform` should be either `gpu` or `tpu`, but got {platform}.'
        self.def_kernel(backend='pallas', platform=platform, kg=kg, asdefault=asdefault)

    def set_default(self, platform: str, backend: str):
        """Set the default backend for a platform.

        Raises
        ------
        ValueError
            If no kernels are registered for *platform*, or if *backend*
            is not registered for *platform*.
        """
        if platform not in self._kernels:
            raise ValueError(f"No kernels registered for platform '{platform}'")
        if backend not in self._kernels[platform]:
            available = list(self._kernels[platform].keys())
            raise ValueError(
                f"Backend '{backend}' not registered for platform '{platform}'. "
                f"Available: {available}"
            )
        self._defaults[platform] = backend

    def get_default(self, platform: str) -> Optional[str]:
        """Return the default backend for a platform, or ``None``."""
        return self._defaults.get(platform)

    @property
    def defaults(self) -> Dict[str, str]:
        """A copy of the ``platform -> default backend`` mapping."""
        return self._defaults.copy()

    def available_backends(self, platform: str) -> List[str]:
        """Return the names of the backends registered for ``platform``."""
        return list(self._kernels.get(platform, {}).keys())

    def def_batching_rule(self, fun: Callable):
        """Override the batching rule used under ``jax.vmap``."""
        batching.primitive_batchers[self.primitive] = fun

    def def_jvp_rule(self, fun: Callable):
        """Define a monolithic JVP rule (see ``jax.interpreters.ad.primitive_jvps``)."""
        ad.primitive_jvps[self.primitive] = fun

    def def_jvp_rule2(self, *jvp_rules):
        """Define one JVP rule per primal input; ``None`` marks a zero contribution."""
        defjvp(self.primitive, *jvp_rules)

    def def_transpose_rule(self, fun: Callable):
        """Define the transpose rule used by reverse-mode differentiation."""
        ad.primitive_transposes[self.primitive] = fun

    def register_general_batching(self):
        """Register the default ``lax.scan`` based batching rule."""
        prim = self.primitive
        batching.primitive_batchers[prim] = functools.partial(general_batching_rule, prim)

    def def_call(self, fn: Callable):
        """Associate the high-level call function that prepares arguments and binds the primitive."""
        self._call_fn = fn

    def call(self, *args, **kwargs):
        """Invoke the function registered with :meth:`def_call`."""
        if self._call_fn is None:
            raise ValueError(f"No call function registered for primitive '{self.name}'. Use def_call() first.")
        return self._call_fn(*args, **kwargs)

    def def_tags(self, *tags: str):
        """Attach categorisation tags used by :func:`densedia._registry.get_primitives_by_tags`."""
        self._tags.update(tags)
