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
import inspect
from typing import Callable, Optional, Sequence

import jax
from jax.interpreters.partial_eval import DynamicJaxprTracer

__all__ = [
    'cdiv',
    'is_tracer',
    'NameScope',
    'namescope',
    'next_power_of_two',
]


def cdiv(m: int, n: int) -> int:
    """Ceiling division ``ceil(m / n)`` for non-negative integers.

    Examples
    --------
    .. code-block:: python

        >>> cdiv(33, 16)
        3
        >>> cdiv(32, 16)
        2
    """
    return (m + n - 1) // n


def is_tracer(x) -> bool:
    """Return ``True`` when ``x`` is an abstract value rather than concrete data."""
    return isinstance(x, (jax.ShapeDtypeStruct, jax.core.ShapedArray, DynamicJaxprTracer, jax.core.Tracer))


class NameScope:
    """A callable that caches a separate JIT-compiled function per unique ``backend`` value.

    Each distinct ``backend`` keyword argument produces a separate
    JIT-compiled variant of the wrapped function, which is cached for
    reuse on subsequent calls.

    Parameters
    ----------
    fn : callable
        The function to wrap with per-backend JIT compilation.
    name : str or None, optional
        Display name for the function. If ``None``, a name is constructed
        from ``prefix`` and the function's ``__name__``.
    prefix : str, optional
        Prefix prepended to the function name when ``name`` is ``None``.
    module : str, optional
        Value to set for ``__module__``.
    static_argnums : sequence of int or int, optional
        Positional argument indices to treat as static.
    static_argnames : sequence of str or str, optional
        Keyword argument names to treat as static.
    """

    def __init__(
        self,
        fn: Callable,
        name: Optional[str] = None,
        prefix: str = "densedia",
        module: str = 'densedia',
        static_argnums: Sequence[int] | int = (),
        static_argnames: Sequence[str] | str = (),
    ):
        self._fn = fn
        self._static_argnums = static_argnums
        self._static_argnames = static_argnames
        fn.__name__ = name if name is not None else f"{prefix}.{fn.__name__}"
        self._cache = {}  # backend -> jit_compiled_fn
        sig = inspect.signature(fn)
        self._has_backend = (
            'backend' in sig.parameters or
            any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values())
        )
        self.__name__ = fn.__name__
        self.__qualname__ = getattr(fn, '__qualname__', self.__name__)
        self.__doc__ = fn.__doc__
        self.__module__ = module
        self.__wrapped__ = fn

    def _get_jit_fn(self, backend):
        if backend not in self._cache:
            fn = functools.partial(self._fn, backend=backend) if self._has_backend else self._fn
            self._cache[backend] = jax.jit(
                fn,
                static_argnums=self._static_argnums,
                static_argnames=self._static_argnames,
            )
        return self._cache[backend]

    def __call__(self, *args, **kwargs):
        backend = kwargs.pop('backend', None)
        jit_fn = self._get_jit_fn(backend)
        return jit_fn(*args, **kwargs)

    def __repr__(self):
        return f"<NameScope({self.__name__})>"


def namescope(
    fn: Callable = None,
    name: str = None,
    prefix: str = "densedia",
    module: str = 'densedia',
    static_argnums: Sequence[int] = (),
    static_argnames: Sequence[str] = ()
):
    """Decorator that wraps a function with per-backend JIT compilation.

    Usable with or without parentheses.

    Examples
    --------
    .. code-block:: python

        >>> @namescope(static_argnames=("offsets", "shape"))
        ... def my_func(x, y, *, offsets, shape, backend=None):
        ...     return x + y
    """

    def decorator(fun: Callable):
        return NameScope(
            fun,
            name=name,
            prefix=prefix,
            module=module,
            static_argnums=static_argnums,
            static_argnames=static_argnames
        )

    return decorator if fn is None else decorator(fn)


def next_power_of_two(n: int) -> int:
    """Smallest power of two that is at least ``n`` (and at least 1).

    Triton-backed Pallas kernels only load blocks whose sides are powers of
    two, so operands are padded to this size.

    Examples
    --------
    .. code-block:: python

        >>> next_power_of_two(17)
        32
        >>> next_power_of_two(16)
        16
    """
    n = max(int(n), 1)
    return 1 << (n - 1).bit_length()
