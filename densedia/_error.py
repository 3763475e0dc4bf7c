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


__all__ = [
    'MathError',
    'DiaConfigurationError',
    'DescriptorAllocationError',
    'KernelNotAvailableError',
    'KernelFallbackExhaustedError',
]


class MathError(Exception):
    """Base exception for mathematical errors in densedia operations.

    Raised when a mathematical operation fails due to invalid inputs or
    constraint violations in diagonal-sparse computations.

    Parameters
    ----------
    message : str
        A human-readable description of the mathematical error.

    See Also
    --------
    DiaConfigurationError : Operand or pattern inconsistencies.
    DescriptorAllocationError : Descriptor storage failures.
    """
    __module__ = 'densedia'


class DiaConfigurationError(MathError, ValueError):
    """Raised when operands, patterns or descriptors are inconsistent.

    Every check that raises this error runs before any kernel is launched,
    so an operation that fails with it has not modified its target.

    Typical causes:

    - ``A.shape[1] != B.shape[1]`` (the shared inner dimension differs);
    - ``C.shape != (A.shape[0], B.shape[0])``;
    - a block descriptor built from a pattern that does not match the
      target matrix (stale descriptor);
    - a descriptor that has already been released;
    - diagonal offsets outside ``(-rows, cols)`` or not unique.

    Parameters
    ----------
    message : str
        A human-readable description of the inconsistency.

    Examples
    --------
    .. code-block:: python

        >>> from densedia._error import DiaConfigurationError
        >>> raise DiaConfigurationError(
        ...     "A has 4 columns but B has 5; the inner dimensions must agree."
        ... )  # doctest: +SKIP
    """
    __module__ = 'densedia'


class DescriptorAllocationError(MathError, MemoryError):
    """Raised when the storage of a block descriptor cannot be obtained.

    The builder raises this error instead of returning a partially built
    descriptor, either because the host-side record array could not be
    allocated or because the device reported ``RESOURCE_EXHAUSTED`` while
    receiving it.

    Parameters
    ----------
    message : str
        A human-readable description including the requested size.

    See Also
    --------
    densedia.build_block_descriptor : The builder raising this error.
    """
    __module__ = 'densedia'


class KernelNotAvailableError(Exception):
    """Raised when a requested kernel backend is not installed or is version-incompatible.

    Parameters
    ----------
    message : str
        A human-readable description indicating which backend is
        unavailable and how to install or upgrade it.

    See Also
    --------
    KernelFallbackExhaustedError : Raised when no backend can serve a call.
    """
    __module__ = 'densedia'


class KernelFallbackExhaustedError(Exception):
    """Raised when no registered kernel backend can handle a primitive call.

    This exception is raised by :class:`~densedia._op.main.XLACustomKernel`
    during lowering when no backend is registered for the current platform,
    or when the explicitly requested backend is not registered.

    Parameters
    ----------
    message : str
        A human-readable description listing the primitive name, the
        platform, and the backends that are available.

    Examples
    --------
    .. code-block:: python

        >>> from densedia._error import KernelFallbackExhaustedError
        >>> raise KernelFallbackExhaustedError(
        ...     "warp not available for platform cpu in primitive dia_sddmm_tiled."
        ... )  # doctest: +SKIP
    """
    __module__ = 'densedia'
