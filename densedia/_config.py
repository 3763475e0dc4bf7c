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


import threading
from contextlib import contextmanager
from typing import NamedTuple, Union

__all__ = [
    'TILE_SIZE',
    'BlendConfig',
    'numba_environ',
    'numba_environ_context',
    'set_numba_environ',
]

# Side of the square tiles indexed by a block descriptor.
TILE_SIZE = 16


class BlendConfig(NamedTuple):
    """Blend scalars of ``C <- fact_ab * (A @ B.T) + fact_c * C``.

    Parameters
    ----------
    fact_ab : float
        Scale applied to the freshly computed product. Defaults to ``1.0``.
    fact_c : float
        Scale applied to the previous value of ``C``. Defaults to ``0.0``,
        i.e. the diagonals are overwritten.

    Examples
    --------
    .. code-block:: python

        >>> from densedia import BlendConfig
        >>> BlendConfig()
        BlendConfig(fact_ab=1.0, fact_c=0.0)
        >>> BlendConfig(fact_c=1.0)  # accumulate into C
        BlendConfig(fact_ab=1.0, fact_c=1.0)
    """
    fact_ab: float = 1.0
    fact_c: float = 0.0


class NumbaEnvironment(threading.local):
    def __init__(self, *args, **kwargs):
        # default environment settings
        super().__init__(*args, **kwargs)
        self.parallel: bool = False
        self.setting: dict = dict(nogil=True, fastmath=True)


numba_environ = NumbaEnvironment()


def _apply_parallel(parallel_if_possible: Union[int, bool, None]):
    if parallel_if_possible is None:
        return
    if isinstance(parallel_if_possible, bool):
        numba_environ.parallel = parallel_if_possible
    elif isinstance(parallel_if_possible, int):
        numba_environ.parallel = True
        assert parallel_if_possible > 0, 'The number of threads must be a positive integer.'
        import numba  # pylint: disable=import-outside-toplevel
        numba.set_num_threads(parallel_if_possible)
    else:
        raise ValueError('The argument `parallel_if_possible` must be a boolean or an integer.')


@contextmanager
def numba_environ_context(
    parallel_if_possible: Union[int, bool] = None,
    **kwargs
):
    """
    Temporarily change the Numba settings used by the CPU kernels.

    The previous settings are restored when the context exits.
    """
    old_parallel = numba_environ.parallel
    old_setting = numba_environ.setting.copy()

    try:
        numba_environ.setting.update(kwargs)
        _apply_parallel(parallel_if_possible)
        yield numba_environ.setting.copy()
    finally:
        numba_environ.parallel = old_parallel
        numba_environ.setting = old_setting


def set_numba_environ(
    parallel_if_possible: Union[int, bool] = None,
    **kwargs
):
    """
    Change the Numba settings used by the CPU kernels for the current thread.
    """
    numba_environ.setting.update(kwargs)
    _apply_parallel(parallel_if_possible)
