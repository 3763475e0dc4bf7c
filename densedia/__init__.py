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

__version__ = "0.1.0"

from . import config
from ._config import TILE_SIZE, BlendConfig, numba_environ_context, set_numba_environ
from ._dia import (
    DIA,
    DiaPattern,
    BlockDescriptor,
    TiledBlockDescriptor,
    NullBlockDescriptor,
    build_block_descriptor,
    densedense_to_dia,
    dia_sddmm_p,
    dia_sddmm_tiled_p,
)
from ._error import (
    MathError,
    DiaConfigurationError,
    DescriptorAllocationError,
    KernelNotAvailableError,
    KernelFallbackExhaustedError,
)
from ._op import XLACustomKernel, defjvp
from ._registry import get_registry, get_primitives_by_tags, get_all_primitive_names

__all__ = [

    # --- diagonal-sparse data --- #
    'DIA',
    'DiaPattern',

    # --- block descriptors --- #
    'BlockDescriptor',
    'TiledBlockDescriptor',
    'NullBlockDescriptor',
    'build_block_descriptor',
    'TILE_SIZE',

    # --- restricted dense-dense multiplication --- #
    'densedense_to_dia',
    'BlendConfig',
    'dia_sddmm_p',
    'dia_sddmm_tiled_p',

    # --- errors --- #
    'MathError',
    'DiaConfigurationError',
    'DescriptorAllocationError',
    'KernelNotAvailableError',
    'KernelFallbackExhaustedError',

    # --- operator customization routines --- #
    'XLACustomKernel',
    'defjvp',
    'set_numba_environ',
    'numba_environ_context',
    'get_registry',
    'get_primitives_by_tags',
    'get_all_primitive_names',
    'config',
]
