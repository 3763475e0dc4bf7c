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

from .block_descriptor import (
    BlockDescriptor, TiledBlockDescriptor, NullBlockDescriptor, build_block_descriptor,
)
from .densedense import (
    densedense_to_dia,
    dia_sddmm_p, dia_sddmm_p_call,
    dia_sddmm_tiled_p, dia_sddmm_tiled_p_call,
)
from .main import DIA
from .pattern import DiaPattern

__all__ = [
    'DIA', 'DiaPattern',
    'BlockDescriptor', 'TiledBlockDescriptor', 'NullBlockDescriptor',
    'build_block_descriptor',
    'densedense_to_dia',
    'dia_sddmm_p', 'dia_sddmm_p_call',
    'dia_sddmm_tiled_p', 'dia_sddmm_tiled_p_call',
]
