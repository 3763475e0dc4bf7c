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


import densedia
from densedia._registry import get_all_primitive_names, get_primitives_by_tags, get_registry


def test_dia_primitives_are_registered():
    names = get_all_primitive_names()
    assert 'dia_sddmm' in names
    assert 'dia_sddmm_tiled' in names
    assert names == sorted(names)


def test_lookup_by_tags():
    dia = get_primitives_by_tags({'dia', 'sddmm'})
    assert set(dia) >= {'dia_sddmm', 'dia_sddmm_tiled'}
    tiled = get_primitives_by_tags({'dia', 'tiled'})
    assert 'dia_sddmm_tiled' in tiled
    assert 'dia_sddmm' not in tiled


def test_registry_is_a_copy():
    registry = get_registry()
    registry.pop('dia_sddmm')
    assert 'dia_sddmm' in get_registry()
    assert get_registry()['dia_sddmm'] is densedia.dia_sddmm_p
