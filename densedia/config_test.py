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

import json
import os
import warnings

import pytest

from densedia.config import (
    _SCHEMA_VERSION,
    _read_config_file,
    _write_config_file,
    clear_backends,
    clear_user_defaults,
    get_backend,
    get_config_path,
    get_user_default,
    invalidate_cache,
    load_user_defaults,
    remove_user_default,
    save_user_defaults,
    set_backend,
    set_user_default,
)


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Redirect the config file to a temporary directory and reset the caches."""
    config_path = str(tmp_path / 'densedia' / 'defaults.json')
    monkeypatch.setattr('densedia.config.get_config_path', lambda: config_path)
    invalidate_cache()
    clear_backends()
    yield config_path
    invalidate_cache()
    clear_backends()


class TestGetConfigPath:
    def test_ends_with_defaults_json(self):
        path = get_config_path()
        assert isinstance(path, str)
        assert path.endswith(os.path.join('densedia', 'defaults.json'))

    def test_honours_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.setattr('platform.system', lambda: 'Linux')
        monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path))
        path = get_config_path()
        assert path == os.path.join(str(tmp_path), 'densedia', 'defaults.json')


class TestReadConfigFile:
    def test_missing_file_returns_default(self):
        data = _read_config_file('/nonexistent/path/defaults.json')
        assert data['schema_version'] == _SCHEMA_VERSION
        assert data['defaults'] == {}

    def test_corrupted_json(self, isolate_config):
        path = isolate_config
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            f.write('not valid json{{{')
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter('always')
            data = _read_config_file(path)
            assert any('Corrupted' in str(warning.message) for warning in w)
        assert data['defaults'] == {}

    def test_unsupported_schema_version(self, isolate_config):
        path = isolate_config
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            json.dump({'schema_version': 999, 'defaults': {'dia_sddmm': {'cpu': 'numba'}}}, f)
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter('always')
            data = _read_config_file(path)
            assert any('schema version' in str(warning.message) for warning in w)
        assert data['defaults'] == {}

    def test_valid_file(self, isolate_config):
        path = isolate_config
        expected = {'schema_version': 1, 'defaults': {'dia_sddmm_tiled': {'gpu': 'warp'}}}
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            json.dump(expected, f)
        assert _read_config_file(path) == expected

    def test_malformed_entries_are_dropped(self, isolate_config):
        path = isolate_config
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            json.dump(
                {
                    'schema_version': 1,
                    'defaults': {
                        'dia_sddmm': {'cpu': 'numba', 'gpu': 3},
                        'dia_sddmm_tiled': 'warp',
                    },
                },
                f,
            )
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter('always')
            data = _read_config_file(path)
            assert any('malformed' in str(warning.message) for warning in w)
        assert data['defaults'] == {'dia_sddmm': {'cpu': 'numba'}}


class TestWriteConfigFile:
    def test_creates_directory_and_file(self, isolate_config):
        path = isolate_config
        data = {'schema_version': 1, 'defaults': {}}
        _write_config_file(path, data)
        with open(path) as f:
            assert json.load(f) == data

    def test_overwrites_atomically(self, isolate_config):
        path = isolate_config
        _write_config_file(path, {'schema_version': 1, 'defaults': {'a': {'cpu': 'b'}}})
        _write_config_file(path, {'schema_version': 1, 'defaults': {'c': {'gpu': 'd'}}})
        with open(path) as f:
            assert json.load(f)['defaults'] == {'c': {'gpu': 'd'}}
        leftovers = [p for p in os.listdir(os.path.dirname(path)) if p.endswith('.tmp')]
        assert leftovers == []


class TestUserDefaults:
    def test_load_empty(self):
        assert load_user_defaults() == {}

    def test_save_and_load(self):
        save_user_defaults({'dia_sddmm_tiled': {'cpu': 'jax_raw', 'gpu': 'pallas'}})
        invalidate_cache()
        defaults = load_user_defaults()
        assert defaults['dia_sddmm_tiled'] == {'cpu': 'jax_raw', 'gpu': 'pallas'}

    def test_save_merges(self):
        save_user_defaults({'dia_sddmm': {'cpu': 'numba'}})
        save_user_defaults({'dia_sddmm_tiled': {'gpu': 'warp'}})
        invalidate_cache()
        defaults = load_user_defaults()
        assert defaults['dia_sddmm']['cpu'] == 'numba'
        assert defaults['dia_sddmm_tiled']['gpu'] == 'warp'

    def test_caching(self):
        save_user_defaults({'dia_sddmm': {'cpu': 'numba'}})
        assert load_user_defaults() is load_user_defaults()

    def test_set_and_get(self):
        assert get_user_default('dia_sddmm', 'cpu') is None
        set_user_default('dia_sddmm', 'cpu', 'numba')
        set_user_default('dia_sddmm', 'cpu', 'jax_raw')
        invalidate_cache()
        assert get_user_default('dia_sddmm', 'cpu') == 'jax_raw'

    def test_clear(self, isolate_config):
        save_user_defaults({'dia_sddmm': {'cpu': 'numba'}})
        assert os.path.isfile(isolate_config)
        clear_user_defaults()
        assert not os.path.isfile(isolate_config)
        assert load_user_defaults() == {}
        clear_user_defaults()

    def test_rejects_invalid_names(self):
        with pytest.raises(ValueError):
            set_user_default('dia_sddmm', 'cpu', '')
        with pytest.raises(ValueError):
            save_user_defaults({'dia_sddmm': {'cpu': None}})
        assert load_user_defaults() == {}

    def test_remove_one_platform(self):
        save_user_defaults({'dia_sddmm_tiled': {'cpu': 'jax_raw', 'gpu': 'pallas'}})
        remove_user_default('dia_sddmm_tiled', 'gpu')
        invalidate_cache()
        assert load_user_defaults() == {'dia_sddmm_tiled': {'cpu': 'jax_raw'}}
        remove_user_default('dia_sddmm_tiled', 'cpu')
        assert load_user_defaults() == {}

    def test_remove_whole_primitive(self):
        save_user_defaults({'dia_sddmm': {'cpu': 'numba'}, 'dia_sddmm_tiled': {'gpu': 'warp'}})
        remove_user_default('dia_sddmm')
        remove_user_default('not_registered')
        invalidate_cache()
        assert load_user_defaults() == {'dia_sddmm_tiled': {'gpu': 'warp'}}


class TestProcessBackends:
    def test_set_get_clear(self):
        assert get_backend('cpu') is None
        set_backend('cpu', 'jax_raw')
        assert get_backend('cpu') == 'jax_raw'
        set_backend('cpu', None)
        assert get_backend('cpu') is None
        set_backend('gpu', 'warp')
        clear_backends()
        assert get_backend('gpu') is None

    def test_rejects_empty_name(self):
        with pytest.raises(ValueError):
            set_backend('cpu', '')
