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

"""Which kernel backend serves a DIA primitive, and where that choice is kept.

When ``dia_sddmm`` or ``dia_sddmm_tiled`` is lowered without an explicit
``backend=``, the kernel is taken from, in order:

1. a process-wide override, :func:`set_backend`, that applies to every
   primitive registering that backend and is forgotten at exit;
2. a per-primitive choice saved with :func:`set_user_default`, persisted in
   ``defaults.json`` so that it survives restarts;
3. the default the primitive declares itself.

The persisted file looks like::

    {
      "schema_version": 1,
      "defaults": {"dia_sddmm_tiled": {"gpu": "pallas"}}
    }

and lives under ``$XDG_CONFIG_HOME/densedia`` (``~/.config/densedia``) on
Linux, ``~/Library/Application Support/densedia`` on macOS and
``%APPDATA%/densedia`` on Windows. A file that cannot be read or parsed is
reported with a warning and treated as empty; it never stops a computation.
"""

import json
import os
import platform
import tempfile
import warnings
from typing import Any, Dict, Optional

__all__ = [
    'load_user_defaults',
    'save_user_defaults',
    'get_user_default',
    'set_user_default',
    'remove_user_default',
    'clear_user_defaults',
    'get_config_path',
    'invalidate_cache',
    'set_backend',
    'get_backend',
    'clear_backends',
]

_SCHEMA_VERSION = 1
_SUPPORTED_SCHEMA_VERSIONS = {1}

# parsed content of defaults.json, ``None`` until first read
_cache: Optional[Dict[str, Any]] = None
# platform -> backend, set with set_backend()
_global_backends: Dict[str, str] = {}


def _empty_config() -> Dict[str, Any]:
    return {'schema_version': _SCHEMA_VERSION, 'defaults': {}}


def _check_name(kind: str, value) -> str:
    if not isinstance(value, str) or value == '':
        raise ValueError(f'{kind} must be a non-empty string, but got {value!r}.')
    return value


def get_config_path() -> str:
    """Location of ``defaults.json`` for the running operating system.

    Returns
    -------
    str
        Absolute path of the file. Neither the file nor its directory has
        to exist; they are created on the first save.
    """
    system = platform.system()
    if system == 'Windows':
        base = os.environ.get('APPDATA', os.path.expanduser('~'))
    elif system == 'Darwin':
        base = os.path.join(os.path.expanduser('~'), 'Library', 'Application Support')
    else:
        base = os.environ.get('XDG_CONFIG_HOME', os.path.join(os.path.expanduser('~'), '.config'))
    return os.path.join(base, 'densedia', 'defaults.json')


def _clean_defaults(raw, path: str) -> Dict[str, Dict[str, str]]:
    # Keep only ``{primitive: {platform: backend}}`` string entries.
    if not isinstance(raw, dict):
        warnings.warn(f"densedia: 'defaults' in {path} is not a mapping; ignoring it.", stacklevel=4)
        return {}
    cleaned = {}
    dropped = []
    for prim_name, platform_map in raw.items():
        if not isinstance(platform_map, dict):
            dropped.append(prim_name)
            continue
        entries = {
            plat: backend
            for plat, backend in platform_map.items()
            if isinstance(plat, str) and isinstance(backend, str) and backend
        }
        if len(entries) != len(platform_map):
            dropped.append(prim_name)
        if entries:
            cleaned[prim_name] = entries
    if dropped:
        warnings.warn(
            f"densedia: Ignoring malformed backend defaults for {sorted(dropped)} in {path}.",
            stacklevel=4,
        )
    return cleaned


def _read_config_file(path: str) -> Dict[str, Any]:
    """Parse ``path``, falling back to an empty configuration.

    A missing file is silently empty. Unparsable JSON and an unknown
    ``schema_version`` produce a ``UserWarning``; malformed entries are
    dropped with a warning while the valid ones are kept.
    """
    if not os.path.isfile(path):
        return _empty_config()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        warnings.warn(f"densedia: Corrupted config file at {path}: {e}. Using built-in defaults.", stacklevel=3)
        return _empty_config()

    version = data.get('schema_version', 0) if isinstance(data, dict) else 0
    if version not in _SUPPORTED_SCHEMA_VERSIONS:
        warnings.warn(
            f"densedia: Config file {path} has schema version {version}, "
            f"but only {sorted(_SUPPORTED_SCHEMA_VERSIONS)} are understood. Ignoring it.",
            stacklevel=3,
        )
        return _empty_config()

    return {'schema_version': version, 'defaults': _clean_defaults(data.get('defaults', {}), path)}


def _write_config_file(path: str, data: Dict[str, Any]):
    """Replace ``path`` with ``data`` serialised as JSON.

    The content is written to a sibling temporary file that is then renamed
    over ``path``, so readers see either the old or the new file. Failures
    are reported as warnings; the in-memory state stays valid for this
    process.
    """
    config_dir = os.path.dirname(path)
    try:
        os.makedirs(config_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=config_dir, prefix='.defaults-', suffix='.tmp')
    except OSError as e:
        warnings.warn(f"densedia: Cannot prepare {config_dir} for the config file: {e}.", stacklevel=3)
        return

    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.write('\n')
        os.replace(tmp_path, path)
    except OSError as e:
        warnings.warn(f"densedia: Cannot write config file {path}: {e}.", stacklevel=3)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def invalidate_cache():
    """Forget the parsed file so that the next lookup reads it again."""
    global _cache
    _cache = None


def _current() -> Dict[str, Any]:
    global _cache
    if _cache is None:
        _cache = _read_config_file(get_config_path())
    return _cache


def load_user_defaults() -> Dict[str, Dict[str, str]]:
    """Return the persisted ``{primitive: {platform: backend}}`` choices.

    The file is read once and cached; the same dictionary is returned until
    :func:`invalidate_cache` is called or the defaults are changed through
    this module.

    Examples
    --------
    .. code-block:: python

        >>> import densedia
        >>> densedia.config.load_user_defaults()  # doctest: +SKIP
        {'dia_sddmm_tiled': {'gpu': 'warp'}}
    """
    return _current()['defaults']


def _store(defaults: Dict[str, Dict[str, str]]):
    global _cache
    _cache = {'schema_version': _SCHEMA_VERSION, 'defaults': defaults}
    _write_config_file(get_config_path(), _cache)


def save_user_defaults(defaults: Dict[str, Dict[str, str]]):
    """Merge ``defaults`` into the persisted choices.

    Parameters
    ----------
    defaults : dict of str to dict of str to str
        ``{primitive: {platform: backend}}``. A pair already present is
        overwritten; every other persisted entry is kept.

    Raises
    ------
    ValueError
        If a primitive, platform or backend name is not a non-empty string.
    """
    merged = {k: dict(v) for k, v in _read_config_file(get_config_path())['defaults'].items()}
    for prim_name, platform_map in defaults.items():
        _check_name('primitive name', prim_name)
        for plat, backend in platform_map.items():
            merged.setdefault(prim_name, {})[_check_name('platform', plat)] = _check_name('backend', backend)
    _store(merged)


def get_user_default(primitive_name: str, platform_name: str) -> Optional[str]:
    """The persisted backend of ``primitive_name`` on ``platform_name``, or ``None``."""
    return load_user_defaults().get(primitive_name, {}).get(platform_name)


def set_user_default(primitive_name: str, platform_name: str, backend: str):
    """Persist ``backend`` for one primitive on one platform.

    Examples
    --------
    .. code-block:: python

        >>> import densedia
        >>> densedia.config.set_user_default('dia_sddmm_tiled', 'gpu', 'pallas')  # doctest: +SKIP
    """
    save_user_defaults({primitive_name: {platform_name: backend}})


def remove_user_default(primitive_name: str, platform_name: Optional[str] = None):
    """Forget the persisted backend of ``primitive_name``.

    Only the entry for ``platform_name`` is removed when it is given,
    otherwise every platform of the primitive. Removing an entry that does
    not exist does nothing.
    """
    defaults = {k: dict(v) for k, v in _read_config_file(get_config_path())['defaults'].items()}
    if primitive_name not in defaults:
        return
    if platform_name is None:
        del defaults[primitive_name]
    else:
        defaults[primitive_name].pop(platform_name, None)
        if not defaults[primitive_name]:
            del defaults[primitive_name]
    _store(defaults)


def clear_user_defaults():
    """Delete ``defaults.json``; a failure to delete it is reported as a warning."""
    path = get_config_path()
    try:
        if os.path.isfile(path):
            os.unlink(path)
    except OSError as e:
        warnings.warn(f"densedia: Cannot delete config file {path}: {e}.", stacklevel=2)
    invalidate_cache()


def set_backend(platform_name: str, backend: Optional[str]):
    """Prefer ``backend`` on ``platform_name`` for the rest of this process.

    Primitives that do not register ``backend`` ignore the override and keep
    their own default. ``None`` removes the override.

    Parameters
    ----------
    platform_name : str
        ``'cpu'``, ``'gpu'`` or ``'tpu'``.
    backend : str or None
        For example ``'numba'``, ``'jax_raw'``, ``'warp'`` or ``'pallas'``.
    """
    if backend is None:
        _global_backends.pop(platform_name, None)
    else:
        _global_backends[platform_name] = _check_name('backend', backend)


def get_backend(platform_name: str) -> Optional[str]:
    """The override set with :func:`set_backend` for ``platform_name``, if any."""
    return _global_backends.get(platform_name)


def clear_backends():
    """Drop every override set with :func:`set_backend`."""
    _global_backends.clear()
