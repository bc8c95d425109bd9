# spritr/core/config.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Union

from app_config import apply_qsettings_org, DEFAULTS
from spritr.qt import QtCore


class SettingsStore(Protocol):
    """What the project model needs from a preferences backend."""

    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def keys(self) -> Iterable[str]: ...


class Settings:
    """
    Thin wrapper over QSettings with defaults and simple dict-like get/set.
    Uses Native format (registry/plist) unless an INI path is given.
    """
    def __init__(self, path: Optional[Union[str, Path]] = None, prime_defaults: bool = True):
        if path is None:
            apply_qsettings_org()
            self._qs = QtCore.QSettings()
        else:
            self._qs = QtCore.QSettings(str(path), QtCore.QSettings.Format.IniFormat)

        # Prime defaults if key not present
        if prime_defaults:
            for k, v in DEFAULTS.items():
                if not self._qs.contains(k):
                    self._qs.setValue(k, v)
            self._qs.sync()

    def get(self, key: str, default: Any = None) -> Any:
        val = self._qs.value(key, default)
        return val if val is not None else default

    def set(self, key: str, value: Any) -> None:
        self._qs.setValue(key, value)
        self._qs.sync()

    def remove(self, key: str) -> None:
        self._qs.remove(key)
        self._qs.sync()

    def keys(self) -> list[str]:
        return list(self._qs.allKeys())

    def __contains__(self, key: str) -> bool:
        return self._qs.contains(key)


def get_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    return Settings(path)
