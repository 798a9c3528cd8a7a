"""Configuration sources: typed group/key accessor over a persistent key-value store, INI backend."""

import configparser
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import StorageIOError

logger = logging.getLogger(__name__)


class ScalarKind(str, Enum):
    """Scalar kinds a configuration source can read and write."""

    INT = "int"
    UINT = "uint"
    INT64 = "int64"
    UINT64 = "uint64"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"


_INT_RANGES: dict[ScalarKind, tuple[int, int]] = {
    ScalarKind.INT: (-(2**31), 2**31 - 1),
    ScalarKind.UINT: (0, 2**32 - 1),
    ScalarKind.INT64: (-(2**63), 2**63 - 1),
    ScalarKind.UINT64: (0, 2**64 - 1),
}

_TRUE = frozenset({"true", "1"})
_FALSE = frozenset({"false", "0"})


def _parse(kind: ScalarKind, text: str) -> Any:
    """Parse stored text as kind; None if it does not parse or is out of range."""
    if kind == ScalarKind.STRING:
        return text
    s = text.strip()
    if kind == ScalarKind.BOOL:
        if s.lower() in _TRUE:
            return True
        if s.lower() in _FALSE:
            return False
        return None
    if kind == ScalarKind.FLOAT:
        try:
            return float(s)
        except ValueError:
            return None
    try:
        num = int(s, 10)
    except ValueError:
        return None
    lo, hi = _INT_RANGES[kind]
    if not lo <= num <= hi:
        return None
    return num


def _format(kind: ScalarKind, value: Any) -> str:
    """Render value as stored text; raise ValueError if it does not fit kind."""
    if kind == ScalarKind.STRING:
        if not isinstance(value, str):
            raise ValueError(f"expected str, got {type(value).__name__}")
        return value
    if kind == ScalarKind.BOOL:
        if not isinstance(value, bool):
            raise ValueError(f"expected bool, got {type(value).__name__}")
        return "true" if value else "false"
    if isinstance(value, bool):
        raise ValueError(f"expected {kind.value}, got bool")
    if kind == ScalarKind.FLOAT:
        if not isinstance(value, (int, float)):
            raise ValueError(f"expected float, got {type(value).__name__}")
        return repr(float(value))
    if not isinstance(value, int):
        raise ValueError(f"expected {kind.value}, got {type(value).__name__}")
    lo, hi = _INT_RANGES[kind]
    if not lo <= value <= hi:
        raise ValueError(f"{kind.value} out of range: {value}")
    return str(value)


class ConfigSource(ABC):
    """
    An open configuration source: named groups of typed scalar keys.

    Single-key reads and writes are atomic; there are no multi-key transactions.
    Use as a context manager so the source is closed on every exit path.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._closed = False

    # Backend hooks

    @abstractmethod
    def _get_text(self, group: str, key: str) -> str | None: ...

    @abstractmethod
    def _set_text(self, group: str, key: str, text: str) -> None: ...

    @abstractmethod
    def _remove(self, group: str, key: str) -> None: ...

    @abstractmethod
    def _has(self, group: str, key: str) -> bool: ...

    @abstractmethod
    def _groups(self) -> list[str]: ...

    def _release(self) -> None:
        """Release backend resources; called once by close()."""

    # Typed accessor

    def _check_open(self) -> None:
        if self._closed:
            raise StorageIOError(f"Configuration source {self.name!r} is closed", source=self.name)

    def read(self, group: str, key: str, kind: ScalarKind) -> Any:
        """Return the value of group/key as kind, or None if absent or not parseable as kind."""
        self._check_open()
        text = self._get_text(group, key)
        if text is None:
            return None
        value = _parse(kind, text)
        if value is None:
            logger.debug("%s: [%s] %s=%r is not a valid %s", self.name, group, key, text, kind.value)
        return value

    def write(self, group: str, key: str, kind: ScalarKind, value: Any) -> None:
        """Store value under group/key as kind; raise StorageIOError on failure."""
        self._check_open()
        try:
            text = _format(kind, value)
        except ValueError as e:
            raise StorageIOError(
                f"Cannot write [{group}] {key}: {e}", source=self.name, group=group, key=key, cause=e
            ) from e
        self._set_text(group, key, text)

    def read_int(self, group: str, key: str) -> int | None:
        return self.read(group, key, ScalarKind.INT)

    def read_uint(self, group: str, key: str) -> int | None:
        return self.read(group, key, ScalarKind.UINT)

    def read_int64(self, group: str, key: str) -> int | None:
        return self.read(group, key, ScalarKind.INT64)

    def read_uint64(self, group: str, key: str) -> int | None:
        return self.read(group, key, ScalarKind.UINT64)

    def read_float(self, group: str, key: str) -> float | None:
        return self.read(group, key, ScalarKind.FLOAT)

    def read_bool(self, group: str, key: str) -> bool | None:
        return self.read(group, key, ScalarKind.BOOL)

    def read_string(self, group: str, key: str) -> str | None:
        return self.read(group, key, ScalarKind.STRING)

    def write_int(self, group: str, key: str, value: int) -> None:
        self.write(group, key, ScalarKind.INT, value)

    def write_uint(self, group: str, key: str, value: int) -> None:
        self.write(group, key, ScalarKind.UINT, value)

    def write_int64(self, group: str, key: str, value: int) -> None:
        self.write(group, key, ScalarKind.INT64, value)

    def write_uint64(self, group: str, key: str, value: int) -> None:
        self.write(group, key, ScalarKind.UINT64, value)

    def write_float(self, group: str, key: str, value: float) -> None:
        self.write(group, key, ScalarKind.FLOAT, value)

    def write_bool(self, group: str, key: str, value: bool) -> None:
        self.write(group, key, ScalarKind.BOOL, value)

    def write_string(self, group: str, key: str, value: str) -> None:
        self.write(group, key, ScalarKind.STRING, value)

    def has_key(self, group: str, key: str) -> bool:
        self._check_open()
        return self._has(group, key)

    def remove_key(self, group: str, key: str) -> None:
        """Remove group/key; removing an absent key is a no-op."""
        self._check_open()
        if self._has(group, key):
            self._remove(group, key)

    def groups(self) -> list[str]:
        """Return group names in storage order."""
        self._check_open()
        return self._groups()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.debug("Closed configuration source %s", self.name)

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "ConfigSource":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class ConfigStore(ABC):
    """Opens configuration sources by name."""

    @abstractmethod
    def open(self, name: str) -> ConfigSource:
        """Open the named source; raise StorageIOError if it cannot be opened."""


class IniConfigSource(ConfigSource):
    """
    INI-file backed source. Keys keep their case and values are not interpolated.
    Every write rewrites the file through a temporary file and os.replace.
    """

    def __init__(self, path: Path) -> None:
        super().__init__(str(path))
        self._path = path
        self._parser = configparser.ConfigParser(interpolation=None, delimiters=("=",))
        self._parser.optionxform = str  # type: ignore[assignment,method-assign]
        try:
            with open(path, encoding="utf-8") as f:
                self._parser.read_file(f)
        except OSError as e:
            raise StorageIOError(f"Failed to open {path}: {e}", source=str(path), cause=e) from e
        except configparser.Error as e:
            raise StorageIOError(f"Failed to parse {path}: {e}", source=str(path), cause=e) from e

    def _get_text(self, group: str, key: str) -> str | None:
        return self._parser.get(group, key, fallback=None)

    def _has(self, group: str, key: str) -> bool:
        return self._parser.has_option(group, key)

    def _groups(self) -> list[str]:
        return self._parser.sections()

    def _set_text(self, group: str, key: str, text: str) -> None:
        had_group = self._parser.has_section(group)
        previous = self._parser.get(group, key, fallback=None)
        if not had_group:
            self._parser.add_section(group)
        self._parser.set(group, key, text)
        try:
            self._flush()
        except StorageIOError as e:
            e.group, e.key = group, key
            if previous is not None:
                self._parser.set(group, key, previous)
            elif had_group:
                self._parser.remove_option(group, key)
            else:
                self._parser.remove_section(group)
            raise

    def _remove(self, group: str, key: str) -> None:
        previous = self._parser.get(group, key)
        self._parser.remove_option(group, key)
        try:
            self._flush()
        except StorageIOError as e:
            e.group, e.key = group, key
            self._parser.set(group, key, previous)
            raise

    def _flush(self) -> None:
        directory = self._path.parent
        try:
            fd, tmp = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    self._parser.write(f, space_around_delimiters=False)
                os.replace(tmp, self._path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise StorageIOError(f"Failed to write {self._path}: {e}", source=self.name, cause=e) from e


class IniConfigStore(ConfigStore):
    """Resolves source names to INI files, relative names against base_dir."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None

    def path_for(self, name: str) -> Path:
        path = Path(name)
        if self._base_dir is not None and not path.is_absolute():
            path = self._base_dir / path
        return path

    def open(self, name: str) -> ConfigSource:
        path = self.path_for(name)
        source = IniConfigSource(path)
        logger.debug("Opened configuration source %s (%d groups)", path, len(source.groups()))
        return source
