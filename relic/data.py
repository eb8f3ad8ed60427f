import copy
from typing import Any, Optional
from collections.abc import Iterator, Mapping

from .exceptions import KeyNotFound


class SecretsData(Mapping[str, Any]):
    """Read-only dict-like view over decrypted secrets.

    Nested mappings are returned as ``SecretsData`` too, so both
    ``secrets['db']['password']`` and ``secrets.db.password`` work.

    The repr only lists key names; secret values are never rendered.
    """

    __slots__ = ('_data',)

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        object.__setattr__(self, '_data', dict(data or {}))

    def __repr__(self) -> str:
        return f'<Relic-Secrets keys={list(self._data.keys())}>'

    def _wrap(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return SecretsData(value)
        return value

    # --- Accessors ---

    def get_path(self, path: str, default: Any = None) -> Any:
        """Return the value at a dotted ``path`` (``"db.password"``)."""
        node: Any = self._data
        for part in path.split('.'):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return self._wrap(node)

    def to_dict(self) -> dict:
        """Return a deep copy of the underlying plain data."""
        return copy.deepcopy(self._data)

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        try:
            return self._wrap(self._data[key])
        except KeyError:
            raise KeyNotFound(key) from None

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretsData):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __getattr__(self, key: str) -> Any:
        # Avoid infinite recursion for internal attributes
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self[key]
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError('SecretsData is read-only')

    def __delattr__(self, key: str) -> None:
        raise AttributeError('SecretsData is read-only')
