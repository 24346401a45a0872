"""Field naming convention transforms between client and server."""

import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from shared.schemas.api_responses import BlobPayload

_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_BOUNDARY_RE = re.compile(r"([a-z\d])([A-Z])")

# Query values that carry no information and are never sent
_EMPTY_MARKERS = frozenset({"", "undefined", "null", "NaN"})


class FieldConvention(str, Enum):
    """Key naming conventions."""

    CAMEL = "camel"
    SNAKE = "snake"


def camel_to_snake(name: str) -> str:
    """Convert `buildingId` to `building_id`. Snake input is unchanged."""
    name = _ACRONYM_RE.sub(r"\1_\2", name)
    return _BOUNDARY_RE.sub(r"\1_\2", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert `building_id` to `buildingId`. Camel input is unchanged."""
    stripped = name.lstrip("_")
    prefix = name[: len(name) - len(stripped)]
    head, *rest = stripped.split("_")
    return prefix + head + "".join(part[:1].upper() + part[1:] for part in rest if part)


_CONVERTERS = {
    FieldConvention.CAMEL: snake_to_camel,
    FieldConvention.SNAKE: camel_to_snake,
}


def _is_binary(value: Any) -> bool:
    return isinstance(value, (BlobPayload, bytes, bytearray, memoryview))


class FieldTransformer:
    """Rewrites object keys between the client and server conventions.

    Transforms are recursive, return new containers and are idempotent.
    Binary payloads pass through untouched.
    """

    def __init__(
        self,
        client: FieldConvention | str = FieldConvention.CAMEL,
        server: FieldConvention | str = FieldConvention.SNAKE,
        preserve_keys: Iterable[str] = ("sortBy", "sortOrder"),
    ):
        self.client = FieldConvention(client)
        self.server = FieldConvention(server)
        self.preserve_keys = frozenset(preserve_keys)

    def to_server(self, value: Any) -> Any:
        """Rewrite keys into the server's convention."""
        if self.client == self.server:
            return value
        return self._rewrite(value, _CONVERTERS[self.server])

    def to_client(self, value: Any) -> Any:
        """Rewrite keys into the client's convention."""
        if self.client == self.server:
            return value
        return self._rewrite(value, _CONVERTERS[self.client])

    def _rewrite(self, value: Any, convert) -> Any:
        if _is_binary(value):
            return value
        if isinstance(value, Mapping):
            return {
                self._key(key, convert): self._rewrite(item, convert)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._rewrite(item, convert) for item in value]
        if isinstance(value, tuple):
            return tuple(self._rewrite(item, convert) for item in value)
        return value

    def _key(self, key: Any, convert) -> Any:
        if not isinstance(key, str) or key in self.preserve_keys:
            return key
        return convert(key)


def clean_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop query parameters that carry no value.

    Removes None, blank strings, the literal strings 'undefined', 'null'
    and 'NaN', and empty lists or mappings.
    """
    if not params:
        return {}
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, float) and value != value:
            continue
        if isinstance(value, str) and value.strip() in _EMPTY_MARKERS:
            continue
        if isinstance(value, (list, tuple)):
            value = [item for item in value if item is not None and item != ""]
            if not value:
                continue
        if isinstance(value, Mapping) and not value:
            continue
        cleaned[key] = value
    return cleaned
