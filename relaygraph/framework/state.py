# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
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

"""State schema and reducers for StateGraph.

A state is a plain dict. The schema declares which fields exist and how a
node's partial update is folded into the current value of each field:

    schema = StateSchema({
        "messages": Channel(append, default=list),
        "route": replace,
    })
    schema.merge({"messages": ["a"], "route": None}, {"messages": "b"})
    # {"messages": ["a", "b"], "route": None}

TypedDict classes work too, with reducers attached through Annotated:

    class SupportState(TypedDict):
        messages: Annotated[list, append]
        route: str

    schema = StateSchema.from_typed_dict(SupportState)
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from inspect import isclass, signature
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from relaygraph.core.debug_logger import TRACE
from relaygraph.framework.errors import SchemaError

logger = logging.getLogger(__name__)

Reducer = Callable[[Any, Any], Any]


# =============================================================================
# Built-in reducers
# =============================================================================


def replace(current: Any, incoming: Any) -> Any:
    """Last write wins."""
    return incoming


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def append(current: Any, incoming: Any) -> List[Any]:
    """Concatenate ``incoming`` onto ``current``.

    A non-list incoming value is appended as a single element and a ``None``
    current value counts as empty. ``current`` is never mutated.
    """
    return _as_list(current) + _as_list(incoming)


def window(k: int) -> Reducer:
    """Build an append reducer that keeps only the last ``k`` items."""
    if not isinstance(k, int) or isinstance(k, bool) or k < 1:
        raise ValueError(f"window size must be a positive integer, got {k!r}")

    def window_reducer(current: Any, incoming: Any) -> List[Any]:
        return append(current, incoming)[-k:]

    window_reducer.__name__ = f"window_{k}"
    window_reducer.window_size = k  # type: ignore[attr-defined]
    return window_reducer


def merge_dicts(current: Any, incoming: Any) -> Dict[str, Any]:
    """Shallow dict union; keys from ``incoming`` win."""
    merged: Dict[str, Any] = dict(current or {})
    merged.update(incoming or {})
    return merged


REDUCERS: Dict[str, Reducer] = {
    "replace": replace,
    "append": append,
    "merge": merge_dicts,
}


def resolve_reducer(name: str, window_size: Optional[int] = None) -> Reducer:
    """Look up a built-in reducer by name (``window`` needs ``window_size``)."""
    if name == "window":
        if window_size is None:
            raise ValueError("reducer 'window' requires a window size")
        return window(window_size)
    try:
        return REDUCERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown reducer '{name}'. Must be one of {sorted([*REDUCERS, 'window'])}"
        ) from None


def _check_reducer(reducer: Any) -> Reducer:
    if not callable(reducer):
        raise TypeError(f"Reducer must be callable, got {type(reducer).__name__}")
    try:
        params = list(signature(reducer).parameters.values())
    except (TypeError, ValueError):
        # Builtins without an introspectable signature
        return reducer
    positional = sum(p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) for p in params)
    has_varargs = any(p.kind is p.VAR_POSITIONAL for p in params)
    if positional != 2 and not has_varargs:
        raise ValueError(
            f"Invalid reducer signature. Expected (current, incoming) -> new. "
            f"Got {signature(reducer)}"
        )
    return reducer


# =============================================================================
# Channels and schema
# =============================================================================


@dataclass(frozen=True)
class Channel:
    """Declaration of one state field.

    Attributes:
        reducer: Fold function ``(current, incoming) -> new``
        default: Zero-argument factory (``list``, ``dict``, a lambda) or a
            plain value. Plain values are deep-copied each time they are used.
    """

    reducer: Reducer = replace
    default: Any = None

    def __post_init__(self) -> None:
        _check_reducer(self.reducer)

    def make_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return copy.deepcopy(self.default)


_TYPE_DEFAULTS: Dict[Any, Callable[[], Any]] = {
    list: list,
    dict: dict,
    str: str,
    int: int,
    float: float,
    bool: bool,
}


def _default_for_type(annotation: Any) -> Any:
    base = get_origin(annotation) or annotation
    if base is Union:
        return None
    factory = _TYPE_DEFAULTS.get(base)
    if factory is not None:
        return factory
    if isclass(base):
        for origin, candidate in _TYPE_DEFAULTS.items():
            if origin in (list, dict) and issubclass(base, origin):
                return candidate
    return None


def _channel_from_annotation(annotation: Any) -> Channel:
    reducer: Reducer = replace
    base = annotation
    metadata = getattr(annotation, "__metadata__", None)
    if metadata:
        base = get_args(annotation)[0]
        for meta in reversed(metadata):
            if isinstance(meta, Channel):
                return meta
            if callable(meta):
                reducer = _check_reducer(meta)
                break
    return Channel(reducer=reducer, default=_default_for_type(base))


class StateSchema:
    """Declared state fields and their reducers."""

    def __init__(self, channels: Mapping[str, Union[Channel, Reducer]]):
        if not channels:
            raise ValueError("StateSchema needs at least one field")
        normalized: Dict[str, Channel] = {}
        for name, spec in channels.items():
            if not isinstance(name, str) or not name:
                raise ValueError(f"Invalid state field name: {name!r}")
            normalized[name] = spec if isinstance(spec, Channel) else Channel(reducer=spec)
        self._channels = normalized

    @classmethod
    def from_typed_dict(cls, schema: type) -> "StateSchema":
        """Build a schema from a TypedDict (or any annotated class)."""
        hints = get_type_hints(schema, include_extras=True)
        if not hints:
            raise ValueError(f"{schema!r} declares no annotated fields")
        return cls({name: _channel_from_annotation(typ) for name, typ in hints.items()})

    @classmethod
    def coerce(cls, obj: Any) -> "StateSchema":
        """Accept a StateSchema, an annotated class, or a field mapping."""
        if isinstance(obj, StateSchema):
            return obj
        if isinstance(obj, Mapping):
            return cls(obj)
        if isclass(obj):
            return cls.from_typed_dict(obj)
        raise TypeError(
            f"Cannot build a state schema from {type(obj).__name__}; "
            "pass a StateSchema, a TypedDict class or a mapping of fields"
        )

    @property
    def fields(self) -> List[str]:
        return list(self._channels)

    @property
    def channels(self) -> Dict[str, Channel]:
        return dict(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __repr__(self) -> str:
        parts = ", ".join(
            f"{name}={getattr(ch.reducer, '__name__', type(ch.reducer).__name__)}"
            for name, ch in self._channels.items()
        )
        return f"StateSchema({parts})"

    def initial_state(self) -> Dict[str, Any]:
        """Fresh state with every field at its default."""
        return {name: ch.make_default() for name, ch in self._channels.items()}

    def undeclared(self, keys: Iterable[str]) -> List[str]:
        return [k for k in keys if k not in self._channels]

    def validate_update(
        self, update: Optional[Mapping[str, Any]], *, node_id: Optional[str] = None
    ) -> None:
        """Raise SchemaError if ``update`` names any undeclared field."""
        if not update:
            return
        unknown = self.undeclared(update)
        if unknown:
            raise SchemaError(unknown, node_id=node_id)

    def merge(
        self,
        current: Mapping[str, Any],
        update: Optional[Mapping[str, Any]],
        *,
        node_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fold ``update`` into ``current`` and return a new state dict.

        Neither argument is modified. Fields missing from ``update`` keep
        their current value; fields missing from ``current`` start from the
        channel default. Either every field merges or SchemaError is raised
        and nothing does.
        """
        self.validate_update(update, node_id=node_id)
        merged = dict(current)
        if not update:
            return merged
        for name, incoming in update.items():
            channel = self._channels[name]
            existing = merged[name] if name in merged else channel.make_default()
            merged[name] = channel.reducer(existing, incoming)
        logger.log(TRACE, f"Merged fields {sorted(update)}")
        return merged


__all__ = [
    "Reducer",
    "Channel",
    "StateSchema",
    "replace",
    "append",
    "window",
    "merge_dicts",
    "REDUCERS",
    "resolve_reducer",
]
