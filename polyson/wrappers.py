"""
Wire wrappers for the polyson library.

A wrapper pairs a discriminator tag with a variant's encoded payload. The
oneof pipeline builds one per encode (`wrap(tag, payload)`) and decodes into
an empty one per decode (`wrap("", None)`), then reads its two facets:

- tag: the discriminator string
- payload: the variant's own encoding as JSON-ready data, or None when absent

Payloads are plain parsed values (dict, list, str, numbers, bool). A number
keeps its value but not its spelling: `1.50` is read as `1.5` and `1e2` as
`100.0`, the same as pydantic reads any JSON number.

Built-in strategies:

- wrap_nested (default): the payload sits under its own key.
      {"_type": "hash", "_value": 5}
- wrap_inline: object payloads are merged into the wrapper; other payloads
  are nested.
      {"_type": "point", "x": 1, "y": 2}
      {"_type": "hash", "_value": 5}
- CustomValueWrapper: the same two shapes with caller-chosen key names.

Empty payloads (null, "", {}, []) are left out entirely:
      {"_type": "origin"}

Callers can supply their own strategy: any callable `(tag, payload) ->
wrapper` where the wrapper exposes `tag` and `payload` and pydantic can
encode and decode it (see WrappedValue).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from pydantic_core import core_schema

from polyson.exceptions import AmbiguousPayloadShape, ConfigurationError, MalformedWrapper

# The default JSON object key for type discriminators
DEFAULT_DISCRIMINATOR_KEY = "_type"

# The default JSON object key for nested values
DEFAULT_VALUE_KEY = "_value"


@runtime_checkable
class WrappedValue(Protocol):
    """
    Interface of wire wrappers.

    Wrappers are written by pydantic, so they must be a type pydantic can
    serialize (a model, a dataclass, or a class with its own core schema).
    On decode, a wrapper with a `load(data)` method is filled in place;
    any other wrapper is validated from the data by its type.
    """

    @property
    def tag(self) -> str: ...

    @property
    def payload(self) -> Any: ...


WrapFunc = Callable[[str, Any], WrappedValue]


def is_empty(payload: Any) -> bool:
    """True for payloads that are left out of the wrapper: null, "", {}, []."""
    if payload is None:
        return True
    return isinstance(payload, (str, list, tuple, Mapping)) and len(payload) == 0


def json_kind(data: Any) -> str:
    """Name of the JSON kind a parsed value came from."""
    if data is None:
        return "null"
    if isinstance(data, bool):
        return "boolean"
    if isinstance(data, (int, float)):
        return "number"
    if isinstance(data, str):
        return "string"
    if isinstance(data, Mapping):
        return "object"
    if isinstance(data, (list, tuple)):
        return "array"
    return type(data).__name__


# =============================================================================
# Keyed Wrapper
# =============================================================================


class KeyedWrappedValue:
    """
    A wrapper object with a discriminator member and an optional payload.

    This is the single implementation behind the nested, inline and custom
    strategies; they differ only in key names and in `inline_objects`.

    Encoding:
        `{discriminator_key: tag}` followed by either the payload under
        `nested_value_key`, or, when `inline_objects` is set and the payload
        is an object, the payload's members. Empty payloads add nothing.
        An object payload that has a member named like one of the two keys is
        nested instead of inlined, since it could not be decoded otherwise.

    Decoding:
        See `load`.
    """

    __slots__ = ("discriminator_key", "nested_value_key", "inline_objects", "tag", "payload")

    def __init__(
        self,
        tag: str = "",
        payload: Any = None,
        *,
        discriminator_key: str = DEFAULT_DISCRIMINATOR_KEY,
        nested_value_key: str = DEFAULT_VALUE_KEY,
        inline_objects: bool = False,
    ):
        _check_keys(discriminator_key, nested_value_key)
        self.discriminator_key = discriminator_key
        self.nested_value_key = nested_value_key
        self.inline_objects = inline_objects
        self.tag = tag
        self.payload = payload

    @classmethod
    def __get_pydantic_core_schema__(cls, source: Any, handler: Any) -> core_schema.CoreSchema:
        serialization = core_schema.plain_serializer_function_ser_schema(cls.dump, info_arg=False)
        return core_schema.is_instance_schema(cls, serialization=serialization)

    def _inlines(self, payload: Any) -> bool:
        if not self.inline_objects or not isinstance(payload, Mapping):
            return False
        return self.discriminator_key not in payload and self.nested_value_key not in payload

    def dump(self) -> dict[str, Any]:
        """The wrapper object's members."""
        members = {self.discriminator_key: self.tag}
        payload = self.payload

        if not is_empty(payload):
            if self._inlines(payload):
                members.update(payload)
            else:
                members[self.nested_value_key] = payload

        return members

    def load(self, data: Any) -> None:
        """
        Read the tag and payload from a wrapper object.

        1. The value must be an object with a string discriminator member.
        2. With the discriminator removed:
           - nothing left: no payload
           - the nested value key present: its value is the payload (null
             meaning no payload); any other member alongside it is ambiguous
             when inlining is enabled and ignored otherwise
           - otherwise, with inlining enabled, the remaining members form the
             payload object; without it there is no payload

        Raises:
            MalformedWrapper: Not an object, or bad discriminator member.
            AmbiguousPayloadShape: Both nested and inline payload members.
        """
        if not isinstance(data, Mapping):
            raise MalformedWrapper(f"expected object, but encountered {json_kind(data)}")

        members = dict(data)
        if self.discriminator_key not in members:
            raise MalformedWrapper(f"missing discriminator {self.discriminator_key!r}")
        tag = members.pop(self.discriminator_key)
        if not isinstance(tag, str):
            raise MalformedWrapper(
                f"value for discriminator key {self.discriminator_key!r} must be a string "
                f"(got {json_kind(tag)})"
            )

        payload = None
        if self.nested_value_key in members:
            payload = members.pop(self.nested_value_key)
            if members and self.inline_objects:
                raise AmbiguousPayloadShape(
                    f"found both {self.nested_value_key!r} and inline members "
                    f"({', '.join(sorted(members))})"
                )
        elif members and self.inline_objects:
            payload = members

        self.tag = tag
        self.payload = payload

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyedWrappedValue):
            return NotImplemented
        return (
            self.discriminator_key == other.discriminator_key
            and self.nested_value_key == other.nested_value_key
            and self.inline_objects == other.inline_objects
            and self.tag == other.tag
            and self.payload == other.payload
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(tag={self.tag!r}, payload={self.payload!r}, "
            f"discriminator_key={self.discriminator_key!r}, "
            f"nested_value_key={self.nested_value_key!r}, inline_objects={self.inline_objects!r})"
        )


def _check_keys(discriminator_key: str, nested_value_key: str) -> None:
    if not isinstance(discriminator_key, str) or not discriminator_key:
        raise ConfigurationError("discriminator key must be a non-empty string")
    if not isinstance(nested_value_key, str) or not nested_value_key:
        raise ConfigurationError("nested value key must be a non-empty string")
    if discriminator_key == nested_value_key:
        raise ConfigurationError(
            f"discriminator key and nested value key are both {discriminator_key!r}"
        )


# =============================================================================
# Built-in Strategies
# =============================================================================


def wrap_nested(tag: str, payload: Any) -> KeyedWrappedValue:
    """Nest the payload under "_value" next to "_type"."""
    return KeyedWrappedValue(tag, payload)


def wrap_inline(tag: str, payload: Any) -> KeyedWrappedValue:
    """
    Inline object payloads next to "_type"; nest everything else under
    "_value".

    The marshaled JSON looks like:

        [
            {"_type": "hash", "_value": 5},
            {"_type": "url", "scheme": "https", "host": "example.com"}
        ]
    """
    return KeyedWrappedValue(tag, payload, inline_objects=True)


@dataclass(frozen=True)
class CustomValueWrapper:
    """
    Builds wrap functions with custom key names.

    Attributes:
        discriminator_key: Key of the tag member.
        nested_value_key: Key of the nested payload member.
        inline_objects: Merge object payloads into the wrapper.

    Raises:
        ConfigurationError: If a key is empty or both keys are equal.

    Example:
        >>> cw = CustomValueWrapper("$type", "$value", inline_objects=True)
        >>> config = Config(wrap=cw.wrap)
    """

    discriminator_key: str = DEFAULT_DISCRIMINATOR_KEY
    nested_value_key: str = DEFAULT_VALUE_KEY
    inline_objects: bool = False

    def __post_init__(self):
        _check_keys(self.discriminator_key, self.nested_value_key)

    def wrap(self, tag: str, payload: Any) -> KeyedWrappedValue:
        """Wrap a payload. Usable as `Config.wrap`."""
        return KeyedWrappedValue(
            tag,
            payload,
            discriminator_key=self.discriminator_key,
            nested_value_key=self.nested_value_key,
            inline_objects=self.inline_objects,
        )

    def empty(self) -> KeyedWrappedValue:
        """An empty wrapper, ready to be decoded into."""
        return self.wrap("", None)
