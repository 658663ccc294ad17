"""
Host codec for the polyson library.

pydantic does the JSON work: parsing, validation, serialization, aliases,
excluded fields, custom serializers, extras. This module is the thin layer
that lets hooks take part in a pydantic encode or decode:

- Polymorphic[T]: marks a field whose declared type T is an interface. The
  marker plugs into pydantic's schema hooks (like any `Annotated` validator
  and serializer) and hands the field's value to the hooks of the running
  call.
- Marshaler / Unmarshaler: bind a hook function to a Python type. A hook
  returns SKIP to defer to the next hook, and finally to the default
  behavior.
- CodecOptions: output settings plus hooks. Options travel with each call
  in the pydantic context, never with the models, so one model can be
  encoded with different hooks by different callers.
- HookContext: what a hook receives. `marshal` gives the default encoding of
  a value by its own type; `unmarshal` decodes data into a type, hooks
  included.
- marshal / unmarshal: entrypoints mapping pydantic failures to EncodeError
  and DecodeError.

Default behavior:
    Without a matching hook, a Polymorphic field is encoded by the value's
    own type. Decoding one fails when T is abstract, since nothing says which
    class to build.

Re-entry:
    Hooks are attached to the annotated field, not to classes. The default
    encoding of a value is asked of pydantic for the value's concrete type,
    whose schema has no marker at its root, so a hook is never asked again
    about the value it is handling. Polymorphic fields inside that value carry
    their own marker and are intercepted as usual.

Example:
    >>> class Drawing(BaseModel):
    ...     shapes: list[Polymorphic[Shape]]
    >>>
    >>> options = CodecOptions(marshalers=(...,), unmarshalers=(...,))
    >>> data = marshal(drawing, options)
    >>> unmarshal(data, Drawing, options)
    >>>
    >>> # Or straight through pydantic
    >>> drawing.model_dump_json(context=options.context())
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Annotated, Any, Callable

import pydantic_core
from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, core_schema

from polyson.exceptions import DecodeError, EncodeError, PolysonError
from polyson.log import describe, logger

# Key of the polyson entry in a pydantic context dict
CONTEXT_KEY = "polyson"


# =============================================================================
# Hooks
# =============================================================================


class _SkipType:
    __slots__ = ()

    def __repr__(self) -> str:
        return "SKIP"


# Returned by a hook to pass the value on to the next hook or the default
SKIP = _SkipType()


@dataclass(frozen=True)
class Marshaler:
    """
    Encode hook bound to a Python type.

    `func(value, ctx)` is called for Polymorphic fields whose value is an
    instance of `python_type`. It returns the value's encoding (JSON-ready
    Python data) or SKIP.
    """

    python_type: type
    func: Callable[[Any, HookContext], Any]

    def matches(self, value: Any) -> bool:
        return _isinstance(value, self.python_type)


@dataclass(frozen=True)
class Unmarshaler:
    """
    Decode hook bound to a Python type.

    `func(data, target, ctx)` is called for Polymorphic fields declared as
    `python_type` or a subclass of it. `data` is the field's input (parsed
    JSON when decoding JSON). It returns the decoded value or SKIP.
    """

    python_type: type
    func: Callable[[Any, Any, HookContext], Any]

    def matches(self, target: Any) -> bool:
        if target is self.python_type:
            return True
        try:
            return isinstance(target, type) and issubclass(target, self.python_type)
        except TypeError:
            return False


@dataclass(frozen=True)
class CodecOptions:
    """
    Settings for one encode or decode call.

    Attributes:
        deterministic: Sort the members of every JSON object, so equal
            values always produce identical bytes.
        indent: Pretty-print with this many spaces.
        exclude_none: Leave out None-valued fields.
        by_alias: Write field aliases instead of field names.
        marshalers: Encode hooks, tried in order.
        unmarshalers: Decode hooks, tried in order.
    """

    deterministic: bool = False
    indent: int | None = None
    exclude_none: bool = False
    by_alias: bool = True
    marshalers: tuple[Marshaler, ...] = ()
    unmarshalers: tuple[Unmarshaler, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "marshalers", tuple(self.marshalers))
        object.__setattr__(self, "unmarshalers", tuple(self.unmarshalers))

    def with_hooks(self, *hooks: Marshaler | Unmarshaler) -> CodecOptions:
        """Return a copy with hooks appended."""
        marshalers = list(self.marshalers)
        unmarshalers = list(self.unmarshalers)
        for hook in hooks:
            if isinstance(hook, Marshaler):
                marshalers.append(hook)
            elif isinstance(hook, Unmarshaler):
                unmarshalers.append(hook)
            else:
                raise TypeError(f"expected Marshaler or Unmarshaler, got {hook!r}")
        return replace(self, marshalers=tuple(marshalers), unmarshalers=tuple(unmarshalers))

    def join(self, other: CodecOptions) -> CodecOptions:
        """Combine two option sets; hooks of `self` are tried first."""
        return CodecOptions(
            deterministic=self.deterministic or other.deterministic,
            indent=other.indent if other.indent is not None else self.indent,
            exclude_none=self.exclude_none or other.exclude_none,
            by_alias=self.by_alias and other.by_alias,
            marshalers=self.marshalers + other.marshalers,
            unmarshalers=self.unmarshalers + other.unmarshalers,
        )

    def context(self) -> dict[str, Any]:
        """
        A pydantic context carrying these options.

        Pass it to a single pydantic call, e.g.
        `model.model_dump_json(context=options.context())`.
        """
        return {CONTEXT_KEY: _Call(self)}


_DEFAULT_OPTIONS = CodecOptions()


class _Call:
    """Per-call state: the options, and the first polyson error raised."""

    __slots__ = ("options", "error")

    def __init__(self, options: CodecOptions):
        self.options = options
        self.error: PolysonError | None = None

    def record(self, error: PolysonError) -> None:
        if self.error is None:
            self.error = error


def _call_from(context: Any) -> _Call:
    if isinstance(context, dict):
        call = context.get(CONTEXT_KEY)
        if isinstance(call, _Call):
            return call
    return _Call(_DEFAULT_OPTIONS)


# =============================================================================
# Hook Context
# =============================================================================


class HookContext:
    """
    Handed to every hook call.

    Attributes:
        options: Options of the running call.
        json_mode: True while producing or reading JSON, False for
            `model_dump()` / `model_validate()` on Python data.
    """

    def __init__(self, call: _Call, context: Any, json_mode: bool, dump_options: dict[str, Any]):
        self._call = call
        self._context = context
        self._dump_options = dump_options
        self.json_mode = json_mode

    @classmethod
    def for_serialization(cls, info: core_schema.SerializationInfo) -> HookContext:
        return cls(
            _call_from(info.context),
            info.context,
            info.mode_is_json(),
            dict(
                by_alias=info.by_alias,
                exclude_unset=info.exclude_unset,
                exclude_defaults=info.exclude_defaults,
                exclude_none=info.exclude_none,
                round_trip=info.round_trip,
            ),
        )

    @classmethod
    def for_validation(cls, info: core_schema.ValidationInfo) -> HookContext:
        # Dumps made while decoding must read back as input
        return cls(
            _call_from(info.context),
            info.context,
            info.mode == "json",
            dict(by_alias=True, round_trip=True),
        )

    @property
    def options(self) -> CodecOptions:
        return self._call.options

    def record(self, error: PolysonError) -> None:
        self._call.record(error)

    def marshal(self, value: Any) -> Any:
        """
        Encode a value by its own type.

        Polymorphic fields inside the value are handed to the hooks.

        Raises:
            EncodeError: If pydantic cannot encode the value.
        """
        adapter = _adapter(type(value), EncodeError)
        try:
            return adapter.dump_python(
                value,
                mode="json" if self.json_mode else "python",
                context=self._context,
                **self._dump_options,
            )
        except PydanticSerializationError as e:
            # pydantic re-raises hook errors as its own type
            original = self._call.error
            if original is not None:
                raise original
            raise EncodeError(f"cannot encode {_type_name(type(value))}: {e}") from e

    def unmarshal(self, data: Any, target: Any) -> Any:
        """
        Decode data into `target`, hooks included.

        Raises:
            DecodeError: If the data does not fit the target.
        """
        adapter = _adapter(target, DecodeError)
        try:
            if self.json_mode:
                return adapter.validate_json(pydantic_core.to_json(data), context=self._context)
            return adapter.validate_python(data, context=self._context)
        except ValidationError as e:
            raise _decode_error(e) from e


# =============================================================================
# Polymorphic Fields
# =============================================================================


@dataclass(frozen=True)
class Polymorphic:
    """
    Field marker for interface-typed values.

    `Polymorphic[Shape]` is `Annotated[Shape, Polymorphic(Shape)]`. pydantic
    asks the marker for the field's schema; the marker answers with a
    validator and a serializer that consult the running call's hooks.

    Python-mode validation lets instances of the interface through as they
    are, so models still accept ready-made values on construction.
    """

    interface: type

    def __class_getitem__(cls, interface: type) -> Any:
        return Annotated[interface, cls(interface)]

    def __get_pydantic_core_schema__(self, source: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.with_info_plain_validator_function(
            self._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                self._serialize, info_arg=True, when_used="always"
            ),
        )

    def _serialize(self, value: Any, info: core_schema.SerializationInfo) -> Any:
        ctx = HookContext.for_serialization(info)
        try:
            for marshaler in ctx.options.marshalers:
                if not marshaler.matches(value):
                    continue
                result = marshaler.func(value, ctx)
                if result is not SKIP:
                    return result
                logger.debug("[Polymorphic] %r passed on %s", marshaler.func, describe(value))
            return ctx.marshal(value)
        except PolysonError as e:
            ctx.record(e)
            raise

    def _validate(self, data: Any, info: core_schema.ValidationInfo) -> Any:
        ctx = HookContext.for_validation(info)
        if not ctx.json_mode and _isinstance(data, self.interface):
            return data

        for unmarshaler in ctx.options.unmarshalers:
            if not unmarshaler.matches(self.interface):
                continue
            result = unmarshaler.func(data, self.interface, ctx)
            if result is not SKIP:
                return result
            logger.debug("[Polymorphic] %r passed on %s", unmarshaler.func, describe(data))

        if _is_abstract(self.interface):
            # Reported by pydantic as a validation error at this field
            raise ValueError(
                f"cannot derive concrete type for abstract type {_type_name(self.interface)}"
            )
        return ctx.unmarshal(data, self.interface)


# =============================================================================
# Entrypoints
# =============================================================================


@lru_cache(maxsize=None)
def _cached_adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def adapter_for(target: Any) -> TypeAdapter:
    """TypeAdapter for `target`, cached when the target is hashable."""
    try:
        hash(target)
    except TypeError:
        return TypeAdapter(target)
    return _cached_adapter(target)


def marshal(value: Any, options: CodecOptions | None = None, *, target: Any = None) -> bytes:
    """
    Encode a value to JSON bytes.

    Args:
        value: The value to encode.
        options: Output settings and hooks.
        target: Type to encode the value as. Defaults to the value's own
            type; pass e.g. `Polymorphic[Shape]` to wrap a top-level value.

    Raises:
        EncodeError: If pydantic cannot encode the value.
        PolysonError: Errors raised by hooks, unchanged.
    """
    options = options or _DEFAULT_OPTIONS
    call = _Call(options)
    adapter = _adapter(type(value) if target is None else target, EncodeError)
    try:
        data = adapter.dump_python(
            value,
            mode="json",
            by_alias=options.by_alias,
            exclude_none=options.exclude_none,
            context={CONTEXT_KEY: call},
        )
    except PydanticSerializationError as e:
        original = call.error
        if original is not None:
            raise original
        raise EncodeError(str(e)) from e

    if options.deterministic:
        data = _sort_members(data)
    return pydantic_core.to_json(data, indent=options.indent)


def unmarshal(data: str | bytes | bytearray, target: Any, options: CodecOptions | None = None) -> Any:
    """
    Decode JSON into `target`.

    Raises:
        DecodeError: If the JSON is invalid or does not fit the target.
        PolysonError: Errors raised by hooks, unchanged.
    """
    options = options or _DEFAULT_OPTIONS
    adapter = _adapter(target, DecodeError)
    try:
        return adapter.validate_json(data, context={CONTEXT_KEY: _Call(options)})
    except ValidationError as e:
        raise _decode_error(e) from e


# =============================================================================
# Helpers
# =============================================================================


def _adapter(target: Any, error: type[EncodeError] | type[DecodeError]) -> TypeAdapter:
    try:
        return adapter_for(target)
    except PydanticSchemaGenerationError as e:
        if error is DecodeError and _is_abstract(target):
            raise DecodeError(
                f"cannot derive concrete type for abstract type {_type_name(target)}"
            ) from e
        raise error(f"no JSON schema for {_type_name(target)}") from e


def _decode_error(e: ValidationError) -> DecodeError:
    errors = e.errors(include_url=False)
    first = errors[0]
    msg = first["msg"]
    if len(errors) > 1:
        msg += f" (and {len(errors) - 1} more)"
    return DecodeError(msg, list(first["loc"]))


def _sort_members(data: Any) -> Any:
    if isinstance(data, dict):
        return {key: _sort_members(data[key]) for key in sorted(data)}
    if isinstance(data, list):
        return [_sort_members(item) for item in data]
    return data


def _isinstance(value: Any, tp: Any) -> bool:
    # Protocols with data members reject isinstance checks
    try:
        return isinstance(value, tp)
    except TypeError:
        return False


def _is_abstract(tp: Any) -> bool:
    return inspect.isabstract(tp) or bool(getattr(tp, "_is_protocol", False))


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", repr(tp))
