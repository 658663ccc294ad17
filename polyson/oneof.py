"""
Discriminator hooks for the polyson host codec.

OneOfMarshaler and OneOfUnmarshaler handle Polymorphic fields declared as a
registry's interface, and write or read a wrapper that carries the variant's
tag next to its payload.

Encoding a value:
    1. Find the tag for the value's concrete type (or ask the fallback).
    2. Encode the value by itself, through pydantic.
    3. Wrap (tag, payload) and encode the wrapper.

Decoding into the interface:
    1. Read the field's data into an empty wrapper.
    2. Look the tag up in the registry.
    3. Build the variant's zero value and decode the payload into it: object
       payloads are laid over the zero value's own members, so members the
       payload leaves out keep the factory's values. A wrapper without
       payload yields the zero value itself.

Step 2 of encoding and step 3 of decoding ask pydantic about the variant's
concrete type, which carries no Polymorphic marker, so the hook is not
called again for the same value. Hooks keep no state between calls and one
instance may serve any number of concurrent or re-entrant calls.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from polyson.codec import CodecOptions, HookContext, Marshaler, Unmarshaler
from polyson.config import DEFAULT_CONFIG, Config
from polyson.exceptions import (
    CodecError,
    ConfigurationError,
    DecodeError,
    MalformedWrapper,
    UnderlyingCodecError,
    UnknownVariantType,
)
from polyson.log import describe, logger
from polyson.registry import Registry, Variant


# =============================================================================
# Encode Hook
# =============================================================================


class OneOfMarshaler:
    """
    Encode hook wrapping values of `registry.interface` with their tag.

    Args:
        registry: Variants of the interface, keyed by tag.
        config: Wire settings. Defaults to nested wrappers with "_type" and
            "_value" keys.
    """

    def __init__(self, registry: Registry, config: Config | None = None):
        self.registry = registry
        self.config = config or DEFAULT_CONFIG
        self._wrap = self.config.wrap_func()

    def _resolve_tag(self, value: Any) -> str:
        tag = self.registry.tag_for(value)
        if tag is not None:
            logger.debug("[OneOfMarshaler] %s is tagged %r", type(value).__qualname__, tag)
            return tag

        fallback = self.config.replace_missing_type
        if fallback is None:
            raise UnknownVariantType(type(value))
        tag = fallback(value)
        if not isinstance(tag, str):
            raise ConfigurationError(
                f"replace_missing_type returned {type(tag).__name__}, expected str"
            )
        logger.debug("[OneOfMarshaler] no tag for %s, using fallback %r", describe(value), tag)
        return tag

    def __call__(self, value: Any, ctx: HookContext) -> Any:
        tag = self._resolve_tag(value)

        try:
            payload = ctx.marshal(value)
        except CodecError as e:
            raise UnderlyingCodecError("encode-payload", tag, e) from e

        wrapped = self._wrap(tag, payload)

        try:
            return ctx.marshal(wrapped)
        except CodecError as e:
            raise UnderlyingCodecError("encode-wrapper", tag, e) from e

    def __repr__(self) -> str:
        return f"OneOfMarshaler({self.registry!r})"


# =============================================================================
# Decode Hook
# =============================================================================


class OneOfUnmarshaler:
    """
    Decode hook selecting the variant of `registry.interface` by tag.

    Args:
        registry: Variants of the interface, keyed by tag.
        config: Wire settings; must match the ones used for encoding.
    """

    def __init__(self, registry: Registry, config: Config | None = None):
        self.registry = registry
        self.config = config or DEFAULT_CONFIG
        self._wrap = self.config.wrap_func()

    def _read_wrapper(self, data: Any, ctx: HookContext) -> Any:
        wrapper = self._wrap("", None)
        load = getattr(wrapper, "load", None)
        if callable(load):
            load(data)
        else:
            try:
                wrapper = ctx.unmarshal(data, type(wrapper))
            except CodecError as e:
                raise UnderlyingCodecError("decode-wrapper", None, e) from e

        if not isinstance(wrapper.tag, str):
            raise MalformedWrapper(f"discriminator must be a string (got {type(wrapper.tag).__name__})")
        return wrapper

    def _decode_into(self, variant: Variant, payload: Any, ctx: HookContext) -> Any:
        if variant.factory is not None:
            base = ctx.marshal(variant.new())
            if isinstance(base, Mapping) and isinstance(payload, Mapping):
                payload = {**base, **payload}
        return ctx.unmarshal(payload, variant.type)

    def __call__(self, data: Any, target: Any, ctx: HookContext) -> Any:
        wrapper = self._read_wrapper(data, ctx)
        tag = wrapper.tag
        variant = self.registry.variant_for(tag)

        if target is not self.registry.interface and not issubclass(variant.type, target):
            raise DecodeError(
                f"tag {tag!r} selects {variant.type.__qualname__}, "
                f"which is not a {target.__qualname__}"
            )

        logger.debug("[OneOfUnmarshaler] tag %r selects %s", tag, variant.type.__qualname__)

        payload = wrapper.payload
        if payload is None:
            return variant.new()

        try:
            return self._decode_into(variant, payload, ctx)
        except CodecError as e:
            raise UnderlyingCodecError("decode-payload", tag, e) from e

    def __repr__(self) -> str:
        return f"OneOfUnmarshaler({self.registry!r})"


# =============================================================================
# Hook Constructors
# =============================================================================


def marshal_func(registry: Registry, config: Config | None = None) -> Marshaler:
    """
    Create an encode hook for `registry.interface`.

    Values of the interface are written as a wrapper object holding the
    variant's tag and the variant's default encoding:

        {"_type": "<tag>", "_value": <default encoding>}

    Example:
        >>> registry = Registry(Stringer, {"literal": Literal, "join": Join})
        >>> options = CodecOptions(marshalers=(marshal_func(registry),))
        >>> marshal(Literal("hi"), options, target=Polymorphic[Stringer])
        b'{"_type":"literal","_value":"hi"}'
    """
    return Marshaler(registry.interface, OneOfMarshaler(registry, config))


def unmarshal_func(registry: Registry, config: Config | None = None) -> Unmarshaler:
    """
    Create a decode hook for `registry.interface`.

    Example:
        >>> options = CodecOptions(unmarshalers=(unmarshal_func(registry),))
        >>> unmarshal(b'{"_type":"literal","_value":"hi"}', Polymorphic[Stringer], options)
        Literal(root='hi')
    """
    return Unmarshaler(registry.interface, OneOfUnmarshaler(registry, config))


def json_options(
    *registries: Registry,
    config: Config | None = None,
    deterministic: bool = False,
    indent: int | None = None,
    exclude_none: bool = False,
) -> CodecOptions:
    """
    Build codec options with encode and decode hooks for every registry.

    Args:
        *registries: One registry per interface.
        config: Wire settings shared by all registries.
        deterministic: Sort object members.
        indent: Pretty-print output.
        exclude_none: Leave out None-valued fields.

    Example:
        >>> options = json_options(stringers, faults, deterministic=True)
        >>> data = marshal(value, options)
        >>> assert unmarshal(data, type(value), options) == value
    """
    hooks: list[Marshaler | Unmarshaler] = []
    for registry in registries:
        hooks.append(marshal_func(registry, config))
        hooks.append(unmarshal_func(registry, config))
    options = CodecOptions(deterministic=deterministic, indent=indent, exclude_none=exclude_none)
    return options.with_hooks(*hooks)
