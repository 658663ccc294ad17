"""
polyson - discriminator-tagged JSON for abstract types.

A field typed as an abstract class (an interface) can hold any of several
concrete variants. Plain JSON loses which one it was. polyson writes each such
value inside a small wrapper object that records a tag for the variant, and
reads the tag back to pick the right class on decode:

    {"_type": "circle", "_value": {"r": 1.5}}

pydantic does the encoding and decoding; polyson plugs into it through the
Polymorphic field marker, so variants keep their aliases, excluded fields,
serializers and extras.

Features:

- Registries of (tag, class) pairs per interface, checked on construction
- Nested, inline and custom-keyed wire formats, or your own wrapper
- Empty payloads (null, "", {}, []) are left out of the wrapper
- Values nested anywhere (model fields, lists, dicts, other variants)
- A fallback tag for unregistered types on encode
- Stateless hooks: one set of options can be shared across threads

Basic Usage:
    >>> from polyson import Polymorphic, Registry, json_options, marshal, unmarshal
    >>>
    >>> class Drawing(BaseModel):
    ...     shapes: list[Polymorphic[Shape]]
    >>>
    >>> shapes = Registry(Shape, {"circle": Circle, "square": Square})
    >>> options = json_options(shapes)
    >>>
    >>> data = marshal(Drawing(shapes=[Circle(r=1.5), Square(side=2)]), options)
    >>> drawing = unmarshal(data, Drawing, options)

Straight through pydantic:
    >>> drawing.model_dump_json(context=options.context())
    >>> Drawing.model_validate_json(data, context=options.context())

Inline objects:
    >>> from polyson import Config
    >>> options = json_options(shapes, config=Config(inline_objects=True))
    >>> marshal(Circle(r=1.5), options, target=Polymorphic[Shape])
    b'{"_type":"circle","r":1.5}'

Custom keys:
    >>> config = Config(discriminator_key="$type", value_key="$value")

Custom wrappers:
    >>> # Any callable (tag, payload) -> object with `tag` and `payload`
    >>> # that pydantic can encode and decode.
    >>> config = Config(wrap=my_wrap)

Using the hooks directly:
    >>> from polyson import CodecOptions, marshal_func, unmarshal_func
    >>> options = CodecOptions(
    ...     deterministic=True,
    ...     marshalers=(marshal_func(shapes),),
    ...     unmarshalers=(unmarshal_func(shapes),),
    ... )

Debug logging:
    >>> import logging
    >>> logging.getLogger("polyson").setLevel(logging.DEBUG)
"""

from polyson.codec import (
    SKIP,
    CodecOptions,
    HookContext,
    Marshaler,
    Polymorphic,
    Unmarshaler,
    adapter_for,
    marshal,
    unmarshal,
)
from polyson.config import DEFAULT_CONFIG, Config
from polyson.exceptions import (
    AmbiguousPayloadShape,
    CodecError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    MalformedWrapper,
    PolysonError,
    UnderlyingCodecError,
    UnknownDiscriminator,
    UnknownVariantType,
)
from polyson.oneof import (
    OneOfMarshaler,
    OneOfUnmarshaler,
    json_options,
    marshal_func,
    unmarshal_func,
)
from polyson.registry import Registry, Variant
from polyson.wrappers import (
    DEFAULT_DISCRIMINATOR_KEY,
    DEFAULT_VALUE_KEY,
    CustomValueWrapper,
    KeyedWrappedValue,
    WrapFunc,
    WrappedValue,
    is_empty,
    wrap_inline,
    wrap_nested,
)

__all__ = [
    # Core API
    "marshal_func",
    "unmarshal_func",
    "json_options",
    "Registry",
    "Variant",
    "Config",
    "DEFAULT_CONFIG",
    # Wrappers
    "WrappedValue",
    "WrapFunc",
    "KeyedWrappedValue",
    "is_empty",
    "CustomValueWrapper",
    "wrap_nested",
    "wrap_inline",
    "DEFAULT_DISCRIMINATOR_KEY",
    "DEFAULT_VALUE_KEY",
    # Hooks
    "OneOfMarshaler",
    "OneOfUnmarshaler",
    # Host codec
    "marshal",
    "unmarshal",
    "adapter_for",
    "Polymorphic",
    "CodecOptions",
    "HookContext",
    "Marshaler",
    "Unmarshaler",
    "SKIP",
    # Errors
    "PolysonError",
    "CodecError",
    "EncodeError",
    "DecodeError",
    "ConfigurationError",
    "UnknownVariantType",
    "UnknownDiscriminator",
    "MalformedWrapper",
    "AmbiguousPayloadShape",
    "UnderlyingCodecError",
]
