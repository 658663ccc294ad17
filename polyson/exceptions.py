"""
Exception hierarchy for the polyson library.

Every error raised by polyson derives from PolysonError. The errors fall in
two groups:

Host codec errors:
    CodecError, EncodeError and DecodeError are raised by polyson.codec when
    pydantic cannot write a value to JSON or read JSON into a type. They
    carry a `loc` path pointing at the failing member.

Discriminator errors:
    ConfigurationError, UnknownVariantType, UnknownDiscriminator,
    MalformedWrapper, AmbiguousPayloadShape and UnderlyingCodecError are
    raised by the oneof pipeline. When the host codec fails while the
    pipeline encodes or decodes a variant payload or a wrapper, the
    CodecError is chained into an UnderlyingCodecError that records which
    stage failed.

All errors abort the current call. Nothing is retried and no partial output
is returned.

Errors raised on decode are not ValueError subclasses. pydantic turns a
ValueError raised inside a validator into a ValidationError entry; any other
exception leaves the validator unchanged, so callers see the polyson type
wherever the wrapper sat in the document.
"""

from __future__ import annotations

from typing import Any, Iterable


class PolysonError(Exception):
    """Base class for all polyson errors."""


# =============================================================================
# Host Codec Errors
# =============================================================================


class CodecError(PolysonError):
    """
    Raised by the host codec when encoding or decoding fails.

    Attributes:
        loc: Path of member names and array indices leading to the failing
            value, outermost first.
    """

    def __init__(self, msg: str, loc: list[str | int] | None = None) -> None:
        super().__init__(msg)
        self.loc = list(loc or [])

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.loc:
            loc_str = ".".join(str(x) for x in self.loc)
            return f"{base_msg} (at {loc_str})"
        return base_msg


class EncodeError(CodecError, TypeError):
    """Raised when a value has no JSON encoding."""


class DecodeError(CodecError):
    """Raised when JSON is invalid or does not fit the target type."""


# =============================================================================
# Discriminator Errors
# =============================================================================


class ConfigurationError(PolysonError, ValueError):
    """
    Raised when a registry, Config or wrapper is set up incorrectly.

    Checked at construction time, before any encode or decode runs.
    """


class UnknownVariantType(PolysonError, TypeError):
    """
    Raised on encode when a value's type has no registered tag and no
    fallback function is configured.
    """

    def __init__(self, value_type: type) -> None:
        self.value_type = value_type
        super().__init__(f"unknown variant type {_qualname(value_type)}")


class UnknownDiscriminator(PolysonError):
    """Raised on decode when the wrapper's tag is not in the registry."""

    def __init__(self, tag: str, known: Iterable[str] = ()) -> None:
        self.tag = tag
        self.known = sorted(known)
        msg = f"unknown discriminator value {tag!r}"
        if self.known:
            msg += f"; available: {', '.join(self.known)}"
        super().__init__(msg)


class MalformedWrapper(PolysonError):
    """
    Raised on decode when the wrapper is not a JSON object, or its
    discriminator member is missing or not a string.
    """


class AmbiguousPayloadShape(PolysonError):
    """
    Raised on decode when a wrapper holds both a nested payload member and
    inline sibling members.
    """


class UnderlyingCodecError(PolysonError):
    """
    A host codec failure surfaced while the pipeline handled a variant.

    Attributes:
        stage: Which step failed: "encode-payload", "encode-wrapper",
            "decode-wrapper" or "decode-payload".
        tag: Discriminator involved, when already known.
    """

    def __init__(self, stage: str, tag: str | None, cause: Exception) -> None:
        self.stage = stage
        self.tag = tag
        where = f" (tag {tag!r})" if tag else ""
        super().__init__(f"{stage} failed{where}: {cause}")


def _qualname(tp: Any) -> str:
    module = getattr(tp, "__module__", None)
    name = getattr(tp, "__qualname__", repr(tp))
    if module and module != "builtins":
        return f"{module}.{name}"
    return name
