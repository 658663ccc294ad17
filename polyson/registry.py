"""
Variant registry for the polyson library.

A Registry maps discriminator tags to the concrete variants of one abstract
interface. It answers two questions:

- Encode: which tag belongs to this value? (`tag_for`)
- Decode: which variant does this tag select? (`variant_for`)

Registries are built once, checked at construction time and read-only
afterwards, so one registry can be shared by any number of pipelines and
threads.

Example:
    >>> registry = Registry(Shape, {"circle": Circle, "square": Square})
    >>> registry.tag_for(Circle(r=1))
    'circle'
    >>> registry.variant_for("square").type
    <class 'Square'>
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from polyson.exceptions import ConfigurationError, UnknownDiscriminator
from polyson.log import logger


@dataclass(frozen=True)
class Variant:
    """
    One concrete implementation of an interface, and its tag.

    Attributes:
        tag: The discriminator written on the wire.
        type: The concrete class. Values are matched against it exactly.
        factory: Zero-argument callable producing a fresh zero value. A
            wrapper without payload decodes to it, and an object payload is
            laid over its members, so members the payload leaves out keep
            the factory's values. Defaults to `type` itself, whose zero
            value is the class defaults.
    """

    tag: str
    type: type
    factory: Callable[[], Any] | None = None

    def new(self) -> Any:
        """Create a fresh zero value of this variant."""
        factory = self.factory if self.factory is not None else self.type
        return factory()


class Registry(Mapping[str, Variant]):
    """
    Immutable tag → Variant mapping for one interface.

    Args:
        interface: The abstract type whose values this registry handles. Used
            to bind hooks in the host codec.
        variants: Either a mapping of tag to class (or Variant), or an
            iterable of Variant.

    Raises:
        ConfigurationError: If a tag is empty or repeated, if an entry is not
            a class, if a class is registered under more than one tag, or if
            a class is not a subclass of `interface`.
    """

    def __init__(
        self,
        interface: type,
        variants: Mapping[str, type | Variant] | Iterable[Variant],
    ):
        if not isinstance(interface, type):
            raise ConfigurationError(f"interface must be a class, got {interface!r}")
        self.interface = interface
        self._by_tag: dict[str, Variant] = {}
        self._by_type: dict[type, str] = {}

        if isinstance(variants, Mapping):
            entries = [_as_variant(tag, entry) for tag, entry in variants.items()]
        else:
            entries = list(variants)

        for variant in entries:
            self._add(variant)

        logger.debug(
            "[Registry] %s: %d variants (%s)",
            interface.__qualname__,
            len(self._by_tag),
            ", ".join(self._by_tag),
        )

    def _add(self, variant: Variant) -> None:
        if not isinstance(variant, Variant):
            raise ConfigurationError(f"expected Variant, got {variant!r}")
        if not isinstance(variant.tag, str) or not variant.tag:
            raise ConfigurationError(f"tag must be a non-empty string, got {variant.tag!r}")
        if not isinstance(variant.type, type):
            raise ConfigurationError(f"variant {variant.tag!r} must be a class, got {variant.type!r}")
        if variant.tag in self._by_tag:
            raise ConfigurationError(f"tag {variant.tag!r} is registered twice")
        if variant.type in self._by_type:
            raise ConfigurationError(
                f"{variant.type.__qualname__} is registered under both "
                f"{self._by_type[variant.type]!r} and {variant.tag!r}"
            )
        if not _is_subclass(variant.type, self.interface):
            raise ConfigurationError(
                f"{variant.type.__qualname__} does not implement {self.interface.__qualname__}"
            )
        self._by_tag[variant.tag] = variant
        self._by_type[variant.type] = variant.tag

    # =========================================================================
    # Resolution
    # =========================================================================

    def tag_for(self, value: Any) -> str | None:
        """
        Find the tag registered for the value's concrete type.

        Subclasses of a registered class do not match; each concrete class
        needs its own entry.

        Returns:
            The tag, or None when the type is not registered.
        """
        return self._by_type.get(type(value))

    def variant_for(self, tag: str) -> Variant:
        """
        Find the variant selected by a tag.

        Raises:
            UnknownDiscriminator: If the tag is not registered.
        """
        try:
            return self._by_tag[tag]
        except KeyError:
            raise UnknownDiscriminator(tag, self._by_tag) from None

    # =========================================================================
    # Mapping interface
    # =========================================================================

    def __getitem__(self, tag: str) -> Variant:
        return self._by_tag[tag]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_tag)

    def __len__(self) -> int:
        return len(self._by_tag)

    def __repr__(self) -> str:
        entries = ", ".join(f"{tag!r}: {v.type.__qualname__}" for tag, v in self._by_tag.items())
        return f"Registry({self.interface.__qualname__}, {{{entries}}})"


def _as_variant(tag: str, entry: type | Variant) -> Variant:
    if isinstance(entry, Variant):
        if entry.tag != tag:
            raise ConfigurationError(f"variant tagged {entry.tag!r} registered under key {tag!r}")
        return entry
    return Variant(tag=tag, type=entry)


def _is_subclass(cls: type, interface: type) -> bool:
    # issubclass raises for protocols with data members; those cannot be
    # checked statically, so accept them.
    try:
        return issubclass(cls, interface)
    except TypeError:
        return True
