"""
Configuration for the oneof pipeline.

Config bundles everything that shapes the wire form of one interface: key
names, the inline toggle, the wrap strategy and the fallback used for
unregistered types. It is immutable and validated on construction, so a bad
setup fails before anything is encoded or decoded.

Example:
    >>> config = Config(inline_objects=True)
    >>> config = Config(discriminator_key="kind", value_key="data")
    >>> config = Config(replace_missing_type=lambda v: f"MISSING_{type(v).__name__}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from polyson.exceptions import ConfigurationError
from polyson.wrappers import (
    DEFAULT_DISCRIMINATOR_KEY,
    DEFAULT_VALUE_KEY,
    CustomValueWrapper,
    WrapFunc,
    wrap_inline,
    wrap_nested,
)


@dataclass(frozen=True)
class Config:
    """
    Settings shared by the marshal and unmarshal hooks of one interface.

    Attributes:
        discriminator_key: Key of the tag member. Defaults to "_type".
        value_key: Key of the nested payload member. Defaults to "_value".
        inline_objects: Merge object payloads into the wrapper object.
        replace_missing_type: Called with a value whose type is not
            registered; its result is used as the tag. The tag does not have
            to be registered, so the output may not decode. Without it,
            encoding an unregistered type raises UnknownVariantType.
        wrap: A custom wrap strategy. When set, it takes precedence over the
            three settings above.

    Raises:
        ConfigurationError: If a key is empty, both keys are equal, or `wrap`
            or `replace_missing_type` is not callable.
    """

    discriminator_key: str = DEFAULT_DISCRIMINATOR_KEY
    value_key: str = DEFAULT_VALUE_KEY
    inline_objects: bool = False
    replace_missing_type: Callable[[Any], str] | None = None
    wrap: WrapFunc | None = None

    def __post_init__(self):
        if self.wrap is not None and not callable(self.wrap):
            raise ConfigurationError(f"wrap must be callable, got {self.wrap!r}")
        if self.replace_missing_type is not None and not callable(self.replace_missing_type):
            raise ConfigurationError(
                f"replace_missing_type must be callable, got {self.replace_missing_type!r}"
            )
        # Validates the keys
        self.value_wrapper()

    def value_wrapper(self) -> CustomValueWrapper:
        """The keyed wrapper described by this config's key settings."""
        return CustomValueWrapper(
            discriminator_key=self.discriminator_key,
            nested_value_key=self.value_key,
            inline_objects=self.inline_objects,
        )

    def wrap_func(self) -> WrapFunc:
        """Resolve the wrap strategy."""
        if self.wrap is not None:
            return self.wrap
        if self.discriminator_key == DEFAULT_DISCRIMINATOR_KEY and self.value_key == DEFAULT_VALUE_KEY:
            return wrap_inline if self.inline_objects else wrap_nested
        return self.value_wrapper().wrap


DEFAULT_CONFIG = Config()
