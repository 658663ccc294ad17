"""polyson logger.

The library never installs handlers; applications opt in with
``logging.getLogger("polyson").setLevel(logging.DEBUG)``.
"""

import logging

logger = logging.getLogger("polyson")


def describe(value: object, limit: int = 80) -> str:
    """Short repr of a value for log records."""
    text = repr(value)
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text
