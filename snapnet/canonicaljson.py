"""RFC 8785 JSON Canonicalization Scheme (JCS) wrapper.

Delegates serialization to the ``jcs`` library (a Python implementation of
RFC 8785). Object keys are sorted at every depth, array order is kept and
no insignificant whitespace is emitted, so the same logical value always
yields the same bytes. These bytes are the exact preimage for signing and
verification.
"""

import math
from typing import Any

import jcs as _jcs

from .errors import CanonicalizationError


def _check_json_value(value: Any, path: str) -> None:
    # Walk by type, not by schema: messages carry arbitrary nested data parts.
    if value is None or isinstance(value, (bool, int, str)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CanonicalizationError(f"Non-finite number at {path}")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Object key at {path} must be a string, got {type(key).__name__}"
                )
            _check_json_value(item, f"{path}.{key}")
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
        return
    raise CanonicalizationError(
        f"Unsupported type at {path}: {type(value).__name__}"
    )


def canonicalize(obj: Any) -> bytes:
    """Canonicalize a JSON-compatible value to UTF-8 bytes per RFC 8785.

    Args:
        obj: Any JSON value: object, array, string, number, bool or None.

    Returns:
        Canonical JSON encoded as UTF-8 bytes.

    Raises:
        CanonicalizationError: If the input cannot be canonicalized.
    """
    _check_json_value(obj, "$")
    try:
        return _jcs.canonicalize(obj)
    except Exception as e:
        raise CanonicalizationError(f"Canonicalization failed: {e}") from e


def strip_signature(obj: dict) -> dict:
    """Return a shallow copy of *obj* without its top-level ``signature``."""
    if not isinstance(obj, dict):
        raise CanonicalizationError("Input must be a JSON object (dict)")
    return {k: v for k, v in obj.items() if k != "signature"}
