"""Property list serialisation and human-readable rendering."""

from __future__ import annotations

import datetime
import math
import plistlib
from collections.abc import Mapping
from typing import Any


def plist_to_xml_bytes(p: Mapping[str, Any]) -> bytes:
    """Serialise a dictionary as an XML property list, keeping key order."""
    return plistlib.dumps(dict(p), fmt=plistlib.FMT_XML, sort_keys=False)


def pretty_print_plist(p: Any) -> str:
    """Render a property-list value as indented text."""
    return _render(p, 0)


def pretty_print_dictionary(d: Mapping[str, Any]) -> str:
    """Render a dictionary with each entry on its own line."""
    items = ",\n".join(f"{k}: {_render(v, 2)}" for k, v in d.items())
    return f"{{\n{items}\n}}"


def _format_real(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _format_date(value: datetime.datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _render(p: Any, indentation: int) -> str:
    indent = " " * indentation
    inner = " " * (indentation + 2)
    if isinstance(p, Mapping):
        items = ",\n".join(
            f"{inner}{k}: {_render(v, indentation + 2)}" for k, v in p.items()
        )
        return f"{{\n{items}\n{indent}}}"
    if isinstance(p, (list, tuple)):
        items = ",\n".join(f"{inner}{_render(v, indentation + 2)}" for v in p)
        return f"[\n{items}\n{indent}]"
    if isinstance(p, bool):
        return "true" if p else "false"
    if isinstance(p, (bytes, bytearray)):
        preview = " ".join(f"{b:02X}" for b in p[:20])
        if len(p) > 20:
            return f"Data({preview}... Len: {len(p)})"
        return f"Data({preview} Len: {len(p)})"
    if isinstance(p, datetime.datetime):
        return f"Date({_format_date(p)})"
    if isinstance(p, float):
        return _format_real(p)
    if isinstance(p, int):
        return str(p)
    if isinstance(p, str):
        return f'"{p}"'
    if isinstance(p, plistlib.UID):
        return "Uid(?)"
    return "Unknown"