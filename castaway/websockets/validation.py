"""Lightweight websocket payload validation utilities.

Minimal schema-like checking with clear, consistent error responses; not a
general JSON Schema implementation. Returns (ok, value_or_error) tuples and
leaves it to the caller to emit an error event.

Schema mini-language (Python dict):
{
  'field_name': ('type', required: bool, extras: dict)
}
Supported types: 'str', 'int', 'dict'
Extras: max_len, min_len, allow_empty (str)

Example:
 ok, data_or_err = validate({'raw': 'go n'}, CMD_INPUT)

If invalid: (False, {'field': 'raw', 'error': 'too long', 'code': 'max_len'})
If valid: (True, normalized_data)
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

PRIMITIVES = {
    "str": str,
    "int": int,
    "dict": dict,
}


def _fail(field: str, message: str, code: str) -> Tuple[bool, Dict[str, Any]]:
    return False, {"field": field, "error": message, "code": code}


def validate(payload: Any, schema: Dict[str, tuple]) -> Tuple[bool, Dict[str, Any]]:
    if not isinstance(payload, dict):
        return _fail("__root__", "payload must be an object", "type")
    out = {}
    for name, spec in schema.items():
        type_name, required = spec[0], spec[1]
        extras = spec[2] if len(spec) > 2 else {}
        if type_name not in PRIMITIVES:
            return _fail("__schema__", f"unsupported type {type_name}", "schema")
        if name not in payload:
            if required:
                return _fail(name, "missing required field", "required")
            continue
        value = payload[name]
        py_type = PRIMITIVES[type_name]
        # bool is an int subclass; never accept it for numeric fields
        if not isinstance(value, py_type) or (type_name == "int" and isinstance(value, bool)):
            return _fail(name, f"expected {type_name}", "type")
        if type_name == "str":
            s = value if extras.get("allow_empty") else value.strip()
            if not extras.get("allow_empty") and len(s) == 0:
                return _fail(name, "must not be empty", "empty")
            if "max_len" in extras and len(value) > extras["max_len"]:
                return _fail(name, "too long", "max_len")
            if "min_len" in extras and len(s) < extras["min_len"]:
                return _fail(name, "too short", "min_len")
            out[name] = s
        else:
            out[name] = value
    return True, out


# Predefined schemas used by handlers
CMD_INPUT = {
    "raw": ("str", True, {"allow_empty": True, "max_len": 1000}),
}
