"""
services/vdf.py – Minimal reader for Valve's KeyValues text format.

Handles the subset Steam writes to libraryfolders.vdf, appmanifest_*.acf and
localconfig.vdf: quoted or bare tokens, nested ``{ }`` blocks, ``//`` line
comments and backslash escapes inside quotes.  Duplicate keys keep the last
value.  Malformed input raises ValueError.
"""

import re
from typing import Any, Dict, Iterator, Optional

_TOKEN: re.Pattern = re.compile(
    r"""
    \s*(?:
        //[^\n]*                     # comment
      | (?P<open>\{)
      | (?P<close>\})
      | "(?P<quoted>(?:\\.|[^"\\])*)"
      | (?P<bare>[^\s{}"]+)
    )
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


def _tokens(text: str) -> Iterator[Any]:
    pos = 0
    length = len(text)
    while pos < length:
        match = _TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            if text[pos:].strip():
                raise ValueError(f"Unexpected VDF content at offset {pos}")
            return
        pos = match.end()
        if match.group("open"):
            yield "{"
        elif match.group("close"):
            yield "}"
        elif match.group("quoted") is not None:
            yield ("str", _unescape(match.group("quoted")))
        elif match.group("bare") is not None:
            yield ("str", match.group("bare"))


def loads(text: str) -> Dict[str, Any]:
    """Parse KeyValues *text* into nested dicts of strings."""
    root: Dict[str, Any] = {}
    stack = [root]
    key: Optional[str] = None

    for token in _tokens(text):
        if token == "{":
            if key is None:
                raise ValueError("VDF block opened without a key")
            child: Dict[str, Any] = {}
            stack[-1][key] = child
            stack.append(child)
            key = None
        elif token == "}":
            if key is not None or len(stack) == 1:
                raise ValueError("Unbalanced '}' in VDF")
            stack.pop()
        else:
            value = token[1]
            if key is None:
                key = value
            else:
                stack[-1][key] = value
                key = None

    if len(stack) != 1 or key is not None:
        raise ValueError("Unexpected end of VDF input")
    return root


def find_key(node: Dict[str, Any], name: str) -> Optional[Any]:
    """Case-insensitive child lookup; Steam is inconsistent about casing."""
    if name in node:
        return node[name]
    lowered = name.lower()
    for key, value in node.items():
        if key.lower() == lowered:
            return value
    return None
