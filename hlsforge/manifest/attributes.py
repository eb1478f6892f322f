"""
Playlist Attribute Lists

Parses and formats the KEY=VALUE attribute lists carried by playlist tags
such as #EXT-X-MEDIA and #EXT-X-STREAM-INF:
- Quoted-string aware splitting (commas inside quotes are kept)
- Escaping of backslash, double quote, newline, carriage return and tab
"""

from dataclasses import dataclass
from typing import List, Optional

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_UNESCAPES = {
    "\\": "\\",
    '"': '"',
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def escape_value(value: str) -> str:
    """Escape a value for use inside a quoted attribute."""
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def unescape_value(value: str) -> str:
    """Reverse escape_value. Unknown escape sequences are kept verbatim."""
    out: List[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _UNESCAPES:
            out.append(_UNESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


@dataclass
class Attribute:
    """One KEY=VALUE pair. `value` is unescaped when `quoted` is set."""

    name: str
    value: str
    quoted: bool = False

    def render(self) -> str:
        if self.quoted:
            return f'{self.name}="{escape_value(self.value)}"'
        return f"{self.name}={self.value}"


def parse_attribute_list(text: str) -> List[Attribute]:
    """
    Parse an attribute list into ordered attributes.

    Args:
        text: The part of a tag line after the first ':'

    Returns:
        List of Attribute in source order

    Example:
        >>> [a.name for a in parse_attribute_list('TYPE=AUDIO,NAME="a,b"')]
        ['TYPE', 'NAME']
    """
    attributes: List[Attribute] = []
    i = 0
    length = len(text)

    while i < length:
        # Skip separators and stray whitespace
        while i < length and text[i] in ", \t":
            i += 1
        if i >= length:
            break

        eq = text.find("=", i)
        if eq == -1:
            # Valueless trailing token, keep it so the line can be re-rendered
            attributes.append(Attribute(name=text[i:].strip(), value=""))
            break

        name = text[i:eq].strip()
        i = eq + 1

        if i < length and text[i] == '"':
            i += 1
            raw: List[str] = []
            while i < length:
                ch = text[i]
                if ch == "\\" and i + 1 < length:
                    raw.append(text[i:i + 2])
                    i += 2
                    continue
                if ch == '"':
                    i += 1
                    break
                raw.append(ch)
                i += 1
            attributes.append(Attribute(name=name, value=unescape_value("".join(raw)), quoted=True))
        else:
            end = text.find(",", i)
            if end == -1:
                end = length
            attributes.append(Attribute(name=name, value=text[i:end].strip()))
            i = end

    return attributes


def format_attribute_list(attributes: List[Attribute]) -> str:
    """Render attributes back to a comma separated list."""
    return ",".join(attr.render() for attr in attributes)


def get_attribute(attributes: List[Attribute], name: str) -> Optional[str]:
    """Return the value of the first attribute called `name`, if any."""
    for attr in attributes:
        if attr.name == name:
            return attr.value
    return None


def split_tag(line: str) -> tuple:
    """
    Split a tag line into (tag, attribute_text).

    Example:
        >>> split_tag("#EXT-X-VERSION:3")
        ('#EXT-X-VERSION', '3')
        >>> split_tag("#EXTM3U")
        ('#EXTM3U', '')
    """
    tag, sep, rest = line.partition(":")
    return tag, rest if sep else ""
