"""C# attribute parser: turns `[Name(args)]` text into Attribute values."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .base import Attribute, BindingSource, SourceLocation, WarningKind, WarningSink
from .segmenter import find_matching, mask_source, split_top_level

logger = logging.getLogger("endpoint_lens.parsing.attributes")


HTTP_VERB_ATTRIBUTES: Dict[str, str] = {
    "HttpGet": "GET",
    "HttpPost": "POST",
    "HttpPut": "PUT",
    "HttpDelete": "DELETE",
    "HttpPatch": "PATCH",
    "HttpHead": "HEAD",
    "HttpOptions": "OPTIONS",
}

BINDING_ATTRIBUTES: Dict[str, BindingSource] = {
    "FromQuery": BindingSource.QUERY,
    "FromUri": BindingSource.QUERY,      # ASP.NET Web API 2
    "FromBody": BindingSource.BODY,
    "FromHeader": BindingSource.HEADER,
    "FromForm": BindingSource.FORM,
    "FromRoute": BindingSource.PATH,
}

ROUTE_ATTRIBUTES = {"Route", "RoutePrefix"}

_TARGET_SPECIFIER = re.compile(r'^(?:assembly|module|field|event|method|param|property|return|type)\s*:(?!:)\s*')
_ENTRY = re.compile(r'^(?P<name>[A-Za-z_@][\w.]*)\s*(?:<[^()]*>)?\s*(?:\((?P<args>.*)\))?\s*$', re.DOTALL)
_NAMED_ARG = re.compile(r'^(?P<key>[A-Za-z_]\w*)\s*(?:=(?!=)|:(?!:))\s*(?P<value>.+)$', re.DOTALL)
_STRING_LITERAL = re.compile(r'^(?P<prefix>[@$]*)"(?P<body>.*)"$', re.DOTALL)
_NAMEOF = re.compile(r'^nameof\s*\(\s*(?:[\w.]+\.)?(\w+)\s*\)$')


def parse_attributes(text: str, sink: Optional[WarningSink] = None,
                     location: Optional[SourceLocation] = None) -> List[Attribute]:
    """
    Parse every bracketed attribute group in `text`, in source order.

    Tolerates multi-line groups and comma-separated lists such as
    `[HttpGet("{id}"), Authorize]`. Unknown attributes are returned too;
    downstream stages simply ignore names they do not model.
    """
    attributes: List[Attribute] = []
    if not text or "[" not in text:
        return attributes

    masked = mask_source(text)
    i = 0
    while i < len(masked):
        if masked[i] != "[":
            i += 1
            continue
        close = find_matching(masked, i, "[", "]")
        if close == -1:
            _warn(sink, "Unterminated attribute list", location, " ".join(text[i:].split()[:4]))
            break
        attributes.extend(_parse_group(text[i + 1:close], sink, location))
        i = close + 1

    return attributes


def _parse_group(content: str, sink: Optional[WarningSink],
                 location: Optional[SourceLocation]) -> List[Attribute]:
    result = []
    for entry in split_top_level(content):
        entry = _TARGET_SPECIFIER.sub("", entry.strip())
        if not entry:
            continue
        match = _ENTRY.match(entry)
        if not match:
            _warn(sink, f"Malformed attribute '{entry[:40]}'", location, entry[:40])
            continue

        positional: List[str] = []
        named: List[Tuple[str, str]] = []
        args = match.group("args")
        if args and args.strip():
            for arg in split_top_level(args):
                if _STRING_LITERAL.match(arg):
                    positional.append(literal_value(arg))
                    continue
                named_match = _NAMED_ARG.match(arg)
                if named_match:
                    named.append((named_match.group("key"), literal_value(named_match.group("value"))))
                else:
                    positional.append(literal_value(arg))

        result.append(Attribute(
            name=normalize_attribute_name(match.group("name")),
            arguments=tuple(positional),
            named_arguments=tuple(named),
            raw=entry,
        ))
    return result


def normalize_attribute_name(name: str) -> str:
    """`Microsoft.AspNetCore.Mvc.HttpGetAttribute` -> `HttpGet`."""
    short = name.lstrip("@").split(".")[-1]
    if short.endswith("Attribute") and len(short) > len("Attribute"):
        short = short[: -len("Attribute")]
    return short


def literal_value(text: str) -> str:
    """Unquote a C# literal argument; non-literals are returned stripped."""
    text = text.strip()
    match = _STRING_LITERAL.match(text)
    if match:
        body = match.group("body")
        if "@" in match.group("prefix"):
            return body.replace('""', '"')
        return re.sub(r'\\(.)', lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)), body)
    nameof = _NAMEOF.match(text)
    if nameof:
        return nameof.group(1)
    return text


def http_verb_of(attributes: List[Attribute]) -> Optional[Attribute]:
    """First `Http*` attribute, if any."""
    for attribute in attributes:
        if attribute.name in HTTP_VERB_ATTRIBUTES:
            return attribute
    return None


def find_attribute(attributes: List[Attribute], *names: str) -> Optional[Attribute]:
    for attribute in attributes:
        if attribute.name in names:
            return attribute
    return None


def _warn(sink: Optional[WarningSink], message: str, location: Optional[SourceLocation],
          subject: Optional[str]):
    logger.warning(message if location is None else f"{message} (line {location.line})")
    if sink is not None:
        sink.add(WarningKind.STRUCTURAL, message, location, subject)
