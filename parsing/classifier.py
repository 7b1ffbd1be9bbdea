"""Parameter classifier: decides the binding source of every action parameter."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .attributes import BINDING_ATTRIBUTES, find_attribute, parse_attributes
from .base import (BindingSource, ParameterDescriptor, ParseWarning, SourceLocation,
                   WarningKind, WarningSink)
from .segmenter import find_matching, mask_source, split_top_level
from .type_catalog import TypeCatalog, TypeKind, is_nullable, strip_namespace

logger = logging.getLogger("endpoint_lens.parsing.classifier")


# Bump when a row changes; results cached under an older version are stale.
RULE_TABLE_VERSION = 1

# verb -> (simple type source, complex type source)
BINDING_RULES: Dict[str, Tuple[BindingSource, BindingSource]] = {
    "GET": (BindingSource.QUERY, BindingSource.QUERY),
    "DELETE": (BindingSource.QUERY, BindingSource.QUERY),
    "HEAD": (BindingSource.QUERY, BindingSource.QUERY),
    "OPTIONS": (BindingSource.QUERY, BindingSource.QUERY),
    "POST": (BindingSource.QUERY, BindingSource.BODY),
    "PUT": (BindingSource.QUERY, BindingSource.BODY),
    "PATCH": (BindingSource.QUERY, BindingSource.BODY),
}

# Supplied by the framework, never by the request
SERVICE_TYPES = {
    "cancellationtoken", "httpcontext", "httprequest", "httpresponse",
    "claimsprincipal", "iserviceprovider",
}

PARAMETER_MODIFIERS = {"this", "params", "ref", "out", "in", "scoped"}


@dataclass(frozen=True)
class RawParameter:
    """One entry of a method parameter list, split but not yet classified."""
    attribute_text: str
    declared_type: str
    variable_name: str
    default_value: Optional[str] = None


@dataclass(frozen=True)
class ClassifiedParameters:
    parameters: Tuple[ParameterDescriptor, ...]
    warnings: Tuple[ParseWarning, ...]


def split_parameters(parameters_text: str) -> List[RawParameter]:
    """Split `[FromQuery] string q, int page = 1` into RawParameters."""
    result: List[RawParameter] = []
    for entry in split_top_level(parameters_text, angle=True):
        raw = _parse_parameter(entry)
        if raw is not None:
            result.append(raw)
    return result


def _parse_parameter(entry: str) -> Optional[RawParameter]:
    masked = mask_source(entry)
    pos = len(masked) - len(masked.lstrip())
    attr_start = pos
    while pos < len(masked) and masked[pos] == "[":
        close = find_matching(masked, pos, "[", "]")
        if close == -1:
            return None
        pos = close + 1
        while pos < len(masked) and masked[pos].isspace():
            pos += 1
    attribute_text = entry[attr_start:pos].strip()

    declaration, default = entry[pos:], None
    eq = re.search(r'(?<![=!<>])=(?![=>])', masked[pos:])
    if eq:
        declaration = entry[pos:pos + eq.start()]
        default = entry[pos + eq.end():].strip() or None

    words = declaration.split()
    while words and words[0] in PARAMETER_MODIFIERS:
        words.pop(0)
    rest = " ".join(words)
    name_match = re.search(r'@?([A-Za-z_]\w*)$', rest)
    if not name_match:
        return None
    declared_type = rest[:name_match.start()].strip()
    if not declared_type:
        return None
    declared_type = re.sub(r'\s*([<>,\[\]?])\s*', r'\1', declared_type).replace(",", ", ")

    return RawParameter(
        attribute_text=attribute_text,
        declared_type=declared_type,
        variable_name=name_match.group(1),
        default_value=default,
    )


def classify_parameters(raw_parameters: Sequence[RawParameter], http_method: str,
                        path_tokens: Sequence[str], catalog: TypeCatalog,
                        sink: Optional[WarningSink] = None,
                        location: Optional[SourceLocation] = None,
                        subject: Optional[str] = None) -> ClassifiedParameters:
    """
    Assign a binding source to each parameter.

    Order of precedence:
      1. an explicit From* attribute
      2. file-like types -> Form
      3. a name matching a still unclaimed route token -> Path
      4. BINDING_RULES by verb and simple/complex type

    Route tokens left without a Path parameter, FromRoute parameters without
    a token and tokens claimed twice are reported as route mismatches.
    """
    local = WarningSink()
    simple_source, complex_source = BINDING_RULES.get(http_method.upper(), BINDING_RULES["POST"])
    tokens = {t.lower(): t for t in path_tokens}
    claimed: Dict[str, str] = {}
    parameters: List[ParameterDescriptor] = []

    for raw in raw_parameters:
        attributes = parse_attributes(raw.attribute_text, sink, location)
        if find_attribute(attributes, "FromServices") or \
                strip_namespace(raw.declared_type.rstrip("?")).lower() in SERVICE_TYPES:
            logger.debug(f"Skipping injected parameter {raw.variable_name} ({raw.declared_type})")
            continue

        resolved = catalog.resolve(raw.declared_type)
        binding = next((a for a in attributes if a.name in BINDING_ATTRIBUTES), None)
        name = (binding.named("Name") if binding else None) or raw.variable_name
        key = name.lower()

        if binding is not None:
            source = BINDING_ATTRIBUTES[binding.name]
        elif resolved.is_file:
            source = BindingSource.FORM
        elif key in tokens and key not in claimed:
            source = BindingSource.PATH
        elif resolved.is_simple:
            source = simple_source
        else:
            source = complex_source

        if source is BindingSource.PATH:
            if key not in tokens:
                local.add(WarningKind.ROUTE_MISMATCH,
                          f"Parameter '{name}' binds from the route but the route has no {{{name}}} token",
                          location, subject)
            elif key in claimed:
                local.add(WarningKind.ROUTE_MISMATCH,
                          f"Route token '{{{tokens[key]}}}' is bound by both '{claimed[key]}' and '{name}'",
                          location, subject)
            else:
                claimed[key] = name

        parameters.append(ParameterDescriptor(
            name=name,
            declared_type=raw.declared_type,
            binding_source=source,
            required=raw.default_value is None and not is_nullable(raw.declared_type),
            default_value=raw.default_value,
            is_collection=resolved.kind is TypeKind.COLLECTION,
            is_file=resolved.is_file,
            variable_name=raw.variable_name,
            explicit_source=binding is not None,
        ))

    for key, token in tokens.items():
        if key not in claimed:
            local.add(WarningKind.ROUTE_MISMATCH,
                      f"Route token '{{{token}}}' has no matching path parameter",
                      location, subject)

    for warning in local.items:
        logger.warning(f"{warning.message} ({subject})")
        if sink is not None:
            sink.items.append(warning)

    return ClassifiedParameters(tuple(parameters), local.freeze())
