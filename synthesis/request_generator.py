#!/usr/bin/env python3
"""
Request Generator
=================
Builds a sample HTTP request for one endpoint.

- Path tokens are filled (URL-encoded) from the Path parameters
- Query, header and form parameters always receive a value
- Body parameters are walked through the type catalog, one element per
  collection, cycles cut with None
- An optional Environment supplies base URL, base path and default headers

The only exception raised is InvalidEnvironmentError for a malformed
environment; every other problem becomes a warning on the request.
"""

import json
import logging
import random
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

from parsing.base import (BindingSource, EndpointDescriptor, ParameterDescriptor, ParseWarning,
                          WarningKind, WarningSink)
from parsing.type_catalog import ResolvedType, TypeCatalog, TypeKind

from .environment import Environment
from .sample_values import SampleValueTemplates

logger = logging.getLogger("endpoint_lens.synthesis.request_generator")


FILE_MARKER = "[FILE]"
JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "multipart/form-data"

_TEMPLATE_TOKEN = re.compile(r'\{([^{}]+)\}')


@dataclass(frozen=True)
class FormField:
    name: str
    value: str
    is_file: bool = False


@dataclass(frozen=True)
class GeneratedRequest:
    """A fully populated sample request; mappings are read-only."""
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    form_fields: Tuple[FormField, ...] = ()
    path_params: Mapping[str, str] = field(default_factory=dict)
    warnings: Tuple[ParseWarning, ...] = ()

    def __post_init__(self):
        for name in ("headers", "query", "path_params"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "query": dict(self.query),
            "path_params": dict(self.path_params),
            "body": self.body,
            "form_fields": [
                {"name": f.name, "value": f.value, "is_file": f.is_file} for f in self.form_fields
            ],
            "warnings": [w.to_dict() for w in self.warnings],
        }


class RequestSynthesizer:
    """
    Turns an EndpointDescriptor into a GeneratedRequest.

    Usage:
        synthesizer = RequestSynthesizer(result.catalog)
        request = synthesizer.synthesize(endpoint, environment)
    """

    MAX_DEPTH = 8

    def __init__(self, catalog: TypeCatalog, rng: Optional[random.Random] = None,
                 templates: Optional[SampleValueTemplates] = None):
        self.catalog = catalog
        self.templates = templates or SampleValueTemplates(rng)

    def synthesize(self, endpoint: EndpointDescriptor,
                   environment: Optional[Environment] = None) -> GeneratedRequest:
        sink = WarningSink()
        subject = f"{endpoint.controller_name}.{endpoint.method_name}"

        path_params = self._path_values(endpoint, sink, subject)
        route = _TEMPLATE_TOKEN.sub(
            lambda m: quote(path_params.get(m.group(1).lower(), m.group(1)), safe=""),
            endpoint.route_template,
        )

        query: Dict[str, str] = {}
        for param in endpoint.parameters_from(BindingSource.QUERY):
            resolved = self.catalog.resolve(param.declared_type)
            for key, value, _ in self._flatten_parameter(param, sink, subject):
                query.setdefault(key, value)

        headers: Dict[str, str] = {"Accept": JSON_CONTENT_TYPE}
        if environment is not None:
            headers.update(environment.validate().headers)
        for param in endpoint.parameters_from(BindingSource.HEADER):
            resolved = self.catalog.resolve(param.declared_type)
            headers[param.name] = self._text_value(resolved, param.name, (), sink, subject)

        form_fields: List[FormField] = []
        for param in endpoint.parameters_from(BindingSource.FORM):
            if param.is_file:
                form_fields.append(FormField(param.name, FILE_MARKER, True))
                continue
            for key, value, is_file in self._flatten_parameter(param, sink, subject):
                form_fields.append(FormField(key, value, is_file))

        body_params = endpoint.parameters_from(BindingSource.BODY)
        body = self._body(body_params, sink, subject)
        if form_fields:
            headers["Content-Type"] = FORM_CONTENT_TYPE
        elif body_params:
            headers["Content-Type"] = JSON_CONTENT_TYPE

        url = environment.compose_url(route) if environment is not None else route
        if query:
            url = f"{url}?{urlencode(list(query.items()))}"

        for warning in sink.items:
            logger.debug(f"{warning.kind.value}: {warning.message} ({subject})")

        return GeneratedRequest(
            method=endpoint.http_method,
            url=url,
            headers=headers,
            query=query,
            body=body,
            form_fields=tuple(form_fields),
            path_params={p: path_params[p.lower()] for p in endpoint.path_tokens},
            warnings=sink.freeze(),
        )

    # =========================================================================
    # PARAMETER SOURCES
    # =========================================================================

    def _path_values(self, endpoint: EndpointDescriptor, sink: WarningSink,
                     subject: str) -> Dict[str, str]:
        """Lower-cased token name -> text value for every token in the route."""
        by_name = {p.name.lower(): p for p in endpoint.parameters_from(BindingSource.PATH)}
        tokens = list(endpoint.path_tokens)
        for match in _TEMPLATE_TOKEN.finditer(endpoint.route_template):
            if match.group(1).lower() not in (t.lower() for t in tokens):
                tokens.append(match.group(1))

        values: Dict[str, str] = {}
        for token in tokens:
            param = by_name.get(token.lower())
            if param is not None:
                resolved = self.catalog.resolve(param.declared_type)
                values[token.lower()] = self._text_value(resolved, param.name, (), sink, subject)
            else:
                values[token.lower()] = _to_text(self.templates.value_for(token, "string")[0])
                sink.add(WarningKind.ROUTE_MISMATCH,
                         f"Route token '{{{token}}}' has no path parameter; filled from its name",
                         subject=subject)
        return values

    def _body(self, params: Tuple[ParameterDescriptor, ...], sink: WarningSink, subject: str) -> Any:
        if not params:
            return None
        if len(params) == 1:
            param = params[0]
            return self._value(self.catalog.resolve(param.declared_type), param.name, (), sink, subject)
        return {
            p.name: self._value(self.catalog.resolve(p.declared_type), p.name, (), sink, subject)
            for p in params
        }

    def _flatten_parameter(self, param: ParameterDescriptor, sink: WarningSink,
                           subject: str) -> List[Tuple[str, str, bool]]:
        """Query or form entries for one parameter; a model with nothing to bind still sends its name."""
        resolved = self.catalog.resolve(param.declared_type)
        fields = self._flatten(resolved, param.name, (), sink, subject)
        if not fields:
            sink.add(WarningKind.SYNTHESIS_AMBIGUITY,
                     f"'{param.name}' ({param.declared_type}) has no bindable properties", subject=subject)
            fields = [(param.name, _to_text(self.templates.value_for(param.name, "string")[0]), False)]
        return fields

    # =========================================================================
    # VALUE GENERATION
    # =========================================================================

    def _value(self, resolved: ResolvedType, name: str, stack: Tuple[str, ...],
               sink: WarningSink, subject: str) -> Any:
        """JSON-like sample value for one resolved type."""
        kind = resolved.kind

        if kind is TypeKind.PRIMITIVE:
            value, matched = self.templates.value_for(name, resolved.scalar)
            if not matched:
                sink.add(WarningKind.SYNTHESIS_AMBIGUITY,
                         f"No sample rule for '{name}' of type {resolved.name}", subject=subject)
            return value

        if kind is TypeKind.ENUM:
            value = self.templates.enum_value(resolved.descriptor.enum_members)
            if value is None:
                sink.add(WarningKind.SYNTHESIS_AMBIGUITY,
                         f"Enum {resolved.name} declares no members", subject=subject)
                return self.templates.value_for(name, "string")[0]
            return value

        if kind is TypeKind.FILE:
            return FILE_MARKER

        if kind is TypeKind.COLLECTION:
            element = resolved.element
            if element is None:
                return []
            item = self._value(element, name, stack, sink, subject)
            return [] if item is None and element.kind is TypeKind.OBJECT else [item]

        if kind is TypeKind.DICTIONARY:
            if resolved.element is None:
                return {}
            return {"key": self._value(resolved.element, name, stack, sink, subject)}

        if kind is TypeKind.OBJECT:
            type_name = resolved.descriptor.name
            if type_name in stack or len(stack) >= self.MAX_DEPTH:
                return None
            inner = stack + (type_name,)
            return {
                prop.wire_name: self._value(self.catalog.resolve(prop.type), prop.name, inner, sink, subject)
                for prop in self.catalog.properties_of(resolved)
            }

        self._note_unresolved(resolved, name, sink, subject)
        return {}

    def _flatten(self, resolved: ResolvedType, key: str, stack: Tuple[str, ...],
                 sink: WarningSink, subject: str) -> List[Tuple[str, str, bool]]:
        """(key, text value, is_file) triples for query strings and form fields."""
        if resolved.is_file:
            return [(key, FILE_MARKER, True)]

        target = resolved
        if resolved.kind is TypeKind.COLLECTION and resolved.element is not None:
            target = resolved.element

        if target.kind is TypeKind.OBJECT:
            type_name = target.descriptor.name
            if type_name in stack or len(stack) >= self.MAX_DEPTH:
                return []
            fields: List[Tuple[str, str, bool]] = []
            # top-level model properties bind by their own name
            for prop in self.catalog.properties_of(target):
                child_key = f"{key}.{prop.name}" if stack else prop.name
                fields.extend(self._flatten(self.catalog.resolve(prop.type), child_key,
                                            stack + (type_name,), sink, subject))
            return fields

        return [(key, self._text_value(target, key.split(".")[-1], stack, sink, subject), False)]

    def _text_value(self, resolved: ResolvedType, name: str, stack: Tuple[str, ...],
                    sink: WarningSink, subject: str) -> str:
        """Single text value for a path, header, query or form slot."""
        if resolved.kind is TypeKind.OPAQUE:
            self._note_unresolved(resolved, name, sink, subject)
            return _to_text(self.templates.value_for(name, "string")[0])
        return _to_text(self._value(resolved, name, stack, sink, subject))

    def _note_unresolved(self, resolved: ResolvedType, name: str, sink: WarningSink, subject: str):
        if not resolved.known:
            sink.add(WarningKind.TYPE_RESOLUTION,
                     f"Type '{resolved.name}' of '{name}' is not declared in the analyzed sources",
                     subject=subject)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
