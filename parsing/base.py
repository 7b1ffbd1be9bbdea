"""
Shared data models for the controller parser and request synthesizer.

All parsing stages and the synthesizer import from this module. Descriptors
are frozen dataclasses: a parse pass creates them once and every consumer
treats them as read-only values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class BindingSource(Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"
    FORM = "form"


class WarningKind(Enum):
    STRUCTURAL = "StructuralParseWarning"
    ROUTE_MISMATCH = "RouteMismatchWarning"
    TYPE_RESOLUTION = "TypeResolutionMiss"
    SYNTHESIS_AMBIGUITY = "SynthesisAmbiguity"


HTTP_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class SourceLocation(NamedTuple):
    """1-based line and column inside the parsed document."""
    line: int
    column: int


class SourceRange(NamedTuple):
    """Character offsets [start, end) inside the parsed document."""
    start: int
    end: int


def location_of(text: str, offset: int) -> SourceLocation:
    line = text.count("\n", 0, offset) + 1
    column = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return SourceLocation(line, column)


@dataclass(frozen=True)
class ParseWarning:
    """A non-fatal problem found while parsing or synthesizing."""
    kind: WarningKind
    message: str
    location: Optional[SourceLocation] = None
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "line": self.location.line if self.location else None,
            "column": self.location.column if self.location else None,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class Attribute:
    """One `Name(args)` entry from a bracketed attribute list."""
    name: str
    arguments: Tuple[str, ...] = ()
    named_arguments: Tuple[Tuple[str, str], ...] = ()
    raw: str = ""

    @property
    def primary(self) -> Optional[str]:
        """First positional argument (route template or header name)."""
        return self.arguments[0] if self.arguments else None

    def named(self, key: str) -> Optional[str]:
        for name, value in self.named_arguments:
            if name.lower() == key.lower():
                return value
        return None


@dataclass(frozen=True)
class ControllerDescriptor:
    """A recognized controller class."""
    name: str
    base_route: str
    namespace: Optional[str]
    source_range: SourceRange
    attributes: Tuple[Attribute, ...] = ()
    auth_required: bool = False

    @property
    def short_name(self) -> str:
        if self.name.endswith("Controller") and len(self.name) > len("Controller"):
            return self.name[: -len("Controller")]
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "short_name": self.short_name,
            "base_route": self.base_route,
            "namespace": self.namespace,
            "source_range": list(self.source_range),
            "auth_required": self.auth_required,
        }


@dataclass(frozen=True)
class ParameterDescriptor:
    """A bound action parameter."""
    name: str
    declared_type: str
    binding_source: BindingSource
    required: bool
    default_value: Optional[str] = None
    is_collection: bool = False
    is_file: bool = False
    variable_name: str = ""
    explicit_source: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.declared_type,
            "source": self.binding_source.value,
            "required": self.required,
            "default": self.default_value,
            "is_collection": self.is_collection,
            "is_file": self.is_file,
        }


@dataclass(frozen=True)
class EndpointDescriptor:
    """One HTTP endpoint recovered from a controller action."""
    http_method: str
    route_template: str
    parameters: Tuple[ParameterDescriptor, ...]
    return_type: str
    method_name: str
    controller_name: str
    source_location: SourceLocation
    summary: Optional[str] = None
    auth_required: bool = False
    path_tokens: Tuple[str, ...] = ()
    warnings: Tuple[ParseWarning, ...] = ()

    def parameters_from(self, source: BindingSource) -> Tuple[ParameterDescriptor, ...]:
        return tuple(p for p in self.parameters if p.binding_source is source)

    @property
    def has_route_mismatch(self) -> bool:
        return any(w.kind is WarningKind.ROUTE_MISMATCH for w in self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.http_method,
            "route": self.route_template,
            "parameters": [p.to_dict() for p in self.parameters],
            "return_type": self.return_type,
            "method_name": self.method_name,
            "controller": self.controller_name,
            "line": self.source_location.line,
            "column": self.source_location.column,
            "summary": self.summary,
            "auth_required": self.auth_required,
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class TypeProperty:
    """A settable property of a catalog type."""
    name: str
    type: str
    comment: Optional[str] = None
    json_name: Optional[str] = None
    required: bool = False

    @property
    def wire_name(self) -> str:
        return self.json_name or self.name


@dataclass(frozen=True)
class TypeDescriptor:
    """A class, record, struct or enum declared in the document."""
    name: str
    properties: Tuple[TypeProperty, ...] = ()
    kind: str = "class"
    base_type: Optional[str] = None
    type_parameters: Tuple[str, ...] = ()
    enum_members: Tuple[str, ...] = ()
    comment: Optional[str] = None

    @property
    def is_enum(self) -> bool:
        return self.kind == "enum"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "kind": self.kind,
            "properties": [
                {"name": p.name, "type": p.type, "comment": p.comment}
                for p in self.properties
            ],
        }
        if self.base_type:
            data["base_type"] = self.base_type
        if self.enum_members:
            data["enum_members"] = list(self.enum_members)
        return data


@dataclass(frozen=True)
class ParseResult:
    """Everything one parse pass produced for a document."""
    controllers: Tuple[ControllerDescriptor, ...]
    endpoints: Tuple[EndpointDescriptor, ...]
    catalog: Any  # TypeCatalog; typed loosely to keep this module import-free
    warnings: Tuple[ParseWarning, ...] = ()
    fingerprint: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "controllers": [c.to_dict() for c in self.controllers],
            "endpoints": [e.to_dict() for e in self.endpoints],
            "types": [t.to_dict() for t in self.catalog.types()],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class WarningSink:
    """Per-call collector threaded through the parsing stages."""
    items: list = field(default_factory=list)

    def add(self, kind: WarningKind, message: str,
            location: Optional[SourceLocation] = None,
            subject: Optional[str] = None) -> ParseWarning:
        warning = ParseWarning(kind=kind, message=message, location=location, subject=subject)
        self.items.append(warning)
        return warning

    def freeze(self) -> Tuple[ParseWarning, ...]:
        return tuple(self.items)
