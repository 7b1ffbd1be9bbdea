"""
Parsing package for the controller endpoint analyzer.

Exports the document parser, the type catalog and the shared data models.
"""

from .base import (
    BindingSource,
    HTTP_METHODS,
    WarningKind,
    SourceLocation,
    SourceRange,
    ParseWarning,
    Attribute,
    ControllerDescriptor,
    ParameterDescriptor,
    EndpointDescriptor,
    TypeProperty,
    TypeDescriptor,
    ParseResult,
)

from .type_catalog import TypeCatalog, TypeKind, ResolvedType
from .classifier import BINDING_RULES, RULE_TABLE_VERSION
from .dotnet import DotNetControllerParser, ParseContext, parse_document, document_fingerprint

__all__ = [
    # Data models
    "BindingSource",
    "HTTP_METHODS",
    "WarningKind",
    "SourceLocation",
    "SourceRange",
    "ParseWarning",
    "Attribute",
    "ControllerDescriptor",
    "ParameterDescriptor",
    "EndpointDescriptor",
    "TypeProperty",
    "TypeDescriptor",
    "ParseResult",
    # Type resolution
    "TypeCatalog",
    "TypeKind",
    "ResolvedType",
    # Binding rules
    "BINDING_RULES",
    "RULE_TABLE_VERSION",
    # Parser
    "DotNetControllerParser",
    "ParseContext",
    "parse_document",
    "document_fingerprint",
]
