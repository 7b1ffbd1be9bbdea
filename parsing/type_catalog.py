#!/usr/bin/env python3
"""
Type Catalog
============
Indexes the class/record/struct/enum declarations of one document and
resolves textual C# type names against them.

Resolution is purely textual:
- `int?` / `Nullable<int>`         -> primitive, nullable
- `Task<ActionResult<User>>`      -> User (wrappers unwrapped)
- `List<User>` / `User[]`          -> collection of User
- `Dictionary<string, User>`       -> dictionary of User
- `PageResponse<User>`             -> catalog object with `T` substituted
- anything else not in the catalog -> opaque placeholder (never an error)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .attributes import parse_attributes
from .base import TypeDescriptor, TypeProperty
from .segmenter import TypeBlock, mask_source, split_top_level

logger = logging.getLogger("endpoint_lens.parsing.type_catalog")


# C# type -> scalar category used by the synthesizer
PRIMITIVE_TYPES: Dict[str, str] = {
    "string": "string",
    "char": "char",
    "bool": "boolean",
    "boolean": "boolean",
    "int": "integer",
    "int16": "integer",
    "int32": "integer",
    "int64": "integer",
    "uint": "integer",
    "uint16": "integer",
    "uint32": "integer",
    "uint64": "integer",
    "long": "integer",
    "ulong": "integer",
    "short": "integer",
    "ushort": "integer",
    "byte": "integer",
    "sbyte": "integer",
    "float": "number",
    "single": "number",
    "double": "number",
    "decimal": "number",
    "datetime": "datetime",
    "datetimeoffset": "datetime",
    "dateonly": "date",
    "timeonly": "time",
    "timespan": "duration",
    "guid": "guid",
    "uri": "url",
}

OPAQUE_TYPES = {"object", "dynamic", "jsonelement", "jsonnode", "jsondocument", "jobject", "jtoken"}
FILE_TYPES = {"iformfile", "iformfilecollection", "stream", "filestream", "memorystream"}
WRAPPER_TYPES = {"task", "valuetask", "actionresult", "nullable"}
COLLECTION_TYPES = {
    "list", "ilist", "ienumerable", "icollection", "ireadonlylist", "ireadonlycollection",
    "hashset", "iset", "collection", "iasyncenumerable", "immutablearray", "immutablelist",
}
DICTIONARY_TYPES = {"dictionary", "idictionary", "ireadonlydictionary", "concurrentdictionary", "sorteddictionary"}
RESULT_TYPES = {"iactionresult", "actionresult", "ihttpactionresult", "httpresponsemessage", "iresult", "void"}

PROPERTY_MODIFIERS = {"public", "required", "virtual", "override", "new", "sealed", "abstract", "readonly"}
HIDDEN_MODIFIERS = {"private", "protected", "internal", "static", "const"}


class TypeKind(Enum):
    PRIMITIVE = "primitive"
    OBJECT = "object"
    ENUM = "enum"
    COLLECTION = "collection"
    DICTIONARY = "dictionary"
    FILE = "file"
    OPAQUE = "opaque"


@dataclass(frozen=True)
class ResolvedType:
    """Outcome of resolving one textual type."""
    kind: TypeKind
    name: str
    nullable: bool = False
    scalar: Optional[str] = None
    element: Optional["ResolvedType"] = None
    descriptor: Optional[TypeDescriptor] = None
    arguments: Tuple[str, ...] = ()
    known: bool = True

    @property
    def is_simple(self) -> bool:
        """Scalars, enums and collections of those bind from the query string."""
        if self.kind in (TypeKind.PRIMITIVE, TypeKind.ENUM):
            return True
        if self.kind is TypeKind.COLLECTION and self.element is not None:
            return self.element.is_simple
        return False

    @property
    def is_file(self) -> bool:
        if self.kind is TypeKind.FILE:
            return True
        return self.kind is TypeKind.COLLECTION and self.element is not None and self.element.is_file


def strip_namespace(type_name: str) -> str:
    return type_name.strip().split(".")[-1]


def is_nullable(type_text: str) -> bool:
    text = type_text.strip()
    return text.endswith("?") or bool(re.match(r'^(?:System\.)?Nullable\s*<', text))


class TypeCatalog:
    """
    Name -> TypeDescriptor index for one parse pass.

    Usage:
        catalog = TypeCatalog.from_blocks(segmenter.type_blocks())
        resolved = catalog.resolve("List<CreateUserDto>")
        props = catalog.properties_of(resolved.element)

    `fallback` is consulted for names this catalog does not declare, so a
    controller file can resolve models declared elsewhere in the project.
    """

    MAX_RESOLVE_DEPTH = 12

    def __init__(self, descriptors: Iterable[TypeDescriptor] = (),
                 fallback: Optional["TypeCatalog"] = None):
        self._types: Dict[str, TypeDescriptor] = {}
        self.fallback = fallback
        for descriptor in descriptors:
            self.add(descriptor)

    # -- building -------------------------------------------------------------

    @classmethod
    def from_blocks(cls, blocks: Iterable[TypeBlock]) -> "TypeCatalog":
        catalog = cls()
        for block in blocks:
            if block.is_controller:
                continue
            catalog.add(describe_block(block))
        logger.debug(f"Type catalog built with {len(catalog)} types")
        return catalog

    def add(self, descriptor: TypeDescriptor):
        existing = self._types.get(descriptor.name)
        if existing is not None and existing.kind == descriptor.kind:
            # partial declarations contribute to one type
            known = {p.name for p in existing.properties}
            merged = existing.properties + tuple(p for p in descriptor.properties if p.name not in known)
            descriptor = TypeDescriptor(
                name=existing.name,
                properties=merged,
                kind=existing.kind,
                base_type=existing.base_type or descriptor.base_type,
                type_parameters=existing.type_parameters or descriptor.type_parameters,
                enum_members=existing.enum_members + descriptor.enum_members,
                comment=existing.comment or descriptor.comment,
            )
        elif existing is not None:
            return
        self._types[descriptor.name] = descriptor

    # -- lookup ---------------------------------------------------------------

    def get(self, name: str) -> Optional[TypeDescriptor]:
        descriptor = self._types.get(name)
        if descriptor is None and self.fallback is not None:
            return self.fallback.get(name)
        return descriptor

    def types(self) -> Tuple[TypeDescriptor, ...]:
        return tuple(self._types.values())

    def __contains__(self, name: str) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def resolve(self, type_text: str, _depth: int = 0) -> ResolvedType:
        """Resolve a textual type against the catalog and the primitive table."""
        text = " ".join((type_text or "").split())
        nullable = text.endswith("?")
        text = text.rstrip("?").strip()
        if not text or _depth > self.MAX_RESOLVE_DEPTH:
            return ResolvedType(TypeKind.OPAQUE, text or "object", nullable, known=False)

        if text.endswith("[]"):
            inner = text[:-2].strip()
            if strip_namespace(inner).lower() == "byte":
                return ResolvedType(TypeKind.PRIMITIVE, "byte[]", nullable, scalar="binary")
            element = self.resolve(inner, _depth + 1)
            return ResolvedType(TypeKind.COLLECTION, text, nullable, element=element)

        generic = re.match(r'^(?P<base>[\w.]+)\s*<(?P<args>.*)>$', text, re.DOTALL)
        if generic:
            base = strip_namespace(generic.group("base"))
            args = tuple(split_top_level(generic.group("args"), angle=True))
            lowered = base.lower()
            if lowered in WRAPPER_TYPES and args:
                inner = self.resolve(args[0], _depth + 1)
                if lowered == "nullable":
                    return _with_nullable(inner)
                return inner
            if lowered in COLLECTION_TYPES and args:
                element = self.resolve(args[0], _depth + 1)
                return ResolvedType(TypeKind.COLLECTION, text, nullable, element=element)
            if lowered in DICTIONARY_TYPES and args:
                element = self.resolve(args[-1], _depth + 1)
                return ResolvedType(TypeKind.DICTIONARY, text, nullable, element=element, arguments=args)
            descriptor = self.get(base)
            if descriptor is not None:
                return ResolvedType(TypeKind.OBJECT, base, nullable, descriptor=descriptor, arguments=args)
            return ResolvedType(TypeKind.OPAQUE, base, nullable, arguments=args, known=False)

        base = strip_namespace(text)
        lowered = base.lower()
        if lowered in PRIMITIVE_TYPES:
            return ResolvedType(TypeKind.PRIMITIVE, base, nullable, scalar=PRIMITIVE_TYPES[lowered])
        if lowered in FILE_TYPES:
            return ResolvedType(TypeKind.FILE, base, nullable)
        if lowered in OPAQUE_TYPES or lowered in RESULT_TYPES:
            return ResolvedType(TypeKind.OPAQUE, base, nullable)

        descriptor = self.get(base)
        if descriptor is None:
            return ResolvedType(TypeKind.OPAQUE, base, nullable, known=False)
        if descriptor.is_enum:
            return ResolvedType(TypeKind.ENUM, base, nullable, descriptor=descriptor)
        return ResolvedType(TypeKind.OBJECT, base, nullable, descriptor=descriptor)

    def properties_of(self, resolved: ResolvedType) -> Tuple[TypeProperty, ...]:
        """Properties of an object type, base classes first, generics substituted."""
        if resolved.descriptor is None:
            return ()

        chain: List[Tuple[TypeDescriptor, Dict[str, str]]] = []
        seen = set()
        descriptor: Optional[TypeDescriptor] = resolved.descriptor
        arguments = resolved.arguments
        while descriptor is not None and descriptor.name not in seen:
            seen.add(descriptor.name)
            mapping = dict(zip(descriptor.type_parameters, arguments))
            chain.append((descriptor, mapping))
            if not descriptor.base_type:
                break
            base = self.resolve(_substitute(descriptor.base_type, mapping))
            descriptor, arguments = base.descriptor, base.arguments

        properties: List[TypeProperty] = []
        names = set()
        for descriptor, mapping in reversed(chain):
            for prop in descriptor.properties:
                if prop.name in names:
                    continue
                names.add(prop.name)
                if mapping:
                    prop = TypeProperty(prop.name, _substitute(prop.type, mapping), prop.comment,
                                        prop.json_name, prop.required)
                properties.append(prop)
        return tuple(properties)


# =============================================================================
# DECLARATION -> DESCRIPTOR
# =============================================================================

def describe_block(block: TypeBlock) -> TypeDescriptor:
    """Build a TypeDescriptor from a segmented declaration."""
    if block.kind == "enum":
        return TypeDescriptor(
            name=block.name,
            kind="enum",
            enum_members=_enum_members(block.body),
            comment=block.doc_comment,
        )

    properties: List[TypeProperty] = []
    if block.positional_parameters:
        properties.extend(_positional_properties(block.positional_parameters))
    for member in block.members:
        prop = _property_from_member(member)
        if prop is not None and prop.name not in {p.name for p in properties}:
            properties.append(prop)

    return TypeDescriptor(
        name=block.name,
        properties=tuple(properties),
        kind=block.kind,
        base_type=_base_class(block.base_types),
        type_parameters=block.type_parameters,
        comment=block.doc_comment,
    )


def _property_from_member(member) -> Optional[TypeProperty]:
    if member.is_method or member.terminator != "{":
        return None
    signature = member.signature
    if not signature or signature.startswith("=") or " this[" in signature:
        return None

    accessors = mask_source(member.accessor_text)
    settable = any(
        m.group(1) is None
        for m in re.finditer(r'(?:(private|protected)\s+)?\b(?:set|init)\b', accessors)
    )
    if not settable:
        return None

    words = signature.split()
    modifiers = set()
    while words and (words[0] in PROPERTY_MODIFIERS or words[0] in HIDDEN_MODIFIERS):
        modifiers.add(words.pop(0))
    if modifiers & HIDDEN_MODIFIERS and "public" not in modifiers:
        return None
    if "static" in modifiers or len(words) < 2:
        return None

    rest = " ".join(words)
    name_match = re.search(r'([A-Za-z_]\w*)$', rest)
    if not name_match:
        return None
    prop_type = re.sub(r'\s*([<>,\[\]?])\s*', r'\1', rest[:name_match.start()].strip()).replace(",", ", ")
    if not prop_type:
        return None

    json_name = None
    required = "required" in modifiers
    for attribute in parse_attributes(member.attribute_text):
        if attribute.name in ("JsonPropertyName", "JsonProperty") and attribute.primary:
            json_name = attribute.primary
        elif attribute.name == "Required":
            required = True

    return TypeProperty(
        name=name_match.group(1),
        type=prop_type,
        comment=member.doc_comment,
        json_name=json_name,
        required=required,
    )


def _positional_properties(parameters_text: str) -> List[TypeProperty]:
    properties = []
    for param in split_top_level(parameters_text, angle=True):
        clean = re.sub(r'\[[^\]]*\]', '', param).split("=")[0].strip()
        match = re.match(r'^(?P<type>.+?)\s+(?P<name>[A-Za-z_]\w*)$', clean, re.DOTALL)
        if match:
            prop_type = re.sub(r'\s*([<>,\[\]?])\s*', r'\1', match.group("type")).replace(",", ", ")
            properties.append(TypeProperty(name=match.group("name"), type=prop_type))
    return properties


def _enum_members(body: str) -> Tuple[str, ...]:
    members = []
    for entry in split_top_level(mask_source(body)):
        entry = re.sub(r'\[[^\]]*\]', '', entry).split("=")[0].strip()
        if re.match(r'^[A-Za-z_]\w*$', entry):
            members.append(entry)
    return tuple(members)


def _base_class(base_types: Tuple[str, ...]) -> Optional[str]:
    for base in base_types:
        name = strip_namespace(re.sub(r'[<(].*$', '', base, flags=re.DOTALL))
        # interfaces by naming convention
        if re.match(r'^I[A-Z]', name):
            continue
        return re.sub(r'\(.*$', '', base, flags=re.DOTALL).strip()
    return None


def _substitute(type_text: str, mapping: Dict[str, str]) -> str:
    for param, arg in mapping.items():
        type_text = re.sub(rf'\b{re.escape(param)}\b', arg, type_text)
    return type_text


def _with_nullable(resolved: ResolvedType) -> ResolvedType:
    return ResolvedType(
        kind=resolved.kind,
        name=resolved.name,
        nullable=True,
        scalar=resolved.scalar,
        element=resolved.element,
        descriptor=resolved.descriptor,
        arguments=resolved.arguments,
        known=resolved.known,
    )
