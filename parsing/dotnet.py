"""ASP.NET controller parser: document text -> controllers, endpoints and type catalog."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .attributes import (HTTP_VERB_ATTRIBUTES, ROUTE_ATTRIBUTES, find_attribute, http_verb_of,
                         parse_attributes)
from .base import (Attribute, ControllerDescriptor, EndpointDescriptor, ParseResult,
                   WarningKind, WarningSink, location_of)
from .classifier import classify_parameters, split_parameters
from .routes import compose_route
from .segmenter import DocumentSegmenter, MemberBlock, TypeBlock, parse_method_signature
from .type_catalog import TypeCatalog

logger = logging.getLogger("endpoint_lens.parsing.dotnet")


def document_fingerprint(text: str) -> str:
    """SHA-256 of the document text."""
    return hashlib.sha256(text.encode("utf-8", errors="surrogatepass")).hexdigest()


@dataclass(frozen=True)
class ParseContext:
    """Everything one parse call needs, created fresh per call."""
    text: str
    fingerprint: str
    blocks: Tuple[TypeBlock, ...]
    catalog: TypeCatalog
    sink: WarningSink


class DotNetControllerParser:
    """
    Recovers HTTP endpoints from ASP.NET / Web API controller source.

    The parser itself holds no state between calls; every call to `parse`
    builds its own ParseContext, so one instance may be shared freely.
    """

    def parse(self, text: str) -> ParseResult:
        context = self._create_context(text or "")
        controllers: List[ControllerDescriptor] = []
        endpoints: List[EndpointDescriptor] = []

        for block in context.blocks:
            if not block.is_controller:
                continue
            controller = self._build_controller(block, context)
            controllers.append(controller)
            for member in block.members:
                endpoint = self._build_endpoint(member, controller, context)
                if endpoint is not None:
                    endpoints.append(endpoint)

        logger.info(f"Parsed {len(controllers)} controllers, {len(endpoints)} endpoints, "
                    f"{len(context.catalog)} types")
        return ParseResult(
            controllers=tuple(controllers),
            endpoints=tuple(endpoints),
            catalog=context.catalog,
            warnings=context.sink.freeze(),
            fingerprint=context.fingerprint,
        )

    def _create_context(self, text: str) -> ParseContext:
        sink = WarningSink()
        blocks = tuple(DocumentSegmenter(text, sink).type_blocks())
        return ParseContext(
            text=text,
            fingerprint=document_fingerprint(text),
            blocks=blocks,
            catalog=TypeCatalog.from_blocks(blocks),
            sink=sink,
        )

    # =========================================================================
    # CONTROLLERS
    # =========================================================================

    def _build_controller(self, block: TypeBlock, context: ParseContext) -> ControllerDescriptor:
        location = location_of(context.text, block.source_range.start)
        attributes = parse_attributes(block.attribute_text, context.sink, location)
        route = find_attribute(attributes, *ROUTE_ATTRIBUTES)
        return ControllerDescriptor(
            name=block.name,
            base_route=(route.primary or "") if route else "",
            namespace=block.namespace,
            source_range=block.source_range,
            attributes=tuple(attributes),
            auth_required=_auth_state(attributes, False),
        )

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    def _build_endpoint(self, member: MemberBlock, controller: ControllerDescriptor,
                        context: ParseContext) -> Optional[EndpointDescriptor]:
        if not member.is_method or not member.attribute_text:
            return None

        location = location_of(context.text, member.start)
        attributes = parse_attributes(member.attribute_text, context.sink, location)
        verb = http_verb_of(attributes)
        if verb is None or find_attribute(attributes, "NonAction"):
            return None

        signature = parse_method_signature(member.signature)
        if signature is None:
            message = f"Could not read the signature of an {verb.name} action"
            logger.warning(f"{message} (line {location.line})")
            context.sink.add(WarningKind.STRUCTURAL, message, location, member.signature[:60])
            return None

        method_route = verb.primary
        if method_route is None:
            route = find_attribute(attributes, *ROUTE_ATTRIBUTES)
            method_route = route.primary if route else None

        route = compose_route(controller.name, controller.base_route, method_route, signature.name)
        subject = f"{controller.name}.{signature.name}"
        classified = classify_parameters(
            split_parameters(signature.parameters_text),
            http_method=verb_method(verb),
            path_tokens=route.tokens,
            catalog=context.catalog,
            sink=context.sink,
            location=location,
            subject=subject,
        )

        return EndpointDescriptor(
            http_method=verb_method(verb),
            route_template=route.template,
            parameters=classified.parameters,
            return_type=signature.return_type,
            method_name=signature.name,
            controller_name=controller.name,
            source_location=location,
            summary=member.doc_comment,
            auth_required=_auth_state(attributes, controller.auth_required),
            path_tokens=route.tokens,
            warnings=classified.warnings,
        )


def verb_method(attribute: Attribute) -> str:
    return HTTP_VERB_ATTRIBUTES[attribute.name]


def _auth_state(attributes: List[Attribute], inherited: bool) -> bool:
    if find_attribute(attributes, "AllowAnonymous"):
        return False
    if find_attribute(attributes, "Authorize"):
        return True
    return inherited


def parse_document(text: str) -> ParseResult:
    """Parse one document with a throwaway parser."""
    return DotNetControllerParser().parse(text)
