"""
Request Synthesis for Parsed Endpoints
======================================

Generates realistic sample requests (path, query, header, body and form
values) for endpoints recovered by the parsing package.

Usage:
    from parsing import parse_document
    from synthesis import RequestSynthesizer, load_environments

    result = parse_document(source_text)
    environment = load_environments("environments.yaml").get("Staging")

    synthesizer = RequestSynthesizer(result.catalog)
    request = synthesizer.synthesize(result.endpoints[0], environment)
"""

__version__ = "1.0.0"

from .environment import (
    Environment,
    EnvironmentSet,
    InvalidEnvironmentError,
    DEFAULT_ENVIRONMENTS,
    load_environments,
)
from .sample_values import SampleValueTemplates, GUID_PLACEHOLDER
from .request_generator import RequestSynthesizer, GeneratedRequest, FormField, FILE_MARKER

__all__ = [
    "Environment",
    "EnvironmentSet",
    "InvalidEnvironmentError",
    "DEFAULT_ENVIRONMENTS",
    "load_environments",
    "SampleValueTemplates",
    "GUID_PLACEHOLDER",
    "RequestSynthesizer",
    "GeneratedRequest",
    "FormField",
    "FILE_MARKER",
]
