from datetime import datetime, timezone
from pathlib import Path

import pytest

from parsing import parse_document
from synthesis import RequestSynthesizer, SampleValueTemplates

FIXTURES = Path(__file__).parent / "fixtures"

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def endpoint_named(result, method_name):
    matches = [e for e in result.endpoints if e.method_name == method_name]
    assert len(matches) == 1, f"expected one endpoint named {method_name}"
    return matches[0]


@pytest.fixture
def store_source():
    return load_fixture("store_controllers.cs")


@pytest.fixture
def store_result(store_source):
    return parse_document(store_source)


@pytest.fixture
def health_result():
    return parse_document(load_fixture("health_controller.cs"))


@pytest.fixture
def legacy_result():
    return parse_document(load_fixture("legacy_controllers.cs"))


@pytest.fixture
def broken_result():
    return parse_document(load_fixture("broken_attribute.cs"))


@pytest.fixture
def fixed_templates():
    return SampleValueTemplates(clock=lambda: FIXED_NOW)


@pytest.fixture
def store_synthesizer(store_result, fixed_templates):
    return RequestSynthesizer(store_result.catalog, templates=fixed_templates)
