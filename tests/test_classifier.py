import pytest

from parsing.base import HTTP_METHODS, BindingSource, WarningKind, WarningSink
from parsing.classifier import (
    BINDING_RULES,
    RULE_TABLE_VERSION,
    classify_parameters,
    split_parameters,
)
from parsing.type_catalog import TypeCatalog


def classify(text, method="GET", tokens=(), sink=None):
    return classify_parameters(split_parameters(text), method, tokens, TypeCatalog(), sink)


def sources(classified):
    return [(p.name, p.binding_source) for p in classified.parameters]


class TestSplitParameters:
    def test_attributes_defaults_and_generics(self):
        raw = split_parameters(
            '[FromQuery(Name = "q")] string query, [FromQuery] int page = 1, Dictionary<string, int> map'
        )
        assert len(raw) == 3
        assert raw[0].attribute_text == '[FromQuery(Name = "q")]'
        assert raw[0].variable_name == "query"
        assert raw[1].default_value == "1"
        assert raw[2].declared_type == "Dictionary<string, int>"

    def test_comma_inside_default_string(self):
        raw = split_parameters('string sep = ",", int n')
        assert [r.variable_name for r in raw] == ["sep", "n"]
        assert raw[0].default_value == '","'

    def test_modifiers_dropped(self):
        raw = split_parameters("params string[] names")
        assert raw[0].declared_type == "string[]"

    def test_empty(self):
        assert split_parameters("") == []


class TestClassify:
    def test_get_rules(self):
        result = classify("int id, string name, Filter filter", "GET", ("id",))
        assert sources(result) == [
            ("id", BindingSource.PATH),
            ("name", BindingSource.QUERY),
            ("filter", BindingSource.QUERY),
        ]
        assert result.warnings == ()

    def test_post_complex_goes_to_body(self):
        result = classify("int id, Filter filter", "POST", ("id",))
        assert sources(result) == [("id", BindingSource.PATH), ("filter", BindingSource.BODY)]

    def test_explicit_attribute_dominates(self):
        result = classify("[FromQuery] int id", "GET", ("id",))
        assert sources(result) == [("id", BindingSource.QUERY)]
        assert result.parameters[0].explicit_source
        assert [w.kind for w in result.warnings] == [WarningKind.ROUTE_MISMATCH]

    def test_from_route_without_token(self):
        result = classify("[FromRoute] int other", "GET", ())
        assert sources(result) == [("other", BindingSource.PATH)]
        assert "other" in result.warnings[0].message

    def test_token_claimed_twice(self):
        result = classify('[FromRoute(Name="id")] int a, [FromRoute(Name = "id")] int b', "GET", ("id",))
        assert sources(result) == [("id", BindingSource.PATH), ("id", BindingSource.PATH)]
        assert any("bound by both" in w.message for w in result.warnings)

    def test_files_bind_from_form(self):
        result = classify("IFormFile upload", "POST")
        assert sources(result) == [("upload", BindingSource.FORM)]
        assert result.parameters[0].is_file

        explicit = classify("[FromBody] IFormFile upload", "POST")
        assert sources(explicit) == [("upload", BindingSource.BODY)]
        assert explicit.parameters[0].is_file

    def test_file_named_like_a_token_stays_in_form(self):
        result = classify("IFormFile file", "POST", ("file",))
        assert sources(result) == [("file", BindingSource.FORM)]
        assert [w.kind for w in result.warnings] == [WarningKind.ROUTE_MISMATCH]
        assert "{file}" in result.warnings[0].message

    def test_injected_parameters_omitted(self):
        result = classify("CancellationToken ct, [FromServices] ILogger log, HttpContext? ctx")
        assert result.parameters == ()

    def test_required_flag(self):
        result = classify("int? a, Nullable<int> b, int c = 5, int d")
        assert [p.required for p in result.parameters] == [False, False, False, True]

    def test_name_override(self):
        result = classify('[FromHeader(Name = "X-Trace")] string trace')
        param = result.parameters[0]
        assert (param.name, param.variable_name, param.binding_source) == ("X-Trace", "trace", BindingSource.HEADER)

    def test_tokens_match_case_insensitively(self):
        result = classify("int id", "GET", ("Id",))
        assert sources(result) == [("id", BindingSource.PATH)]
        assert result.warnings == ()

    def test_unmatched_token_reported(self):
        sink = WarningSink()
        result = classify("int userId", "GET", ("userId", "orderId"), sink)
        assert len(result.warnings) == 1
        assert "orderId" in result.warnings[0].message
        assert sink.items == list(result.warnings)

    def test_collections_flagged(self):
        result = classify("List<int> ids")
        assert result.parameters[0].is_collection
        assert result.parameters[0].binding_source is BindingSource.QUERY


class TestRuleTable:
    @pytest.mark.parametrize("method", HTTP_METHODS)
    def test_every_method_has_a_row(self, method):
        simple, complex_source = BINDING_RULES[method]
        assert simple is BindingSource.QUERY
        assert complex_source in (BindingSource.QUERY, BindingSource.BODY)

    def test_version_is_an_int(self):
        assert isinstance(RULE_TABLE_VERSION, int)
