import json

from parsing import BindingSource, DotNetControllerParser, WarningKind, parse_document
from parsing.dotnet import document_fingerprint
from tests.conftest import endpoint_named, load_fixture


def shape(endpoint):
    return [(p.name, p.binding_source) for p in endpoint.parameters]


class TestStoreControllers:
    def test_controllers(self, store_result):
        users, products = store_result.controllers
        assert users.name == "UsersController"
        assert users.short_name == "Users"
        assert users.base_route == "api/[controller]"
        assert users.namespace == "Store.Api.Controllers"
        assert products.base_route == "api/v1/products"

    def test_only_http_actions_are_endpoints(self, store_result):
        names = [e.method_name for e in store_result.endpoints]
        assert names == [
            "GetUser", "CreateUser", "Search", "UpdateUser", "DeleteUser", "UploadAvatar",
            "ByStatus", "GetOrder", "List", "Health", "Patch", "SaveTree", "Import",
        ]

    def test_routes_are_normalized(self, store_result):
        for endpoint in store_result.endpoints:
            assert endpoint.route_template.startswith("/")
            assert "[controller]" not in endpoint.route_template
            assert ":" not in endpoint.route_template

    def test_get_by_id(self, store_source, store_result):
        endpoint = endpoint_named(store_result, "GetUser")
        assert endpoint.http_method == "GET"
        assert endpoint.route_template == "/api/users/{id}"
        assert endpoint.return_type == "ActionResult<UserDto>"
        assert endpoint.controller_name == "UsersController"
        assert endpoint.summary == "Returns one user by id."
        assert endpoint.path_tokens == ("id",)

        (param,) = endpoint.parameters
        assert (param.name, param.declared_type, param.binding_source, param.required) == \
            ("id", "int", BindingSource.PATH, True)

        line = store_source.splitlines().index('        [HttpGet("{id}")]') + 1
        assert endpoint.source_location == (line, 9)

    def test_post_with_body(self, store_result):
        endpoint = endpoint_named(store_result, "CreateUser")
        assert (endpoint.http_method, endpoint.route_template) == ("POST", "/api/users")
        assert shape(endpoint) == [("userDto", BindingSource.BODY)]
        assert endpoint.parameters[0].declared_type == "CreateUserDto"
        assert endpoint.return_type == "Task<ActionResult<UserDto>>"

    def test_query_parameters_with_default(self, store_result):
        endpoint = endpoint_named(store_result, "Search")
        assert endpoint.route_template == "/api/users/search"
        assert shape(endpoint) == [("query", BindingSource.QUERY), ("page", BindingSource.QUERY)]
        page = endpoint.parameters[1]
        assert page.default_value == "1"
        assert not page.required

    def test_multi_line_parameters_and_injected_token(self, store_result):
        endpoint = endpoint_named(store_result, "UpdateUser")
        assert (endpoint.http_method, endpoint.route_template) == ("PUT", "/api/users/{id}")
        assert shape(endpoint) == [("id", BindingSource.PATH), ("dto", BindingSource.BODY)]

    def test_named_route_and_header(self, store_result):
        endpoint = endpoint_named(store_result, "DeleteUser")
        assert shape(endpoint) == [("id", BindingSource.PATH), ("X-Request-Id", BindingSource.HEADER)]
        assert endpoint.parameters[0].variable_name == "userId"
        assert endpoint.parameters[0].explicit_source
        assert endpoint.auth_required
        assert endpoint.warnings == ()

    def test_form_upload(self, store_result):
        endpoint = endpoint_named(store_result, "UploadAvatar")
        assert shape(endpoint) == [
            ("id", BindingSource.PATH),
            ("file", BindingSource.FORM),
            ("caption", BindingSource.FORM),
        ]
        assert endpoint.parameters[1].is_file

    def test_enum_and_nullable_query(self, store_result):
        endpoint = endpoint_named(store_result, "ByStatus")
        assert shape(endpoint) == [("status", BindingSource.QUERY), ("isActive", BindingSource.QUERY)]
        assert not endpoint.parameters[1].required

    def test_route_mismatch_reported(self, store_result):
        endpoint = endpoint_named(store_result, "GetOrder")
        assert endpoint.has_route_mismatch
        assert any("orderId" in w.message for w in endpoint.warnings)
        assert any(w.kind is WarningKind.ROUTE_MISMATCH for w in store_result.warnings)

    def test_products(self, store_result):
        listing = endpoint_named(store_result, "List")
        assert (listing.http_method, listing.route_template) == ("GET", "/api/v1/products")
        assert shape(listing) == [("filter", BindingSource.QUERY)]

        assert endpoint_named(store_result, "Health").route_template == "/health"

        patch = endpoint_named(store_result, "Patch")
        assert patch.http_method == "PATCH"
        assert patch.auth_required
        assert shape(patch) == [
            ("id", BindingSource.PATH),
            ("changes", BindingSource.BODY),
            ("paging", BindingSource.BODY),
        ]

        assert shape(endpoint_named(store_result, "Import")) == [("payload", BindingSource.BODY)]

    def test_no_structural_warnings(self, store_result):
        assert not [w for w in store_result.warnings if w.kind is WarningKind.STRUCTURAL]


class TestHealthController:
    def test_file_scoped_namespace_and_auth(self, health_result):
        (controller,) = health_result.controllers
        assert controller.namespace == "WebApiDemo.Controllers"
        assert controller.auth_required

        assert endpoint_named(health_result, "FindHealthNewsPage").auth_required
        assert not endpoint_named(health_result, "GetHealthNews").auth_required
        assert endpoint_named(health_result, "CreateHealthNews").auth_required

    def test_summaries_and_return_types(self, health_result):
        page = endpoint_named(health_result, "FindHealthNewsPage")
        assert page.summary == "Paged list of health news articles."
        assert page.return_type == "Task<PageResponse<HealthNewsSmallVM>>"
        assert page.route_template == "/api/health/page"
        assert endpoint_named(health_result, "GetHealthNews").summary == "Article details."
        assert endpoint_named(health_result, "CreateHealthNews").summary == "Creates an article"

    def test_expression_bodied_non_action_ignored(self, health_result):
        assert len(health_result.endpoints) == 4
        assert "Describe" not in [e.method_name for e in health_result.endpoints]


class TestLegacyControllers:
    def test_route_prefix(self, legacy_result):
        item = endpoint_named(legacy_result, "GetItem")
        assert item.route_template == "/api/catalog/items/{itemId}"
        assert shape(item) == [("itemId", BindingSource.PATH)]

        find = endpoint_named(legacy_result, "Find")
        assert find.route_template == "/api/catalog/items"
        assert shape(find) == [("name", BindingSource.QUERY), ("limit", BindingSource.QUERY)]
        assert find.parameters[1].default_value == "null"

        add = endpoint_named(legacy_result, "Add")
        assert (add.http_method, add.route_template) == ("POST", "/api/catalog/items")
        assert shape(add) == [("item", BindingSource.BODY)]

    def test_conventional_routing(self, legacy_result):
        summary = endpoint_named(legacy_result, "Summary")
        assert summary.route_template == "/reports/summary"
        assert shape(summary) == [("year", BindingSource.QUERY)]

        export = endpoint_named(legacy_result, "Export")
        assert export.route_template == "/reports/export/{id}"
        assert shape(export) == [("id", BindingSource.PATH), ("options", BindingSource.BODY)]
        assert not export.parameters[0].required

    def test_non_actions_skipped(self, legacy_result):
        names = [e.method_name for e in legacy_result.endpoints]
        assert names == ["GetItem", "Find", "Add", "Summary", "Export"]


class TestRobustness:
    def test_broken_attribute_tolerated(self, broken_result):
        assert [e.method_name for e in broken_result.endpoints] == ["Get", "Delete"]
        structural = [w for w in broken_result.warnings if w.kind is WarningKind.STRUCTURAL]
        assert len(structural) >= 2
        assert "OrderDto" in broken_result.catalog
        assert "Dangling" not in broken_result.catalog

    def test_empty_document(self):
        result = parse_document("")
        assert result.endpoints == ()
        assert result.warnings == ()
        assert result.fingerprint == document_fingerprint("")

    def test_interfaces_ignored(self):
        result = parse_document("public interface IUserService { Task<UserDto> Find(int id); }")
        assert result.controllers == ()
        assert len(result.catalog) == 0

    def test_parsing_is_idempotent(self, store_source):
        parser = DotNetControllerParser()
        first, second = parser.parse(store_source), parser.parse(store_source)
        assert first.endpoints == second.endpoints
        assert first.to_dict() == second.to_dict()

    def test_result_is_json_serializable(self, store_result):
        data = json.loads(json.dumps(store_result.to_dict()))
        assert len(data["endpoints"]) == 13
        assert data["endpoints"][0]["route"] == "/api/users/{id}"
        assert data["fingerprint"] == store_result.fingerprint


class TestPreprocessorDirectives:
    def test_actions_inside_regions_are_found(self):
        result = parse_document(load_fixture("region_controller.cs"))
        assert [e.method_name for e in result.endpoints] == ["GetAccount", "Create"]
        assert not [w for w in result.warnings if w.kind is WarningKind.STRUCTURAL]

        get = endpoint_named(result, "GetAccount")
        assert get.route_template == "/api/accounts/{id}"
        assert get.summary == "Returns one account."

        create = endpoint_named(result, "Create")
        assert create.http_method == "POST"
        assert shape(create) == [("account", BindingSource.BODY)]

    def test_model_members_inside_regions(self):
        result = parse_document(load_fixture("region_controller.cs"))
        assert [p.name for p in result.catalog.get("AccountDto").properties] == ["Email"]
