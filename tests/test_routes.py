from parsing.routes import (
    RouteTemplate,
    combine_routes,
    compose_route,
    controller_short_name,
    normalize_route,
    resolve_base_route,
)


class TestBaseRoute:
    def test_controller_placeholder(self):
        assert resolve_base_route("api/[controller]", "UsersController") == "api/users"
        assert resolve_base_route("api/[Controller]", "UsersController") == "api/users"

    def test_short_name(self):
        assert controller_short_name("UsersController") == "Users"
        assert controller_short_name("Controller") == "Controller"


class TestCombineRoutes:
    def test_single_separator(self):
        assert combine_routes("api/users/", "/{id}".lstrip("/")) == "/api/users/{id}"
        assert combine_routes("api/users", "{id}") == "/api/users/{id}"

    def test_absolute_templates_replace_base(self):
        assert combine_routes("api/users", "/absolute") == "/absolute"
        assert combine_routes("api/users", "~/health") == "/health"

    def test_missing_parts(self):
        assert combine_routes("api/users", None) == "/api/users"
        assert combine_routes("", "items") == "/items"
        assert combine_routes("", None) == "/"


class TestNormalizeRoute:
    def test_constraints_stripped(self):
        route = normalize_route("/api/users/{id:int:min(1)}/{slug?}/{*path}")
        assert route.template == "/api/users/{id}/{slug}/{path}"
        assert route.tokens == ("id", "slug", "path")

    def test_separators_tidied(self):
        assert normalize_route("api//users/").template == "/api/users"
        assert normalize_route("/").template == "/"


class TestComposeRoute:
    def test_attribute_route(self):
        route = compose_route("UsersController", "api/[controller]", "{id}", "GetUser")
        assert route == RouteTemplate("/api/users/{id}", ("id",))

    def test_conventional_route(self):
        route = compose_route("ReportsController", "", None, "Summary")
        assert route.template == "/reports/summary"

    def test_action_placeholder_in_base(self):
        route = compose_route("ReportsController", "api/[controller]/[action]", None, "Export")
        assert route.template == "/api/reports/export"

    def test_action_placeholder_in_method(self):
        route = compose_route("ReportsController", "", "[action]/{id?}", "Export")
        assert route == RouteTemplate("/reports/export/{id}", ("id",))
