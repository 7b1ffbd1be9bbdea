"""Route composition: controller base route + action template -> normalized route."""
from __future__ import annotations

import logging
import re
from typing import List, NamedTuple, Optional, Tuple

logger = logging.getLogger("endpoint_lens.parsing.routes")


CONTROLLER_TOKEN = re.compile(r'\[controller\]', re.IGNORECASE)
ACTION_TOKEN = re.compile(r'\[action\]', re.IGNORECASE)

# {id}, {id:int}, {id:int:min(1)}, {id?}, {id=5}, {*path}, {**path}
ROUTE_PARAMETER = re.compile(r'\{\*{0,2}(?P<name>[A-Za-z_]\w*)(?P<rest>[^{}]*)\}')


class RouteTemplate(NamedTuple):
    """A normalized route plus the path tokens it requires."""
    template: str
    tokens: Tuple[str, ...]


def controller_short_name(controller_name: str) -> str:
    if controller_name.endswith("Controller") and len(controller_name) > len("Controller"):
        return controller_name[: -len("Controller")]
    return controller_name


def resolve_base_route(base_route: str, controller_name: str) -> str:
    """Substitute the `[controller]` placeholder with the lower-cased short name."""
    if not base_route:
        return ""
    short = controller_short_name(controller_name).lower()
    return CONTROLLER_TOKEN.sub(short, base_route)


def combine_routes(base_route: str, method_route: Optional[str]) -> str:
    """Combine class-level base route with method-level route.

    A method template starting with `~/` or `/` replaces the base entirely;
    anything else is appended with exactly one separator.
    """
    base = base_route.strip("/") if base_route else ""

    if method_route:
        if method_route.startswith("~/"):
            return "/" + method_route[2:].lstrip("/")
        if method_route.startswith("/"):
            return method_route

    method = method_route.strip("/") if method_route else ""

    if base and method:
        return f"/{base}/{method}"
    elif base:
        return f"/{base}"
    elif method:
        return f"/{method}"
    else:
        return "/"


def normalize_route(route: str) -> RouteTemplate:
    """Strip constraints from `{token:...}` segments and tidy separators."""
    tokens: List[str] = []

    def _reduce(match: re.Match) -> str:
        name = match.group("name")
        if name.lower() not in (t.lower() for t in tokens):
            tokens.append(name)
        return "{" + name + "}"

    template = ROUTE_PARAMETER.sub(_reduce, route.strip())
    template = re.sub(r'/{2,}', "/", "/" + template.lstrip("/"))
    if len(template) > 1:
        template = template.rstrip("/")
    return RouteTemplate(template, tuple(tokens))


def compose_route(controller_name: str, base_route: str, method_route: Optional[str],
                  method_name: str) -> RouteTemplate:
    """
    Produce the final route for one action.

    A controller without any route attribute falls back to `[controller]` and,
    when the action has no template either, to `[controller]/[action]`
    (conventional routing).
    """
    conventional = not base_route
    base = resolve_base_route(base_route or "[controller]", controller_name)

    if method_route is None and conventional:
        method_route = "[action]"

    if method_route:
        method_route = ACTION_TOKEN.sub(method_name.lower(), method_route)
        method_route = CONTROLLER_TOKEN.sub(controller_short_name(controller_name).lower(), method_route)
    base = ACTION_TOKEN.sub(method_name.lower(), base)

    route = normalize_route(combine_routes(base, method_route))
    logger.debug(f"Composed route {route.template} for {controller_name}.{method_name}")
    return route
