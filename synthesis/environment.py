"""Target environments: base URL, base path and default headers for generated requests."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse

import yaml

logger = logging.getLogger("endpoint_lens.synthesis.environment")


class InvalidEnvironmentError(ValueError):
    """Caller-supplied environment data is malformed."""


@dataclass(frozen=True)
class Environment:
    """One named target: `url = base_url + base_path + route`."""
    name: str
    base_url: str
    base_path: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers or {})))

    def validate(self) -> "Environment":
        if not self.name or not str(self.name).strip():
            raise InvalidEnvironmentError("Environment name must not be empty")
        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidEnvironmentError(
                f"Environment '{self.name}' has an invalid base URL: {self.base_url!r}"
            )
        if parsed.query or parsed.fragment:
            raise InvalidEnvironmentError(
                f"Environment '{self.name}' base URL must not carry a query or fragment"
            )
        if self.base_path and not self.base_path.startswith("/"):
            raise InvalidEnvironmentError(
                f"Environment '{self.name}' base path must start with '/': {self.base_path!r}"
            )
        for key, value in self.headers.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise InvalidEnvironmentError(
                    f"Environment '{self.name}' header {key!r} must map a string to a string"
                )
        return self

    def compose_url(self, route: str) -> str:
        """Concatenate base URL, base path and route with single separators."""
        self.validate()
        base = self.base_url.rstrip("/") + self.base_path.rstrip("/")
        return base + "/" + route.lstrip("/") if route.strip("/") else base or "/"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Environment":
        if not isinstance(data, Mapping):
            raise InvalidEnvironmentError(f"Environment entry must be a mapping, got {type(data).__name__}")
        headers = data.get("headers") or {}
        if not isinstance(headers, Mapping):
            raise InvalidEnvironmentError("Environment headers must be a mapping")
        return cls(
            name=str(data.get("name", "")),
            base_url=str(data.get("base_url", data.get("baseUrl", ""))),
            base_path=str(data.get("base_path", data.get("basePath", "")) or ""),
            headers={str(k): str(v) for k, v in headers.items()},
        ).validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "base_url": self.base_url,
            "base_path": self.base_path,
            "headers": dict(self.headers),
        }


DEFAULT_ENVIRONMENTS: Tuple[Environment, ...] = (
    Environment(name="Development", base_url="http://localhost:5000"),
)


@dataclass(frozen=True)
class EnvironmentSet:
    """All configured environments plus the name of the current one."""
    environments: Tuple[Environment, ...] = DEFAULT_ENVIRONMENTS
    current: str = "Development"

    def get(self, name: Optional[str] = None) -> Environment:
        wanted = name or self.current
        for env in self.environments:
            if env.name.lower() == wanted.lower():
                return env
        known = ", ".join(e.name for e in self.environments) or "none"
        raise InvalidEnvironmentError(f"Unknown environment '{wanted}' (known: {known})")

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(e.name for e in self.environments)


def load_environments(path: Optional[str] = None) -> EnvironmentSet:
    """
    Load environments from a JSON or YAML file.

    Expected layout:
        current: Staging
        environments:
          - name: Staging
            base_url: https://staging.example.com
            base_path: /api
            headers: {Authorization: Bearer token}

    No path returns the default set.
    """
    if not path:
        return EnvironmentSet()

    with open(path, 'r', encoding="utf-8") as f:
        try:
            if path.endswith(('.yaml', '.yml')):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise InvalidEnvironmentError(f"Cannot parse environments file {path}: {e}") from e

    if not isinstance(data, Mapping):
        raise InvalidEnvironmentError(f"Environments file {path} must contain a mapping")
    entries = data.get("environments") or []
    if not isinstance(entries, list) or not entries:
        raise InvalidEnvironmentError(f"Environments file {path} defines no environments")

    environments = tuple(Environment.from_dict(entry) for entry in entries)
    current = str(data.get("current") or environments[0].name)
    env_set = EnvironmentSet(environments=environments, current=current)
    env_set.get(current)
    logger.debug(f"Loaded {len(environments)} environments from {path} (current: {current})")
    return env_set
