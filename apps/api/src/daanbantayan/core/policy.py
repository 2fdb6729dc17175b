"""
Route Authorization Policy

A declarative, ordered table of (method, path pattern, requirement) rules.
Rules are evaluated top to bottom and the first match decides; requests that
match nothing require an authenticated principal.

Ordering matters: a public rule on a sub-path (or the OPTIONS preflight rule)
must come before any broader role-restricted rule on the same prefix, or it is
shadowed and never reached.

Patterns are Ant-style:
- ``*`` matches any characters within a single path segment
- ``/**`` matches zero or more trailing path segments
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum


class Access(str, Enum):
    """Outcome of evaluating the policy for a request."""

    ALLOW = "allow"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


class RequirementKind(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ROLES = "roles"


@dataclass(frozen=True)
class Requirement:
    """What a request must carry to be let through."""

    kind: RequirementKind
    roles: frozenset[str] = frozenset()

    def check(self, role: str | None) -> Access:
        """
        Decide access for a principal role (``None`` means anonymous).
        """
        if self.kind is RequirementKind.PUBLIC:
            return Access.ALLOW
        if role is None:
            return Access.UNAUTHENTICATED
        if self.kind is RequirementKind.AUTHENTICATED:
            return Access.ALLOW
        return Access.ALLOW if role.upper() in self.roles else Access.FORBIDDEN


PUBLIC = Requirement(RequirementKind.PUBLIC)
AUTHENTICATED = Requirement(RequirementKind.AUTHENTICATED)


def require_roles(*roles: str) -> Requirement:
    """Requirement satisfied by any of ``roles``."""
    if not roles:
        raise ValueError("require_roles needs at least one role")
    return Requirement(RequirementKind.ROLES, frozenset(role.upper() for role in roles))


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    parts = re.split(r"(/\*\*|\*)", pattern)
    regex = []
    for part in parts:
        if part == "/**":
            regex.append(r"(?:/.*)?")
        elif part == "*":
            regex.append(r"[^/]*")
        else:
            regex.append(re.escape(part))
    return re.compile("^" + "".join(regex) + "$")


def _normalize_path(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


@dataclass(frozen=True)
class RouteRule:
    """One policy entry. ``method=None`` matches every HTTP method."""

    method: str | None
    pattern: str
    requirement: Requirement
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", _compile_pattern(self.pattern))
        if self.method is not None:
            object.__setattr__(self, "method", self.method.upper())

    def matches(self, method: str, path: str) -> bool:
        if self.method is not None and self.method != method.upper():
            return False
        return self._regex.match(_normalize_path(path)) is not None


class RoutePolicy:
    """Ordered rule list; the first matching rule wins."""

    def __init__(self, rules: Iterable[RouteRule], default: Requirement = AUTHENTICATED):
        self.rules: Sequence[RouteRule] = tuple(rules)
        self.default = default

    def match(self, method: str, path: str) -> RouteRule | None:
        for rule in self.rules:
            if rule.matches(method, path):
                return rule
        return None

    def requirement_for(self, method: str, path: str) -> Requirement:
        rule = self.match(method, path)
        return rule.requirement if rule is not None else self.default

    def evaluate(self, method: str, path: str, role: str | None) -> Access:
        """Decide access for ``role`` (``None`` for anonymous) on a request."""
        return self.requirement_for(method, path).check(role)


def rule(method: str | None, pattern: str, requirement: Requirement) -> RouteRule:
    return RouteRule(method=method, pattern=pattern, requirement=requirement)


ADMIN = "ADMIN"
TEACHER = "TEACHER"
ADVISER = "ADVISER"

DEFAULT_RULES: tuple[RouteRule, ...] = (
    # Public endpoints
    rule("OPTIONS", "/api/**", PUBLIC),
    rule("POST", "/api/auth/session", PUBLIC),
    rule("POST", "/api/auth/refresh", PUBLIC),
    rule("POST", "/api/auth/logout", PUBLIC),
    rule("POST", "/api/otp", PUBLIC),
    rule("POST", "/api/otp/verification", PUBLIC),
    rule("POST", "/api/users/reset-password-link", PUBLIC),
    rule("GET", "/api/school-year/active-quarter", PUBLIC),
    rule("GET", "/api/school-year/**", PUBLIC),
    rule("GET", "/api/school-profile", PUBLIC),
    rule("GET", "/api/health", PUBLIC),
    rule("GET", "/docs/**", PUBLIC),
    rule("GET", "/redoc", PUBLIC),
    rule("GET", "/openapi.json", PUBLIC),
    # Admin endpoints
    rule("GET", "/api/health/jobs", require_roles(ADMIN)),
    rule(None, "/api/security/settings/**", require_roles(ADMIN)),
    rule("PATCH", "/api/school-year/quarter/*/activate", require_roles(ADMIN)),
    rule("POST", "/api/school-year/quarter", require_roles(ADMIN)),
    rule("PATCH", "/api/school-year/quarter/*/status", require_roles(ADMIN)),
    rule("PATCH", "/api/school-year/quarter/*/close", require_roles(ADMIN)),
    rule("DELETE", "/api/school-year/quarter/**", require_roles(ADMIN)),
    rule("POST", "/api/school-year", require_roles(ADMIN)),
    rule("PATCH", "/api/school-year/*/activate", require_roles(ADMIN)),
    rule("PATCH", "/api/school-year/*/archive", require_roles(ADMIN)),
    rule("DELETE", "/api/school-year/**", require_roles(ADMIN)),
    rule("PATCH", "/api/school-profile", require_roles(ADMIN)),
    rule("DELETE", "/api/school-profile/**", require_roles(ADMIN)),
    rule(None, "/api/subjects/**", require_roles(ADMIN, TEACHER, ADVISER)),
    rule(None, "/api/adviser/**", require_roles(ADVISER, TEACHER)),
    rule(None, "/api/sections/**", require_roles(ADMIN, TEACHER, ADVISER)),
    rule(None, "/api/notifications/templates/**", require_roles(ADMIN)),
    rule(None, "/api/system/backup/**", require_roles(ADMIN)),
    # Account management
    rule("POST", "/api/users/*/reset-otp", require_roles(ADMIN)),
    rule("POST", "/api/users", require_roles(ADMIN, TEACHER)),
    rule("PUT", "/api/users", require_roles(ADMIN)),
)

DEFAULT_POLICY = RoutePolicy(DEFAULT_RULES)


__all__ = [
    "Access",
    "Requirement",
    "RequirementKind",
    "PUBLIC",
    "AUTHENTICATED",
    "require_roles",
    "RouteRule",
    "RoutePolicy",
    "DEFAULT_RULES",
    "DEFAULT_POLICY",
]
