from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet

from fastapi import Request

from . import config
from .errors import AuthError, ForbiddenError
from .signing import ct_equal

CAP_ADMIN = "admin"
SESSION_KEY = "admin_user"


@dataclass(frozen=True)
class Principal:
    username: str
    capabilities: FrozenSet[str] = field(default_factory=frozenset)


def check_credentials(username: str, password: str) -> bool:
    # evaluate both so timing doesn't reveal which one was wrong
    ok_user = ct_equal(username.strip(), config.ADMIN_USERNAME)
    ok_pass = ct_equal(password, config.ADMIN_PASSWORD)
    return ok_user and ok_pass


def authenticate(request: Request) -> Principal:
    username = request.session.get(SESSION_KEY)
    if not username:
        raise AuthError("login required")
    return Principal(username=username, capabilities=frozenset({CAP_ADMIN}))


def require_capability(principal: Principal, capability: str) -> None:
    if capability not in principal.capabilities:
        raise ForbiddenError(f"{capability} capability required")


def require_admin(request: Request) -> Principal:
    principal = authenticate(request)
    require_capability(principal, CAP_ADMIN)
    return principal
