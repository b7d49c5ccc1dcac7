"""Caller identity and the admin allowlist used to gate draws."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from dotenv import load_dotenv

from .errors import NotAuthenticatedError, NotAuthorizedError

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


@dataclass(frozen=True)
class Caller:
    """Identity of the current request as resolved by the session layer.

    ``user_id`` is ``None`` for anonymous requests.
    """

    user_id: Optional[str]
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


ANONYMOUS = Caller(user_id=None)


def _parse_emails(raw: str) -> frozenset[str]:
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


def is_admin(email: Optional[str], admin_emails: Optional[Iterable[str]] = None) -> bool:
    """Return ``True`` if ``email`` is in the admin allowlist.

    The allowlist defaults to the comma separated ``ADMIN_EMAILS``
    environment variable. Matching is case-insensitive.
    """
    if not email:
        return False
    if admin_emails is None:
        allowlist = _parse_emails(os.getenv("ADMIN_EMAILS", ""))
    else:
        allowlist = frozenset(e.strip().lower() for e in admin_emails if e.strip())
    return email.strip().lower() in allowlist


class AdminAllowlistAuthorizer:
    """Authorization check allowing allow-listed admins to manage any raffle."""

    def __init__(self, admin_emails: Optional[Iterable[str]] = None) -> None:
        self._admin_emails = None if admin_emails is None else list(admin_emails)

    def __call__(self, caller: Caller, raffle_id: Optional[str] = None) -> bool:
        return is_admin(caller.email, self._admin_emails)


Authorizer = Callable[[Caller, Optional[str]], bool]


def require_authenticated(caller: Optional[Caller]) -> Caller:
    """Return ``caller`` or raise :class:`NotAuthenticatedError`."""
    if caller is None or not caller.is_authenticated:
        raise NotAuthenticatedError()
    return caller


def require_admin(
    caller: Optional[Caller],
    authorizer: Optional[Authorizer] = None,
    raffle_id: Optional[str] = None,
) -> Caller:
    """Return ``caller`` if they may manage ``raffle_id``.

    Raises
    ------
    NotAuthenticatedError
        If there is no authenticated caller.
    NotAuthorizedError
        If the authorizer denies the caller.
    """
    caller = require_authenticated(caller)
    check = authorizer or AdminAllowlistAuthorizer()
    if not check(caller, raffle_id):
        raise NotAuthorizedError()
    return caller


__all__ = [
    "ANONYMOUS",
    "AdminAllowlistAuthorizer",
    "Authorizer",
    "Caller",
    "is_admin",
    "require_admin",
    "require_authenticated",
]
