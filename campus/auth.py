"""Login lookup across officers, coordinators and students."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from condition_eval import all_of, eq
from campus.entities import COORDINATOR, OFFICER, STUDENT


logger = logging.getLogger("campus.auth")

ROLE_OFFICER = "officer"
ROLE_COORDINATOR = "coordinator"
ROLE_STUDENT = "student"

# (role, entity, key field, extra predicate); first match wins
_LOGIN_ORDER = (
    (ROLE_OFFICER, OFFICER, "officerId", None),
    (ROLE_COORDINATOR, COORDINATOR, "customId", eq("isActive", True)),
    (ROLE_STUDENT, STUDENT, "customId", None),
)
ROLES = tuple(role for role, _, _, _ in _LOGIN_ORDER)


class PasswordChecker:
    def check(self, supplied: str, stored: str) -> bool:
        raise NotImplementedError


class PlaintextPasswordChecker(PasswordChecker):
    """Stored passwords are plaintext; compared in constant time."""

    def check(self, supplied: str, stored: str) -> bool:
        if not isinstance(supplied, str) or not isinstance(stored, str):
            return False
        return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


def _public(row: dict) -> dict:
    return {k: v for k, v in row.items() if k != "password"}


class Authenticator:
    def __init__(self, store, checker: Optional[PasswordChecker] = None) -> None:
        self._store = store
        self._checker = checker or PlaintextPasswordChecker()

    def authenticate(self, user_id: str, password: str, role: Optional[str] = None) -> Optional[dict]:
        if not isinstance(user_id, str) or not user_id.strip() or not isinstance(password, str):
            return None
        if role is not None and role not in ROLES:
            return None
        key = user_id.strip()
        for candidate_role, entity, key_field, extra in _LOGIN_ORDER:
            if role is not None and role != candidate_role:
                continue
            rows = self._store.select(entity.table, where=all_of([eq(key_field, key), extra]), limit=1)
            if not rows:
                continue
            row = rows[0]
            if not self._checker.check(password, row.get("password")):
                continue
            logger.info("auth_login_ok role=%s id=%s", candidate_role, row.get("id"))
            return {"role": candidate_role, "user": _public(row)}
        logger.info("auth_login_failed role=%s", role or "any")
        return None
