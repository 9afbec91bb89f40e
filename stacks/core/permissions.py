"""
    Capability checks for Stacks.

    Every engine operation makes exactly one `authorize` call with the
    resolved caller and, where the operation touches a patron's loans,
    the id of the patron who owns them.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional
from stacks.core.exceptions import UnauthorizedError, InvalidInputError

logger = logging.getLogger(__name__)


class Role(str, enum.Enum):
    USER = "user"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


STAFF = frozenset({Role.LIBRARIAN, Role.ADMIN})


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: Role

    @classmethod
    def of(cls, user_id, role):
        try:
            return cls(user_id=str(user_id), role=Role(role))
        except ValueError:
            raise InvalidInputError(f"Unknown role: {role!r}")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF


class Action(str, enum.Enum):
    CREATE_LOAN = "create_loan"
    RETURN_LOAN = "return_loan"
    RENEW_LOAN = "renew_loan"
    GET_LOAN = "get_loan"
    LIST_USER_LOANS = "list_user_loans"
    LIST_LOANS = "list_loans"
    LIST_OVERDUE = "list_overdue"
    SWEEP = "sweep"
    STATS = "stats"
    MANAGE_CATALOG = "manage_catalog"
    REMOVE_LOAN = "remove_loan"
    AUDIT = "audit"
    LIST_AVAILABILITY = "list_availability"


OWNER_OR_STAFF = "owner_or_staff"
ANYONE = "anyone"

POLICY = {
    Action.CREATE_LOAN: OWNER_OR_STAFF,
    Action.RETURN_LOAN: OWNER_OR_STAFF,
    Action.RENEW_LOAN: OWNER_OR_STAFF,
    Action.GET_LOAN: OWNER_OR_STAFF,
    Action.LIST_USER_LOANS: OWNER_OR_STAFF,
    Action.LIST_LOANS: STAFF,
    Action.LIST_OVERDUE: STAFF,
    Action.SWEEP: STAFF,
    Action.STATS: STAFF,
    Action.MANAGE_CATALOG: STAFF,
    Action.REMOVE_LOAN: frozenset({Role.ADMIN}),
    Action.AUDIT: frozenset({Role.ADMIN}),
    Action.LIST_AVAILABILITY: ANYONE,
}


def is_allowed(caller: Caller, action: Action, owner_id: Optional[str] = None) -> bool:
    rule = POLICY[action]
    if rule == ANYONE:
        return True
    if rule == OWNER_OR_STAFF:
        return caller.is_staff or (owner_id is not None and caller.user_id == str(owner_id))
    return caller.role in rule


def authorize(caller: Optional[Caller], action: Action, owner_id: Optional[str] = None) -> None:
    """Raises UnauthorizedError unless `caller` may perform `action`.
    A `None` caller is a trusted in-process call and is always allowed.
    """
    if caller is None:
        return
    if not is_allowed(caller, action, owner_id):
        logger.info(f"Denied {action.value} to {caller.role.value} {caller.user_id} (owner={owner_id})")
        raise UnauthorizedError(f"Not permitted to {action.value.replace('_', ' ')}.")
