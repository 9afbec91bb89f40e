import pytest
from stacks.core.permissions import Action, Caller, Role, POLICY, authorize, is_allowed
from stacks.core.exceptions import InvalidInputError, UnauthorizedError


def test_every_action_has_a_rule():
    assert set(POLICY) == set(Action)


def test_caller_of():
    caller = Caller.of(42, "librarian")
    assert caller == Caller("42", Role.LIBRARIAN)
    assert caller.is_staff
    with pytest.raises(InvalidInputError):
        Caller.of("x", "superuser")


@pytest.mark.parametrize("role,action,owner,allowed", [
    ("user", Action.RETURN_LOAN, "alice", True),
    ("user", Action.RETURN_LOAN, "bob", False),
    ("user", Action.CREATE_LOAN, None, False),
    ("librarian", Action.RETURN_LOAN, "bob", True),
    ("user", Action.LIST_LOANS, None, False),
    ("librarian", Action.LIST_LOANS, None, True),
    ("librarian", Action.SWEEP, None, True),
    ("librarian", Action.REMOVE_LOAN, None, False),
    ("admin", Action.REMOVE_LOAN, None, True),
    ("librarian", Action.AUDIT, None, False),
    ("user", Action.LIST_AVAILABILITY, None, True),
])
def test_policy(role, action, owner, allowed):
    assert is_allowed(Caller.of("alice", role), action, owner) is allowed


def test_authorize():
    authorize(None, Action.REMOVE_LOAN)
    authorize(Caller.of("root", "admin"), Action.REMOVE_LOAN)
    with pytest.raises(UnauthorizedError) as excinfo:
        authorize(Caller.of("alice", "user"), Action.REMOVE_LOAN)
    assert "remove loan" in str(excinfo.value)
