from datetime import datetime

import pytest
from itsdangerous import URLSafeTimedSerializer

from errors import InvalidInput, Unauthorized
from identity import (
    HouseholdContext,
    _serializer,
    issue_session_token,
    load_session_token,
    require_admin,
    require_context,
)
from models import UserRole
from money import format_amount, parse_amount
from periods import parse_month, shift_month


def test_session_token_round_trip() -> None:
    ctx = HouseholdContext(user_id=7, household_id=3, role=UserRole.admin)
    assert load_session_token(issue_session_token(ctx)) == ctx


def test_tampered_or_foreign_tokens_are_rejected() -> None:
    token = issue_session_token(HouseholdContext(user_id=7, household_id=3))
    with pytest.raises(Unauthorized):
        load_session_token(token[:-2] + "xx")

    foreign = URLSafeTimedSerializer("another-secret", salt="household-session")
    with pytest.raises(Unauthorized):
        load_session_token(foreign.dumps({"u": 7, "h": 3, "r": "admin"}))


def test_token_without_household_is_rejected() -> None:
    with pytest.raises(Unauthorized):
        load_session_token(_serializer().dumps({"u": 7}))


def test_context_guards() -> None:
    with pytest.raises(Unauthorized):
        require_context(None)
    member = HouseholdContext(user_id=1, household_id=2)
    assert require_context(member) is member
    with pytest.raises(Unauthorized):
        require_admin(member)


def test_amounts_and_months() -> None:
    assert parse_amount("1500") == 150_000
    assert parse_amount("0.5") == 50
    assert format_amount(150_050) == "1500.50"
    assert format_amount(-5) == "-0.05"
    for bad in ("1.234", "-1", "1e3", ""):
        with pytest.raises(InvalidInput):
            parse_amount(bad)

    period = parse_month("2024-12")
    assert (period.start, period.end) == (datetime(2024, 12, 1), datetime(2025, 1, 1))
    assert shift_month("2024-01", -1) == "2023-12"
    with pytest.raises(InvalidInput):
        parse_month("2024-00")
