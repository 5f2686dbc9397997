from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import Unauthorized
from models import UserRole


@dataclass(frozen=True)
class HouseholdContext:
    user_id: int
    household_id: int
    role: UserRole = UserRole.member

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="household-session")


def issue_session_token(ctx: HouseholdContext) -> str:
    return _serializer().dumps(
        {"u": ctx.user_id, "h": ctx.household_id, "r": ctx.role.value}
    )


def load_session_token(token: str) -> HouseholdContext:
    settings = get_settings()
    try:
        data = _serializer().loads(
            token, max_age=settings.session_max_age_hours * 3600
        )
    except SignatureExpired as exc:
        raise Unauthorized("Session expired") from exc
    except BadSignature as exc:
        raise Unauthorized("Invalid session") from exc

    if not isinstance(data, dict) or not data.get("u") or not data.get("h"):
        raise Unauthorized("Invalid session")
    try:
        role = UserRole(data.get("r", UserRole.member.value))
    except ValueError as exc:
        raise Unauthorized("Invalid session") from exc
    return HouseholdContext(
        user_id=int(data["u"]), household_id=int(data["h"]), role=role
    )


def require_context(ctx: Optional[HouseholdContext]) -> HouseholdContext:
    if ctx is None or not ctx.household_id:
        raise Unauthorized("Unauthorized")
    return ctx


def require_admin(ctx: Optional[HouseholdContext]) -> HouseholdContext:
    ctx = require_context(ctx)
    if not ctx.is_admin:
        raise Unauthorized("Only household admins can do this")
    return ctx
