from bot.messaging.protocol import RoleCheck
from bot.messaging.types import Caller


class CallerRoleCheck(RoleCheck):
    """Checks the role names the platform adapter attached to the caller (case-insensitive)."""

    def caller_has_role(self, caller: Caller, role_name: str) -> bool:
        wanted = role_name.casefold()
        return any(name.casefold() == wanted for name in caller.role_names)
