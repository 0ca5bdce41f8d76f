from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ConfigurationError(Exception):
    """Bot wiring mistake (duplicate alias, missing admin role...). Never swallowed."""


class CommandAccess(StrEnum):
    """Where a structured command is published and who may run it."""

    GLOBAL = "global"
    GUILD = "guild"
    ADMIN = "admin"


class OptionType(IntEnum):
    """Structured command option types, numbered as the platform numbers them."""

    SUB_COMMAND = 1
    SUB_COMMAND_GROUP = 2
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    CHANNEL = 7


class ChannelType(IntEnum):
    """Channel kinds a CHANNEL option can be restricted to."""

    TEXT = 0
    VOICE = 2
    CATEGORY = 4


OptionValue = int | str | bool


class Caller(BaseModel):
    """The user who triggered a command."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str
    role_names: frozenset[str] = frozenset()


class TextCommand(BaseModel):
    """A prefixed text command split into alias and raw argument string."""

    model_config = ConfigDict(frozen=True)

    alias: str
    args: str = ""


class Invocation(BaseModel):
    """A structured command: name, optional sub-command path and typed options."""

    model_config = ConfigDict(frozen=True)

    name: str
    group: str | None = None
    subcommand: str | None = None
    options: dict[str, OptionValue] = Field(default_factory=dict)

    @property
    def path(self) -> str:
        return " ".join(part for part in (self.name, self.group, self.subcommand) if part)

    def get_integer(self, name: str) -> int | None:
        value = self.options.get(name)
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    def get_string(self, name: str) -> str | None:
        value = self.options.get(name)
        return value if isinstance(value, str) else None

    def get_boolean(self, name: str) -> bool | None:
        value = self.options.get(name)
        return value if isinstance(value, bool) else None

    def get_channel(self, name: str) -> str | None:
        """Channel options carry the channel id."""
        return self.get_string(name)


class CommandResult(BaseModel):
    """Outcome of a command, for logging. The user-facing reply is sent separately."""

    model_config = ConfigDict(frozen=True)

    command_name: str
    result: str
    meta: dict[str, Any] = Field(default_factory=dict)


class OptionSpec(BaseModel):
    """Declaration of a structured command option (or sub-command)."""

    model_config = ConfigDict(frozen=True)

    type: OptionType
    name: str
    description: str
    required: bool = False
    options: tuple["OptionSpec", ...] = ()
    channel_types: tuple[ChannelType, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": int(self.type),
            "name": self.name,
            "description": self.description,
        }
        if self.required:
            payload["required"] = True
        if self.options:
            payload["options"] = [option.to_payload() for option in self.options]
        if self.channel_types:
            payload["channel_types"] = [int(channel_type) for channel_type in self.channel_types]
        return payload


class CommandSpec(BaseModel):
    """Declaration of a structured command, as deployed to the platform."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    access: CommandAccess = CommandAccess.GLOBAL
    options: tuple[OptionSpec, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "description": self.description, "type": 1}
        if self.options:
            payload["options"] = [option.to_payload() for option in self.options]
        if self.access is CommandAccess.ADMIN:
            # hidden from members without Administrator until a server admin grants it
            payload["default_member_permissions"] = "8"
        return payload
