from typing import ClassVar

import pytest

from bot.messaging.handlers import InteractionHandler, TextCommandHandler
from bot.messaging.protocol import MessageEvent, ReactionEvent
from bot.messaging.router import (
    NOT_AUTHORIZED_REPLY,
    ROUTER_NAME,
    UNEXPECTED_ERROR_REPLY,
    CommandRouter,
    parse_text_command,
)
from bot.messaging.types import CommandAccess, CommandSpec, ConfigurationError, Invocation
from bot.services.roles import CallerRoleCheck
from bot.tests.mocks import ADMIN, PLAYER, MockCommandContext


class PingCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("ping", "p")
    help: ClassVar[str] = "Pong"

    def __init__(self):
        self.calls = []

    async def execute(self, command, context):
        self.calls.append(command)
        await context.reply("pong")
        return self.result("pong", args=command.args)


class OtherPingCommand(PingCommand):
    aliases: ClassVar[tuple[str, ...]] = ("PING",)


class SecretCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("secret",)
    help: ClassVar[str] = "Admin only"
    admin_only: ClassVar[bool] = True

    async def execute(self, command, context):
        await context.reply("secret")
        return self.result("done")


class BrokenCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ("broken",)
    help: ClassVar[str] = "Always fails"

    async def execute(self, command, context):
        raise RuntimeError("boom")


class NoAliasCommand(TextCommandHandler):
    aliases: ClassVar[tuple[str, ...]] = ()
    help: ClassVar[str] = ""

    async def execute(self, command, context):
        return self.result("never")


class StatusInteraction(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(name="status", description="Status")

    async def execute(self, invocation, context):
        await context.reply(f"status {invocation.path}")
        return self.result("ok", path=invocation.path)


class AdminInteraction(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(name="admin", description="Admin", access=CommandAccess.ADMIN)

    async def execute(self, invocation, context):
        await context.reply("admin")
        return self.result("ok")


class BrokenInteraction(InteractionHandler):
    spec: ClassVar[CommandSpec] = CommandSpec(name="broken", description="Always fails")

    async def execute(self, invocation, context):
        raise RuntimeError("boom")


class UnreachableContext(MockCommandContext):
    async def reply(self, content, *, ephemeral=True):
        raise ConnectionError("channel gone")


@pytest.fixture
def router():
    return CommandRouter(CallerRoleCheck(), admin_role="gardien")


class TestParseTextCommand:
    def test_alias_and_args(self):
        command = parse_text_command("c  Machette 2 ")
        assert command.alias == "c"
        assert command.args == "Machette 2"

    def test_alias_only(self):
        command = parse_text_command("bag")
        assert command.alias == "bag"
        assert command.args == ""

    def test_empty_content(self):
        assert parse_text_command("   ").alias == ""


class TestRegistration:
    def test_duplicate_alias_is_case_insensitive(self, router):
        router.register_text(PingCommand())
        with pytest.raises(ConfigurationError, match="ping"):
            router.register_text(OtherPingCommand())

    def test_handler_without_alias_rejected(self, router):
        with pytest.raises(ConfigurationError, match="no alias"):
            router.register_text(NoAliasCommand())

    def test_duplicate_interaction_rejected(self, router):
        router.register_interaction(StatusInteraction())
        with pytest.raises(ConfigurationError, match="status"):
            router.register_interaction(StatusInteraction())

    def test_text_handlers_listed_once(self, router):
        router.register_text(PingCommand())
        router.register_text(SecretCommand())

        assert [handler.name for handler in router.text_handlers] == ["PingCommand", "SecretCommand"]
        assert router.help_entries() == [(("ping", "p"), "Pong"), (("secret",), "Admin only")]


class TestTextDispatch:
    async def test_dispatch_by_any_alias_case_insensitive(self, router):
        handler = PingCommand()
        router.register_text(handler)
        context = MockCommandContext()

        result = await router.dispatch_text("P hello there", context)

        assert result.command_name == "PingCommand"
        assert result.meta == {"args": "hello there"}
        assert handler.calls[0].alias == "P"
        assert context.replies == ["pong"]

    async def test_unknown_alias_replies_and_returns_router_result(self, router):
        context = MockCommandContext()

        result = await router.dispatch_text("nope 1 2", context)

        assert result.command_name == ROUTER_NAME
        assert result.result == "Pas de commande pour nope"
        assert len(context.replies) == 1
        assert "nope" in context.replies[0]

    async def test_admin_command_denied_without_role(self, router):
        router.register_text(SecretCommand())
        context = MockCommandContext(caller=PLAYER)

        result = await router.dispatch_text("secret", context)

        assert result.result == "Non autorisé"
        assert context.replies == [NOT_AUTHORIZED_REPLY]

    async def test_admin_command_runs_with_role(self, router):
        router.register_text(SecretCommand())
        context = MockCommandContext(caller=ADMIN)

        result = await router.dispatch_text("secret", context)

        assert result.result == "done"
        assert context.replies == ["secret"]

    async def test_admin_command_without_configured_role_raises(self):
        router = CommandRouter(CallerRoleCheck())
        router.register_text(SecretCommand())

        with pytest.raises(ConfigurationError, match="admin role"):
            await router.dispatch_text("secret", MockCommandContext(caller=ADMIN))

    async def test_handler_failure_is_logged_and_answered(self, router, caplog):
        router.register_text(BrokenCommand())
        context = MockCommandContext()

        result = await router.dispatch_text("broken", context)

        assert result.result == "Erreur inattendue"
        assert context.replies == [UNEXPECTED_ERROR_REPLY]
        assert "text command failed" in caplog.text

    async def test_failed_error_reply_still_returns_result(self, router, caplog):
        router.register_text(BrokenCommand())

        result = await router.dispatch_text("broken", UnreachableContext())

        assert result.result == "Erreur inattendue"
        assert "text command failed" in caplog.text
        assert "error reply failed" in caplog.text


class TestInteractionDispatch:
    async def test_dispatch_by_name(self, router):
        router.register_interaction(StatusInteraction())
        context = MockCommandContext()

        result = await router.dispatch_interaction(Invocation(name="status", subcommand="now"), context)

        assert result.result == "ok"
        assert result.meta == {"path": "status now"}
        assert context.replies == ["status status now"]

    async def test_unknown_name(self, router):
        context = MockCommandContext()

        result = await router.dispatch_interaction(Invocation(name="missing"), context)

        assert result.command_name == ROUTER_NAME
        assert result.result == "Pas de commande pour missing"

    async def test_admin_gate_applies_to_interactions(self, router):
        router.register_interaction(AdminInteraction())
        player = MockCommandContext(caller=PLAYER)
        admin = MockCommandContext(caller=ADMIN)

        denied = await router.dispatch_interaction(Invocation(name="admin"), player)
        allowed = await router.dispatch_interaction(Invocation(name="admin"), admin)

        assert denied.result == "Non autorisé"
        assert allowed.result == "ok"

    async def test_failed_error_reply_still_returns_result(self, router, caplog):
        router.register_interaction(BrokenInteraction())

        result = await router.dispatch_interaction(Invocation(name="broken"), UnreachableContext())

        assert result.command_name == "broken"
        assert result.result == "Erreur inattendue"
        assert "error reply failed" in caplog.text


class TestSideChannels:
    async def test_every_message_listener_runs_despite_failures(self, router, caplog):
        seen = []

        async def failing(event):
            raise ValueError("listener down")

        async def recording(event):
            seen.append(event.content)

        router.add_message_listener(failing)
        router.add_message_listener(recording)

        await router.handle_message(MessageEvent(content="hello", context=MockCommandContext()))

        assert seen == ["hello"]
        assert "listener failed" in caplog.text

    async def test_reaction_listeners_are_separate(self, router):
        added, removed = [], []

        async def on_add(event):
            added.append(event.emoji)

        async def on_remove(event):
            removed.append(event.emoji)

        router.add_reaction_add_listener(on_add)
        router.add_reaction_remove_listener(on_remove)
        event = ReactionEvent(emoji="👍", message_id="m", channel_id="c", user_id="u")

        await router.handle_reaction_add(event)

        assert added == ["👍"]
        assert removed == []
