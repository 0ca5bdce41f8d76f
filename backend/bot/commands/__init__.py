from bot.commands.registry import build_router as build_router
