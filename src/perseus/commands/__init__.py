"""
Operator command cogs.

Each module in ``commands/handlers`` marks its cog with ``@register_cog``;
importing this package imports every handler module, and :func:`setup`
adds the collected cogs to the bot from ``setup_hook``.
"""

from __future__ import annotations

import logging
from importlib import import_module
from pathlib import Path
from pkgutil import iter_modules
from typing import Dict, Type

from discord.ext import commands as commands_ext

logger = logging.getLogger(__name__)

_COGS: Dict[str, Type[commands_ext.Cog]] = {}


def register_cog(cog_cls: Type[commands_ext.Cog]) -> Type[commands_ext.Cog]:
    if not issubclass(cog_cls, commands_ext.Cog):
        raise TypeError(f"{cog_cls.__name__} is not a commands.Cog")
    _COGS.setdefault(cog_cls.__name__, cog_cls)
    return cog_cls


async def setup(bot: commands_ext.Bot) -> None:
    """Add every registered cog the bot does not already carry."""

    added = [name for name in _COGS if bot.get_cog(name) is None]
    for name in added:
        await bot.add_cog(_COGS[name](bot))
    logger.info("Loaded %d operator cog(s): %s", len(added), ", ".join(added) or "none")


def _import_handlers() -> None:
    handlers = Path(__file__).resolve().parent / "handlers"
    for module in iter_modules([str(handlers)]):
        if not module.name.startswith("_"):
            import_module(f"{__name__}.handlers.{module.name}")


_import_handlers()


__all__ = ["register_cog", "setup"]
