import logging
import os
from typing import List

logger = logging.getLogger(__name__)


def _split_ids(raw: str) -> List[int]:
    return [int(rid.strip()) for rid in raw.split(",") if rid.strip()]


class Core:
    def __init__(self, config: dict | None = None) -> None:
        cfg = (config or {}).get("perseus", {})
        discord_cfg = cfg.get("discord", {})
        roblox_cfg = cfg.get("roblox", {})

        token_env = str(discord_cfg.get("token_env", "DISCORD_TOKEN"))
        api_key_env = str(roblox_cfg.get("api_key_env", "ROBLOX_API_KEY"))

        self.DISCORD_TOKEN: str | None = os.getenv(token_env)
        self.ROBLOX_API_KEY: str | None = os.getenv(api_key_env)

        guild_id = discord_cfg.get("guild_id") or os.getenv("DISCORD_GUILD_ID")
        self.DISCORD_GUILD_ID: int | None = int(guild_id) if guild_id else None

        self.COMMAND_PREFIX: str = str(discord_cfg.get("command_prefix", os.getenv("COMMAND_PREFIX", "!")))

        role_ids_cfg = discord_cfg.get("elevated_role_ids")
        if role_ids_cfg:
            self.ELEVATED_ROLE_IDS: List[int] = [int(rid) for rid in role_ids_cfg]
        else:
            self.ELEVATED_ROLE_IDS = _split_ids(os.getenv("ELEVATED_ROLE_IDS", ""))

        required = [
            ("DISCORD_TOKEN", self.DISCORD_TOKEN),
            ("ROBLOX_API_KEY", self.ROBLOX_API_KEY),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")
