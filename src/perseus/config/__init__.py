"""Application configuration"""

import logging
from dotenv import load_dotenv

from .loader import load_raw_config
from .core import Core
from .roblox import Roblox
from .storage import Storage
from .sessions import Sessions

load_dotenv()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, level=logging.INFO)
logging.getLogger("discord.gateway").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

_RAW_CONFIG = load_raw_config()

core = Core(_RAW_CONFIG)
roblox = Roblox(_RAW_CONFIG)
storage = Storage(_RAW_CONFIG)
sessions = Sessions(_RAW_CONFIG)


class Config:
    core = core
    roblox = roblox
    storage = storage
    sessions = sessions


__all__ = ["core", "roblox", "storage", "sessions", "Config"]
