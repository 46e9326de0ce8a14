import os
from typing import List

_DEFAULT_PROVIDERS = [
    "roblox=https://{subdomain}.roblox.com",
    "roproxy=https://{subdomain}.roproxy.com",
    "indovoice=https://api.indovoice.id/{subdomain}",
]


def _split_providers(raw: str) -> List[str]:
    return [entry.strip() for entry in raw.split(",") if entry.strip()]


class Roblox:
    def __init__(self, config: dict | None = None) -> None:
        roblox_cfg = (config or {}).get("perseus", {}).get("roblox", {})

        providers_cfg = roblox_cfg.get("providers")
        if providers_cfg:
            self.PROVIDERS: List[str] = [str(p) for p in providers_cfg]
        else:
            env_providers = _split_providers(os.getenv("ROBLOX_PROVIDERS", ""))
            self.PROVIDERS = env_providers or list(_DEFAULT_PROVIDERS)

        self.CLOUD_BASE_URL: str = str(
            roblox_cfg.get("cloud_base_url", os.getenv("ROBLOX_CLOUD_BASE_URL", "https://apis.roblox.com"))
        ).rstrip("/")
        self.TOPIC_PREFIX: str = str(roblox_cfg.get("topic_prefix", os.getenv("ROBLOX_TOPIC_PREFIX", "perseus")))
        self.REQUEST_TIMEOUT: float = float(roblox_cfg.get("request_timeout", os.getenv("ROBLOX_REQUEST_TIMEOUT", "10")))
        self.SERVER_PAGE_LIMIT: int = int(roblox_cfg.get("server_page_limit", os.getenv("ROBLOX_SERVER_PAGE_LIMIT", "100")))
        self.POLL_INTERVAL: float = float(roblox_cfg.get("poll_interval", os.getenv("ROBLOX_POLL_INTERVAL", "3")))
        self.POLL_ATTEMPTS: int = int(roblox_cfg.get("poll_attempts", os.getenv("ROBLOX_POLL_ATTEMPTS", "20")))
