import os


class Sessions:
    def __init__(self, config: dict | None = None) -> None:
        session_cfg = (config or {}).get("perseus", {}).get("sessions", {})
        # Discord select menus hold at most 25 options.
        self.PAGE_SIZE: int = min(int(session_cfg.get("page_size", os.getenv("SESSION_PAGE_SIZE", "25"))), 25)
        self.CONTROL_TIMEOUT: float = float(session_cfg.get("control_timeout", os.getenv("CONTROL_TIMEOUT", "3600")))
        self.BROWSE_TIMEOUT: float = float(session_cfg.get("browse_timeout", os.getenv("BROWSE_TIMEOUT", "300")))
        self.PROMPT_TIMEOUT: float = float(session_cfg.get("prompt_timeout", os.getenv("PROMPT_TIMEOUT", "60")))
        self.CONFIRM_TIMEOUT: float = float(session_cfg.get("confirm_timeout", os.getenv("CONFIRM_TIMEOUT", "30")))
        self.SCRIPT_TIMEOUT: float = float(session_cfg.get("script_timeout", os.getenv("SCRIPT_TIMEOUT", "300")))
        self.PREVIEW_LENGTH: int = int(session_cfg.get("preview_length", os.getenv("PREVIEW_LENGTH", "1000")))
