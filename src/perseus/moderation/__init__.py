from .guard import DeletionCache, ModerationAction, ModerationGuard, carries_media

__all__ = ["DeletionCache", "ModerationAction", "ModerationGuard", "carries_media"]
