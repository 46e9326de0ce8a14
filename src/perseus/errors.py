"""Root of the project's exception hierarchy."""


class PerseusError(RuntimeError):
    """Base for gateway failures and refused session events."""


__all__ = ["PerseusError"]
