"""Error types for chanmirror."""


class MirrorError(RuntimeError):
    """Raised for invalid configuration or an unusable startup environment."""
