from .interface import SQLAStorage  # noqa: F401
