"""Firebase ID token authentication."""

from .decorators import login_required

__all__ = ["login_required"]
