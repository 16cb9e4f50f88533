"""Core module for the trailsync application."""

from .types import GroupDocument, MemberLocationDocument

__all__ = ["GroupDocument", "MemberLocationDocument"]
