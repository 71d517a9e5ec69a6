"""Models package."""

from .user import User
from .blueprint import Blueprint
