"""Storage module - where uploaded recordings are kept."""

from .interface import StorageInterface
from .local_storage import LocalStorage

__all__ = ['StorageInterface', 'LocalStorage']
