from .sink import SaveResult, ensure_folder, save_bills
from .state import StateStore

__all__ = ["SaveResult", "StateStore", "ensure_folder", "save_bills"]
