"""Interactive editing of composed pages."""

from .clipboard import Clipboard
from .history import HistoryStore
from .session import DragState, EditorSession
from .snap import SnapGuide, SnapResult, SnapTargets, snap_move, snap_resize, snap_targets, snap_value

__all__ = [
    "Clipboard",
    "DragState",
    "EditorSession",
    "HistoryStore",
    "SnapGuide",
    "SnapResult",
    "SnapTargets",
    "snap_move",
    "snap_resize",
    "snap_targets",
    "snap_value",
]
