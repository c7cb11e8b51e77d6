from __future__ import annotations

from typing import List, Optional, Tuple


# Shortcut action ids used by app.py dispatcher.
ACTION_TOGGLE_PLAY_PAUSE = "toggle_play_pause"
ACTION_SET_START = "set_start"
ACTION_SET_END = "set_end"
ACTION_FRAME_BACK = "frame_back"
ACTION_FRAME_FORWARD = "frame_forward"
ACTION_SECOND_BACK = "second_back"
ACTION_SECOND_FORWARD = "second_forward"
ACTION_PREVIEW = "preview"
ACTION_PROCESS = "process"
ACTION_RESET_TRIM = "reset_trim"
ACTION_SHOW_SHORTCUTS = "show_shortcuts"


def _normalize_key(key: str) -> str:
    raw = str(key or "")
    if raw == " ":
        return "space"
    k = raw.strip().lower().replace(" ", "")
    aliases = {
        "arrowleft": "left",
        "arrowright": "right",
        "spacebar": "space",
        "return": "enter",
        "numpadenter": "enter",
    }
    return aliases.get(k, k)


def resolve_shortcut_action(
    *,
    key: str,
    ctrl: bool = False,
    shift: bool = False,
    alt: bool = False,
    meta: bool = False,
    typing_focus: bool = False,
) -> Optional[str]:
    """
    Resolve a keyboard event into an editor action.

    `typing_focus=True` blocks plain-key shortcuts so the file id field can be
    typed into without moving the trim handles.
    """
    k = _normalize_key(key)
    if not k:
        return None

    if k == "f1" or k == "?" or (k == "/" and bool(shift)):
        return ACTION_SHOW_SHORTCUTS

    if bool(alt):
        return None

    primary_mod = bool(ctrl or meta)
    if primary_mod and k == "enter":
        return ACTION_PROCESS
    if primary_mod and k == "r":
        return ACTION_RESET_TRIM
    if primary_mod:
        return None

    if typing_focus:
        return None

    if k == "space":
        return ACTION_TOGGLE_PLAY_PAUSE
    if k == "i":
        return ACTION_SET_START
    if k == "o":
        return ACTION_SET_END
    if k == "p":
        return ACTION_PREVIEW
    if k == "left":
        return ACTION_SECOND_BACK if shift else ACTION_FRAME_BACK
    if k == "right":
        return ACTION_SECOND_FORWARD if shift else ACTION_FRAME_FORWARD
    return None


def shortcut_legend() -> List[Tuple[str, str]]:
    """Human-readable shortcuts list for the in-app help dialog."""
    return [
        ("Space", "Play/Pause"),
        ("I / O", "Set start/end at playhead"),
        ("Left / Right", "Step playhead one frame"),
        ("Shift + Left / Right", "Step playhead one second"),
        ("P", "Preview selection"),
        ("Ctrl/Cmd + Enter", "Process video"),
        ("Ctrl/Cmd + R", "Reset trim to full video"),
        ("F1 or ?", "Show shortcuts help"),
    ]
