"""Plain-text screenplay export for a generated script."""

import re
from typing import Any, Optional

UNTITLED = "Untitled Reel"

_HANDLE_SUFFIX_RE = re.compile(r"[#@].*")


def screenplay_title(caption: Optional[str]) -> str:
    """First caption line with everything from the first hashtag or mention removed."""
    if not caption:
        return UNTITLED
    first_line = str(caption).split("\n")[0]
    return _HANDLE_SUFFIX_RE.sub("", first_line).strip() or UNTITLED


def format_dialogue(text: Optional[str]) -> str:
    """Turn '"line" - CHARACTER' into a character cue above the line."""
    if not text:
        return ""
    text = str(text)
    if '"' in text and "-" in text:
        parts = text.split(" - ")
        if len(parts) >= 2:
            return f"{parts[1].strip()}\n{parts[0].strip()}"
    return text


def convert_to_screenplay(script: Any) -> str:
    if not isinstance(script, dict):
        return "Invalid script format"

    caption = script.get("caption") or ""
    sections = [
        f"TITLE: {screenplay_title(caption)}",
        "FADE IN:",
        "SCENE: INT. SOCIAL MEDIA REEL - DAY",
        f"HOOK:\n{format_dialogue(script.get('hook'))}",
        f"CONTEXT:\n{format_dialogue(script.get('context'))}",
        f"PUNCHLINE:\n{format_dialogue(script.get('punchline'))}",
        f"CAPTION (Social Media):\n{caption}",
        "FADE OUT.",
    ]
    return "\n\n".join(sections)
