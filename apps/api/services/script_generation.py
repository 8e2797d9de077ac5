"""Prompt building, AI output parsing and the deterministic reel-script writer."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from services.categories import SECONDARY_TEXT_FIELDS

SCRIPT_FIELDS = ("hook", "context", "punchline", "caption")

PLACEHOLDER_TEXT = {
    "hook": "No hook generated",
    "context": "No context generated",
    "punchline": "No punchline generated",
    "caption": "No caption generated",
}

ERROR_SCRIPT_TEXT = {
    "hook": "Error generating script batch.",
    "context": "Please try again.",
    "punchline": "Server error.",
    "caption": "Oops! Something went wrong 😔",
}

DEFAULT_GENRE = "Comedy"

# "*_empty" variants are used when the matcher supplied no item for that slot.
GENRE_TEMPLATES: Dict[str, Dict[str, str]] = {
    "Comedy": {
        "hook": 'CHARACTER reacts with "{dialogue}" about {topic}',
        "hook_empty": "CHARACTER makes a funny face about {topic}",
        "context": "TRENDING: {trend} and everyone is talking about {topic}",
        "context_empty": "Background music plays as CHARACTER explains {topic}",
        "punchline": 'CHARACTER says "{meme}" - exactly the {topic} mood!',
        "punchline_empty": "CHARACTER makes a joke about {topic}",
    },
    "Cinematic": {
        "hook": 'CHARACTER delivers "{dialogue}" dramatically, thinking of {topic}',
        "hook_empty": "CHARACTER looks intensely at camera about {topic}",
        "context": "NEWS FLASH: {trend} and the city cannot stop thinking about {topic}",
        "context_empty": "Scene shows dramatic visuals related to {topic}",
        "punchline": 'CHARACTER whispers "{meme}" as {topic} takes over',
        "punchline_empty": "CHARACTER delivers climactic line about {topic}",
    },
    "Romantic": {
        "hook": 'CHARACTER whispers "{dialogue}" lovingly about {topic}',
        "hook_empty": "CHARACTER gazes dreamily at {topic}",
        "context": "LOVE TREND: {trend} reminds CHARACTER of {topic}",
        "context_empty": "Romantic music plays as CHARACTER thinks about {topic}",
        "punchline": 'CHARACTER says "{meme}" affectionately about {topic}',
        "punchline_empty": "CHARACTER expresses love for {topic}",
    },
    "Savage": {
        "hook": 'CHARACTER drops "{dialogue}" brutally on {topic}',
        "hook_empty": "CHARACTER stares down {topic} with attitude",
        "context": "BURNING ISSUE: {trend} and now {topic} is next",
        "context_empty": "Intense beat drops as CHARACTER faces {topic}",
        "punchline": 'CHARACTER claps back with "{meme}" at {topic}',
        "punchline_empty": "CHARACTER destroys {topic} with savage wit",
    },
    "default": {
        "hook": 'CHARACTER says "{dialogue}" about {topic}',
        "hook_empty": "CHARACTER starts talking about {topic}",
        "context": "TRENDING: {trend} and it is all about {topic}",
        "context_empty": "Background music plays as CHARACTER explains {topic}",
        "punchline": 'CHARACTER says "{meme}" - that is {topic} for you',
        "punchline_empty": "CHARACTER makes a point about {topic}",
    },
}

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_WHITESPACE_RE = re.compile(r"\s+")


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def item_text(item: Optional[Dict[str, Any]]) -> str:
    if not isinstance(item, dict):
        return ""
    for field in SECONDARY_TEXT_FIELDS:
        text = _safe_text(item.get(field))
        if text:
            return text
    return ""


def punchline_suggestion(
    dialogues: Sequence[Dict[str, Any]],
    memes: Sequence[Dict[str, Any]],
    trends: Sequence[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Top matched item in dialogue, meme, trend order, reduced to a storable shape."""
    for item in list(dialogues) + list(memes) + list(trends):
        if isinstance(item, dict):
            return {
                "id": item.get("id"),
                "text": item_text(item),
                "situation": _safe_text(item.get("situation")),
                "type": _safe_text(item.get("type")) or "dialogue",
            }
    return None


def _sanitize_suggestion(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, dict):
        return None
    return {
        "id": value.get("id"),
        "text": _safe_text(value.get("text")),
        "situation": _safe_text(value.get("situation")),
        "type": _safe_text(value.get("type")) or "dialogue",
    }


def sanitize_script(raw: Dict[str, Any], *, default_used_dataset: bool = False) -> Dict[str, Any]:
    """Four non-empty text fields, substituting placeholders for missing ones."""
    script: Dict[str, Any] = {}
    for field in SCRIPT_FIELDS:
        script[field] = _safe_text(raw.get(field)) or PLACEHOLDER_TEXT[field]
    used_dataset = raw.get("usedDataset")
    script["usedDataset"] = used_dataset if isinstance(used_dataset, bool) else default_used_dataset
    script["punchlineSuggestion"] = _sanitize_suggestion(raw.get("punchlineSuggestion"))
    if raw.get("error"):
        script["error"] = _safe_text(raw.get("error"))
    return script


def error_script(reason: str = "Script generation failed") -> Dict[str, Any]:
    return {
        **ERROR_SCRIPT_TEXT,
        "usedDataset": False,
        "punchlineSuggestion": None,
        "error": reason,
    }


def extract_json(text: Optional[str]) -> Any:
    """Parse ``text`` as JSON, else the outermost ``{...}`` span, else ``None``."""
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


def _compact_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "text": item_text(item),
        "situation": _safe_text(item.get("situation")),
        "tags": list(item.get("tags") or []),
    }


def build_batch_prompt(
    *,
    topic: str,
    genre: str,
    batch_size: int,
    dialogues: Sequence[Dict[str, Any]],
    memes: Sequence[Dict[str, Any]],
    trends: Sequence[Dict[str, Any]],
    suggestion: Optional[Dict[str, Any]] = None,
) -> str:
    lines = [
        "You are a Telugu-English reel script writer for Instagram reels.",
        f"Write {batch_size} different 20-30 second scripts based strictly on the TOPIC and GENRE.",
        "",
        "RULES:",
        "1. The HOOK must grab attention in the first 5 seconds.",
        "2. The CONTEXT develops the situation; the PUNCHLINE lands hard.",
        "3. The CAPTION is short, Gen-Z, Telugu-English mix, with hashtags.",
        "4. Every field must clearly be about the TOPIC.",
        "5. Use at most one dataset dialogue per script; set usedDataset to true when you do.",
        "",
        f"GENRE: {genre}",
        f'TOPIC: "{topic}"',
    ]
    if suggestion:
        lines.append(f"PUNCHLINE SUGGESTION (highly relevant to topic): {json.dumps(suggestion, ensure_ascii=False)}")
    for label, items in (("DIALOGUES", dialogues), ("MEMES", memes), ("TRENDS", trends)):
        if items:
            payload = json.dumps([_compact_item(item) for item in items], ensure_ascii=False, indent=2)
            lines.append(f"{label}:\n{payload}")
    lines.extend(
        [
            "",
            "Return JSON only, in this shape:",
            '{"scripts": [{"hook": "...", "context": "...", "punchline": "...", '
            '"caption": "...", "usedDataset": true}]}',
        ]
    )
    return "\n".join(lines)


def parse_batch_response(
    raw_text: Optional[str],
    *,
    default_used_dataset: bool,
    suggestion: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Usable scripts from a completion; an empty list means nothing was recoverable."""
    parsed = extract_json(raw_text)
    if isinstance(parsed, dict):
        rows = parsed.get("scripts")
        if rows is None and any(field in parsed for field in SCRIPT_FIELDS):
            rows = [parsed]
    elif isinstance(parsed, list):
        rows = parsed
    else:
        rows = None
    if not isinstance(rows, list):
        return []

    scripts: List[Dict[str, Any]] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        if isinstance(row.get("script"), dict):
            row = {**row["script"], "usedDataset": row.get("usedDataset", row["script"].get("usedDataset"))}
        if not any(_safe_text(row.get(field)) for field in SCRIPT_FIELDS):
            continue
        script = sanitize_script(row, default_used_dataset=default_used_dataset)
        if script["punchlineSuggestion"] is None:
            script["punchlineSuggestion"] = suggestion
        script.pop("error", None)
        scripts.append(script)
    return scripts


def _hashtag(text: str) -> str:
    return _WHITESPACE_RE.sub("", text)


def generate_rule_based_script(
    topic: str,
    dialogues: Sequence[Dict[str, Any]],
    memes: Sequence[Dict[str, Any]],
    trends: Sequence[Dict[str, Any]],
    genre: Optional[str] = DEFAULT_GENRE,
) -> Dict[str, Any]:
    """Deterministic script from already-matched items, no external calls."""
    topic = _safe_text(topic)
    if not topic:
        raise ValueError("topic is required for rule-based generation")
    genre_label = _safe_text(genre) or DEFAULT_GENRE
    template = GENRE_TEMPLATES.get(genre_label, GENRE_TEMPLATES["default"])

    dialogue = item_text(dialogues[0]) if dialogues else ""
    meme = item_text(memes[0]) if memes else ""
    trend = item_text(trends[0]) if trends else ""

    hook = template["hook"].format(dialogue=dialogue, topic=topic) if dialogue else template["hook_empty"].format(topic=topic)
    context = template["context"].format(trend=trend, topic=topic) if trend else template["context_empty"].format(topic=topic)
    punchline = (
        template["punchline"].format(meme=meme, topic=topic) if meme else template["punchline_empty"].format(topic=topic)
    )
    caption = f"{topic} vibes only! 😂💯\n#{_hashtag(topic)} #TeluguReels #{_hashtag(genre_label)}"

    return {
        "hook": hook,
        "context": context,
        "punchline": punchline,
        "caption": caption,
        "usedDataset": bool(dialogue or meme or trend),
        "punchlineSuggestion": punchline_suggestion(dialogues, memes, trends),
    }
