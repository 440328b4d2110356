"""Prompt templates for inline completion and chat requests."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Sequence

from ..editor.document_model import BufferSnapshot

COMPLETION_SYSTEM_PROMPT = (
    "You are an expert code completion assistant. Provide concise, accurate code completions."
)
CHAT_SYSTEM_PROMPT = "You are an AI coding assistant. Help users with programming tasks."

_FENCE_RE = re.compile(r"^```[\w+-]*\n?|```$", re.MULTILINE)
_CHATTY_PREFIXES: tuple[str, ...] = (
    "Here is the completion:",
    "Here's the completion:",
    "Completion:",
    "The completion is:",
)


def completion_prompt(snapshot: BufferSnapshot, *, filename: str | None = None) -> str:
    """Build the user prompt describing the code around the cursor."""

    language = snapshot.language or ""
    parts = ["You are an AI code completion assistant. Complete the code based on the context provided.\n"]
    if filename:
        parts.append(f"File: {filename}")
    if language:
        parts.append(f"Language: {language}")
    parts.append("")
    parts.append(f"Code before cursor:\n```{language}\n{snapshot.prefix}\n```\n")
    suffix = snapshot.suffix
    if suffix.strip():
        parts.append(f"Code after cursor:\n```{language}\n{suffix}\n```\n")
    parts.append(
        "Complete the code at the cursor position. Only return the completion code without any "
        "explanation or markdown. Keep it concise and contextually appropriate."
    )
    return "\n".join(parts)


def completion_messages(snapshot: BufferSnapshot, *, filename: str | None = None) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": COMPLETION_SYSTEM_PROMPT},
        {"role": "user", "content": completion_prompt(snapshot, filename=filename)},
    ]


def clean_completion(text: str | None) -> str:
    """Strip markdown fences and chatty lead-ins from a model completion."""

    if not text:
        return ""
    cleaned = _FENCE_RE.sub("", text).strip()
    for prefix in _CHATTY_PREFIXES:
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):].strip()
            break
    return cleaned


def chat_messages(
    text: str,
    *,
    history: Sequence[Mapping[str, Any]] = (),
    code: str = "",
    language: str | None = None,
    system_prompt: str | None = None,
) -> List[Dict[str, str]]:
    """Assemble the chat request: system prompt, prior turns, buffer context, then ``text``."""

    messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt or CHAT_SYSTEM_PROMPT}]
    for entry in history:
        role = entry.get("role")
        content = entry.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content:
            messages.append({"role": str(role), "content": content})
    if code.strip():
        fence_language = language or ""
        messages.append(
            {"role": "user", "content": f"Here's the code context:\n```{fence_language}\n{code}\n```"}
        )
    messages.append({"role": "user", "content": text})
    return messages
