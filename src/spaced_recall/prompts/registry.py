"""Prompt Registry - Load prompts from Markdown files.

Usage:
    from spaced_recall.prompts.registry import get_prompt

    prompt = get_prompt("ai/quiz", subject_name="Biology", question_count=5)
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

# Prompt files ship inside the package
PROMPTS_DIR = Path(__file__).parent


def _get_prompt_uncached(key: str) -> str:
    """Load raw prompt from file without caching.

    Args:
        key: Path-like key, e.g., "ai/subject_structure"

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    file_path = PROMPTS_DIR / f"{key}.md"
    if not file_path.exists():
        raise FileNotFoundError(f"Prompt not found: {key} (looked at {file_path})")

    return file_path.read_text(encoding="utf-8")


@lru_cache(maxsize=64)
def _get_cached_prompt(key: str) -> str:
    return _get_prompt_uncached(key)


def get_prompt(key: str, use_cache: bool = True, **variables) -> str:
    """Load prompt from file and substitute {variable_name} placeholders.

    Placeholders without a matching variable are left as they are, so JSON
    examples in prompts keep their braces.

    Raises:
        FileNotFoundError: If prompt file doesn't exist
    """
    content = _get_cached_prompt(key) if use_cache else _get_prompt_uncached(key)

    for var_name, var_value in variables.items():
        content = content.replace(f"{{{var_name}}}", str(var_value))

    return content


def list_prompts() -> list[str]:
    """Sorted prompt keys, e.g. ["ai/quiz", "ai/subject_structure"]."""
    prompts = []
    for path in PROMPTS_DIR.rglob("*.md"):
        key = path.relative_to(PROMPTS_DIR).with_suffix("").as_posix()
        prompts.append(key)
    return sorted(prompts)


def clear_cache() -> None:
    """Clear the prompt cache."""
    _get_cached_prompt.cache_clear()
