"""
Prompt loader for extraction instruction blocks.

Prompt files live in `llm/prompts/<name>.txt` and start with a frontmatter
block:
```
# PROMPT: flat_extraction
# VERSION: 1.2.0
# LAST_UPDATED: 2026-09-30
# DESCRIPTION: Brief description
# ---PROMPT_START---
[prompt text, may contain {{placeholders}}]
```

The content hash covers only the text below the separator, so an
extraction record can say exactly which instructions produced it.
Set PROMPT_VERSION_CHECK=strict to fail when a prompt's content changes
within one process without a version bump ("warn" logs, "off" skips).
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

SEPARATOR_PATTERN = re.compile(r"^#\s*---PROMPT_START---\s*$", re.MULTILINE)
FRONTMATTER_LINE = re.compile(r"^#\s*(\w+):\s*(.+)$")
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# {prompt_name: {version: content_hash}}
_seen_hashes: Dict[str, Dict[str, str]] = {}


@dataclass
class PromptInfo:
    """Loaded prompt with metadata."""

    name: str
    version: str
    content: str
    content_hash: str
    last_updated: Optional[str] = None
    description: Optional[str] = None
    hash_mismatch: bool = False

    def render(self, **values) -> str:
        """
        Fill `{{name}}` placeholders. Unknown placeholders are left as-is.

        Double braces keep literal JSON examples (`{"a": 1}`) in prompt
        files untouched.
        """

        def substitute(match: re.Match) -> str:
            key = match.group(1)
            return str(values[key]) if key in values else match.group(0)

        return PLACEHOLDER_PATTERN.sub(substitute, self.content)

    def to_dict(self) -> Dict[str, object]:
        return {
            "prompt_name": self.name,
            "prompt_version": self.version,
            "prompt_hash": self.content_hash,
        }


def _compute_hash(content: str) -> str:
    return hashlib.sha256(content.strip().encode()).hexdigest()[:16]


def _parse_frontmatter(text: str) -> tuple[Dict[str, str], str]:
    match = SEPARATOR_PATTERN.search(text)
    if not match:
        return {}, text.strip()

    metadata = {}
    for line in text[: match.start()].strip().splitlines():
        line_match = FRONTMATTER_LINE.match(line.strip())
        if line_match:
            metadata[line_match.group(1).lower()] = line_match.group(2).strip()
    return metadata, text[match.end() :].strip()


def get_prompts_dir() -> Path:
    return Path(__file__).parent / "prompts"


def load_prompt(name: str, prompts_dir: Optional[Path] = None) -> PromptInfo:
    """
    Load a prompt file with version and hash tracking.

    Raises:
        FileNotFoundError: If the prompt file doesn't exist
        ValueError: In strict mode, when content changed without a version bump
    """
    file_path = (prompts_dir or get_prompts_dir()) / f"{name}.txt"
    if not file_path.exists():
        raise FileNotFoundError(f"Prompt file not found: {file_path}")

    metadata, content = _parse_frontmatter(file_path.read_text(encoding="utf-8"))
    version = metadata.get("version", "0.0.0")
    content_hash = _compute_hash(content)

    check_mode = os.environ.get("PROMPT_VERSION_CHECK", "warn").lower()
    hash_mismatch = False
    if check_mode != "off":
        known = _seen_hashes.setdefault(name, {})
        if version in known and known[version] != content_hash:
            hash_mismatch = True
            msg = f"Prompt '{name}' content changed but version is still {version}; bump the VERSION header"
            if check_mode == "strict":
                raise ValueError(msg)
            logger.warning(msg)
        known[version] = content_hash

    return PromptInfo(
        name=name,
        version=version,
        content=content,
        content_hash=content_hash,
        last_updated=metadata.get("last_updated"),
        description=metadata.get("description"),
        hash_mismatch=hash_mismatch,
    )
