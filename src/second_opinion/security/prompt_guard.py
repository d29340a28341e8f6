"""
Prompt Guard - Keep agent output safe to hand back to the host assistant.

Agent responses are produced by external models and flow straight back into
another assistant's context, so they are treated as untrusted text.

Two functions:
  detect_injection_attempt() -- Scans for known injection patterns (logs, doesn't block)
  sanitize_for_prompt()     -- Truncation, null byte removal, length enforcement

Reference: OWASP LLM Top 10 (2025) - LLM01: Prompt Injection
"""

import logging
import re

logger = logging.getLogger(__name__)

INJECTION_PATTERNS = [
    r"ignore\s+(all\s+)?previous\s+instructions",
    r"you\s+are\s+now\s+a",
    r"forget\s+(all\s+)?(your|previous)\s+instructions",
    r"<\|im_start\|>",
    r"<\|im_end\|>",
    r"\[INST\]",
    r"\[/INST\]",
    r"<\|system\|>",
    r"<\|user\|>",
    r"<\|assistant\|>",
    r"override\s+safety",
    r"jailbreak",
]


def detect_injection_attempt(text: str) -> list[str]:
    """
    Detect potential prompt injection patterns in agent output.

    Does NOT block -- logs findings and returns them for the caller to decide.

    Args:
        text: Text to scan

    Returns:
        List of matched patterns (empty if clean)
    """
    if not text:
        return []

    text_lower = text.lower()
    findings = [p for p in INJECTION_PATTERNS if re.search(p, text_lower, re.IGNORECASE)]

    if findings:
        logger.warning(
            f"[PromptGuard] Detected {len(findings)} potential injection pattern(s) "
            f"in agent output ({len(text)} chars)"
        )

    return findings


def sanitize_for_prompt(
    content: str,
    max_length: int = 50_000,
    strip_null: bool = True,
) -> str:
    """
    Sanitize agent output before it is analyzed or rendered.

    - Truncates to max_length (prevents one agent from flooding the host)
    - Strips null bytes
    - Does NOT remove injection patterns (that would alter the opinion)

    Args:
        content: Raw content to sanitize
        max_length: Maximum character length
        strip_null: Whether to remove null bytes

    Returns:
        Sanitized content string
    """
    if not content:
        return ""

    if strip_null:
        content = content.replace("\x00", "")

    if len(content) > max_length:
        content = content[:max_length] + "\n[TRUNCATED]"
        logger.info(f"[PromptGuard] Content truncated to {max_length} chars")

    return content
