"""Heuristic token estimation used for context budgeting."""

from __future__ import annotations

TRUNCATION_MARKER = "...[truncated]"


class TokenBudgetEstimator:
    """Deterministic character-based token estimator.

    One token is counted per ``chars_per_token`` characters (rounded up), so the
    estimate is monotonic: a prefix never costs more than the full string.
    """

    def __init__(
        self,
        chars_per_token: int = 4,
        message_overhead: int = 4,
        tokens_per_tool: int = 200,
    ):
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token
        self.message_overhead = message_overhead
        self.tokens_per_tool = tokens_per_tool

    def count_tokens(self, text: str | None) -> int:
        if not text:
            return 0
        return -(-len(text) // self.chars_per_token)

    def count_message_tokens(self, role: str, content: str | None) -> int:
        """Token cost of one chat message, including the per-message role overhead."""
        return self.count_tokens(content) + self.message_overhead

    def estimate_function_tokens(self, function_count: int) -> int:
        return max(0, function_count) * self.tokens_per_tool

    def truncate_to_token_limit(self, text: str, limit: int) -> str:
        """Return the longest reasonable prefix of ``text`` that fits in ``limit`` tokens.

        Cuts at the last whitespace when it falls in the final fifth of the
        allowed prefix, otherwise cuts mid-word.
        """
        if not text or self.count_tokens(text) <= limit:
            return text
        if limit <= 0:
            return ""

        max_chars = limit * self.chars_per_token
        prefix = text[:max_chars]
        cut = max(prefix.rfind(" "), prefix.rfind("\n"), prefix.rfind("\t"))
        if cut > len(prefix) * 0.8:
            prefix = prefix[:cut]
        return prefix

    def truncate_with_marker(self, text: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
        """Like :meth:`truncate_to_token_limit` but appends ``marker`` when anything was cut."""
        if not text or self.count_tokens(text) <= limit:
            return text
        room = limit - self.count_tokens(marker)
        if room <= 0:
            return self.truncate_to_token_limit(marker, limit)
        return self.truncate_to_token_limit(text, room) + marker
