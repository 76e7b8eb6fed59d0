"""Token estimation utilities."""

import math


class TokenEstimator:
    """Approximate token cost of text.

    Uses the ~4 characters per token heuristic. The result is an estimate
    for budgeting only and must not be treated as a billing figure.
    """

    CHARS_PER_TOKEN = 4

    def estimate(self, text: str) -> int:
        """Estimate tokens in text."""
        if not text:
            return 0
        return math.ceil(len(text) / self.CHARS_PER_TOKEN)

    def count_messages(self, messages: list) -> int:
        """Sum estimates for a list of messages.

        A message that already carries a token_count is not re-estimated.
        """
        total = 0
        for msg in messages:
            token_count = getattr(msg, "token_count", None)
            if token_count is not None:
                total += token_count
            elif hasattr(msg, "content"):
                total += self.estimate(msg.content)
            elif isinstance(msg, dict):
                total += self.estimate(msg.get("content", ""))
        return total


# Global instance for convenience
_default_estimator = None


def get_token_estimator() -> TokenEstimator:
    """Get or create a global token estimator."""
    global _default_estimator
    if _default_estimator is None:
        _default_estimator = TokenEstimator()
    return _default_estimator


def estimate_tokens(text: str) -> int:
    """Convenience function to estimate tokens."""
    return get_token_estimator().estimate(text)
