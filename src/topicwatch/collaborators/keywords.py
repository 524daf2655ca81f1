"""Keyword-based content decision."""

from topicwatch.daemon.collaborators import Decision


class KeywordDecision:
    """PASS when the text mentions any configured keyword."""

    def __init__(self, keywords: list[str], min_length: int = 0) -> None:
        self.keywords = [k.lower() for k in keywords if k.strip()]
        self.min_length = min_length

    def decide(self, item_text: str) -> Decision:
        text = item_text.strip()
        if len(text) < self.min_length:
            return Decision(passed=False, reason=f"text shorter than {self.min_length} characters")
        lowered = text.lower()
        for keyword in self.keywords:
            if keyword in lowered:
                return Decision(passed=True, reason=f"matched '{keyword}'")
        return Decision(passed=False, reason="no keyword match")
