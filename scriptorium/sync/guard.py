"""
Data-loss guard.

Before a text change is persisted, the guard compares how many annotation
tokens the stored text had with how many the new text has. A save that turns
a text with annotations into one with none is refused. This catches edits
built on a stale copy of the block (for instance a comment anchor added after
the editor captured the text); it also refuses a user deliberately deleting
the last annotation, which then needs an explicit confirmation or a reload.
"""

import logging
from typing import Optional

from ..config import config
from ..models import GuardVerdict
from .annotations import Tokenizer, count_annotation_tokens, total_tokens


class DataLossGuard:
    """
    Checks text changes for silently dropped annotations.
    """

    def __init__(self, tokenizer: Optional[Tokenizer] = None, enabled: Optional[bool] = None):
        """
        Initialize the guard.

        Args:
            tokenizer: ``text -> {kind: count}`` function (defaults to the inline token syntax)
            enabled: Turn checking on/off (defaults to config value)
        """
        self.tokenizer = tokenizer or count_annotation_tokens
        self.enabled = config.data_loss_guard_enabled if enabled is None else enabled

    def check(self, previous_text: Optional[str], candidate_text: Optional[str]) -> GuardVerdict:
        """
        Decide whether ``candidate_text`` may replace ``previous_text``.

        Args:
            previous_text: The text the store held before this edit cycle
            candidate_text: The text about to be persisted

        Returns:
            A verdict; ``allowed`` is False only when every annotation would vanish
        """
        previous = previous_text or ""
        candidate = candidate_text or ""
        if not self.enabled or previous == candidate:
            return GuardVerdict(allowed=True)

        previous_kinds = self.tokenizer(previous)
        previous_count = total_tokens(previous_kinds)
        candidate_count = total_tokens(self.tokenizer(candidate))

        if previous_count > 0 and candidate_count == 0:
            reason = (
                f"new text removes all {previous_count} annotation(s) "
                f"({', '.join(k for k, v in previous_kinds.items() if v)})"
            )
            logging.warning(f"Data-loss guard: {reason}")
            return GuardVerdict(
                allowed=False,
                previous_count=previous_count,
                candidate_count=candidate_count,
                previous_kinds={k: v for k, v in previous_kinds.items() if v},
                reason=reason,
            )

        return GuardVerdict(allowed=True, previous_count=previous_count, candidate_count=candidate_count)
