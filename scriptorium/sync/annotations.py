"""
Inline annotation tokenizer.

Counts the structured tokens a block's text can carry:

- ``[[o5e:<type>:<slug>|Label]]`` Open5e reference
- ``[[page:<uuid>|Label]]`` resolved page link
- ``[[cmt:<uuid>|Label]]`` inline comment anchor
- ``[[Title]]`` unresolved wikilink
- ``[label](https://...)`` and bare ``http(s)://`` / ``mailto:`` external links

Counting is by pattern only; the guard compares totals, never exact strings.
"""

import re
from typing import Callable, Dict

WIKI_TOKEN_RE = re.compile(
    r"\[\[(?:"
    r"o5e:(?P<o5e_type>[a-z]+):(?P<o5e_slug>[a-z0-9-]+)\|(?P<o5e_label>[^\]]*?)"
    r"|page:(?P<page_id>[0-9a-f-]{36})\|(?P<page_label>[^\]]*?)"
    r"|cmt:(?P<comment_id>[0-9a-f-]{36})\|(?P<comment_label>[^\]]*?)"
    r"|(?P<title>[^\]]+)"
    r")\]\]",
    re.IGNORECASE,
)

EXTERNAL_LINK_RE = re.compile(
    r"\[[^\]]+\]\((?:https?://[^\s)]+|mailto:[^\s)]+)\)"
    r"|https?://\S+"
    r"|mailto:\S+"
)

ANNOTATION_KINDS = ("open5e", "page_link", "comment", "wikilink", "external_link")

Tokenizer = Callable[[str], Dict[str, int]]


def count_annotation_tokens(text: str) -> Dict[str, int]:
    """
    Count annotation tokens in ``text`` by kind.

    Args:
        text: Block text (may be empty or None)

    Returns:
        Mapping of every kind in ``ANNOTATION_KINDS`` to its count
    """
    counts = {kind: 0 for kind in ANNOTATION_KINDS}
    if not text:
        return counts

    for match in WIKI_TOKEN_RE.finditer(text):
        if match.group("o5e_slug"):
            counts["open5e"] += 1
        elif match.group("page_id"):
            counts["page_link"] += 1
        elif match.group("comment_id"):
            counts["comment"] += 1
        else:
            counts["wikilink"] += 1

    # external links inside a wiki token label are not separate annotations
    remainder = WIKI_TOKEN_RE.sub(" ", text)
    counts["external_link"] = len(EXTERNAL_LINK_RE.findall(remainder))
    return counts


def total_tokens(counts: Dict[str, int]) -> int:
    return sum(counts.values())
