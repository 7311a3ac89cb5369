"""
Splits a submitted script into spoken narration and inline stage directions.

Directions may be written as [bracketed spans], as whole lines wrapped in
parentheses, or as lines starting with "Scene:" / "Visual:" / "B-roll:".
They are removed from the narration and reused as footage search hints.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import List

BRACKET_RE = re.compile(r"\[([^\]]+)\]")
PAREN_LINE_RE = re.compile(r"^\s*\(([^)]+)\)\s*$")
LABEL_LINE_RE = re.compile(r"^\s*(?:scene|visual|b-roll|broll|shot)\s*[:\-]\s*(.+)$", re.IGNORECASE)
WORD_RE = re.compile(r"[A-Za-z][A-Za-z'\-]{2,}")

STOPWORDS = {
    "the", "and", "for", "that", "this", "with", "you", "your", "are", "was", "were",
    "will", "from", "have", "has", "had", "not", "but", "all", "can", "our", "out",
    "into", "they", "them", "their", "there", "then", "than", "what", "when", "where",
    "which", "who", "how", "why", "about", "just", "like", "more", "most", "some",
    "any", "one", "two", "three", "four", "five", "first", "next", "finally", "today",
    "it's", "its", "let's", "we're", "you're", "that's", "here", "over", "also",
    "without", "every", "each", "while", "because", "these", "those", "been", "being",
    "would", "could", "should", "number", "back", "stick", "around", "welcome",
    "channel", "video", "make", "makes", "turns", "end",
}


@dataclass
class ParsedScript:
    narration: str
    directions: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)


def extract_keywords(text: str, limit: int = 8) -> List[str]:
    """Most frequent non-stopword terms, ties broken by first appearance."""
    words = [w.lower().strip("'-") for w in WORD_RE.findall(text)]
    words = [w for w in words if len(w) > 2 and w not in STOPWORDS]
    counts = Counter(words)
    first_seen = {}
    for i, w in enumerate(words):
        first_seen.setdefault(w, i)
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]


def parse_script(text: str) -> ParsedScript:
    directions: List[str] = []
    spoken_lines: List[str] = []

    for line in text.splitlines():
        paren = PAREN_LINE_RE.match(line)
        label = LABEL_LINE_RE.match(line)
        if paren or label:
            hint = (paren or label).group(1).strip()
            # "(Scene: ...)" carries a label inside the parentheses
            inner = LABEL_LINE_RE.match(hint)
            directions.append(inner.group(1).strip() if inner else hint)
            continue

        for hint in BRACKET_RE.findall(line):
            directions.append(hint.strip())
        line = BRACKET_RE.sub("", line)
        spoken_lines.append(re.sub(r"[ \t]{2,}", " ", line).strip())

    # collapse runs of blank lines into paragraph breaks
    narration = re.sub(r"\n{3,}", "\n\n", "\n".join(spoken_lines)).strip()
    directions = [d for d in directions if d]
    return ParsedScript(narration=narration, directions=directions, keywords=extract_keywords(narration))
