# alertmigrator/core/dedupe.py
from __future__ import annotations

import secrets
import string
from typing import Set

_ALPHABET = string.ascii_letters + string.digits

SHORT_UID_LENGTH = 14


def generate_short_uid() -> str:
    # Always starts with a letter so it is a valid identifier in URLs and labels.
    first = secrets.choice(string.ascii_letters)
    return first + "".join(secrets.choice(_ALPHABET) for _ in range(SHORT_UID_LENGTH - 1))


class Deduplicator:
    """
    Set of seen strings (titles, uids) that can generate unique variants.

    - case_insensitive: uniqueness is compared lower-cased (MySQL collations).
    - max_len > 0: candidates are truncated before comparing and
      deduplicate() never returns anything longer than max_len.

    deduplicate() does not register its result; callers add() it.
    """

    def __init__(self, case_insensitive: bool = False, max_len: int = 0) -> None:
        self.case_insensitive = bool(case_insensitive)
        self.max_len = int(max_len or 0)
        self._seen: Set[str] = set()

    def _normalize(self, value: str) -> str:
        v = value or ""
        if self.case_insensitive:
            v = v.lower()
        if self.max_len > 0 and len(v) > self.max_len:
            v = v[: self.max_len]
        return v

    def contains(self, candidate: str) -> bool:
        return self._normalize(candidate) in self._seen

    def add(self, candidate: str) -> None:
        self._seen.add(self._normalize(candidate))

    def deduplicate(self, candidate: str) -> str:
        suffix = generate_short_uid()
        base = candidate or ""
        if self.max_len > 0 and len(base) + 1 + len(suffix) > self.max_len:
            base = base[: max(self.max_len - 1 - len(suffix), 0)]
        return f"{base}_{suffix}"

    def __len__(self) -> int:
        return len(self._seen)
