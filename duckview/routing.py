# duckview/routing.py

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from duckview.config.defaults import default


_LEADING_INT = re.compile(r"^[+-]?\d+")


def parse_episode_indices(raw: Optional[str] = None) -> List[int]:
    """Whitespace separated episode indices; tokens without a leading integer are skipped.

    Negative values are dropped. Falls back to [0] when nothing parses.
    """
    raw = default.EPISODES if raw is None else raw
    indices: List[int] = []
    for token in (raw or "").split():
        m = _LEADING_INT.match(token.strip())
        if not m:
            continue
        value = int(m.group(0))
        if value >= 0:
            indices.append(value)
    return indices or [0]


def episode_redirect_path(org: str, dataset: str, indices: Sequence[int] = (0,)) -> str:
    episode = indices[0] if indices else 0
    return f"/data/{org}/{dataset}/episode_{episode}"
