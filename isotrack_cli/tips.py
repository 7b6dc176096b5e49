from __future__ import annotations

import re
from typing import List, Optional

from isotrack_cli.models.controls import TipStep

_MAIN_STEP_RE = re.compile(r"^\d+\.")
_SUB_ITEM_RE = re.compile(r"^[-•]\s*")


def parse_tip(tip: Optional[str]) -> List[TipStep]:
    """Split a guidance tip into numbered steps with their bullet sub-items.

    Lines starting with ``1.``, ``2.`` ... open a new step. Lines starting
    with ``-`` or ``•`` (indented or not) belong to the most recent step.
    Any other non-blank line becomes a step of its own.
    """
    if not tip:
        return []

    steps: List[TipStep] = []
    for line in tip.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if _SUB_ITEM_RE.match(stripped):
            text = _SUB_ITEM_RE.sub("", stripped, count=1)
            if steps:
                steps[-1].sub_items.append(text)
            else:
                steps.append(TipStep(text=text))
            continue
        steps.append(TipStep(text=stripped))
    return steps


def is_main_step(step: TipStep) -> bool:
    return bool(_MAIN_STEP_RE.match(step.text))
