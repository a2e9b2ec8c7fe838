from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from cuesync.contracts import TranslationBlock

# no nesting: the first "}" after a "{" closes the block
_BLOCK_RE = re.compile(r"\{([^{}]+)?\}")


def find_blocks(script: str) -> List[TranslationBlock]:
    """Left-to-right, non-overlapping scan for {...} translation blocks."""
    out: List[TranslationBlock] = []
    for m in _BLOCK_RE.finditer(script or ""):
        out.append(
            TranslationBlock(
                open_offset=m.start(),
                close_offset=m.end(),
                inner_text=(m.group(1) or "").strip(),
            )
        )
    return out


def ends_with_keyword(transcript: str, keyword: str) -> bool:
    if not keyword:
        return False
    return (transcript or "").rstrip().lower().endswith(keyword.strip().lower())


@dataclass
class TriggerRecord:
    prefetched: set[int] = field(default_factory=set)  # open offsets
    fired: set[int] = field(default_factory=set)       # close offsets

    def clear(self) -> None:
        self.prefetched.clear()
        self.fired.clear()


class BlockDetector:
    """
    Decides when each translation block is pre-fetched and when it fires.

    Pre-fetch: total_progress >= open_offset - lookahead.
    Fire: total_progress >= close_offset - trigger_margin, or a force signal
    for a block that was already pre-fetched. One fire per call, then a
    cooldown during which calls are dropped.
    """

    def __init__(
        self,
        script: str,
        *,
        on_prefetch: Callable[[str], None],
        on_fire: Callable[[str], None],
        lookahead: int = 50,
        trigger_margin: int = 5,
        cooldown_sec: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if lookahead < 0 or trigger_margin < 0:
            raise ValueError("lookahead and trigger_margin must be >= 0")
        # shortest block "{}" spans 2 chars; a wider margin could fire before pre-fetch
        if trigger_margin > lookahead + 2:
            raise ValueError("trigger_margin must not exceed lookahead + 2")
        self.script = script or ""
        self.blocks = find_blocks(self.script)
        self.on_prefetch = on_prefetch
        self.on_fire = on_fire
        self.lookahead = int(lookahead)
        self.trigger_margin = int(trigger_margin)
        self.cooldown_sec = float(cooldown_sec)
        self.clock = clock
        self.record = TriggerRecord()
        self.last_fire_at: Optional[float] = None

    def check(self, total_progress: int, *, force: bool = False, paused: bool = False) -> Optional[TranslationBlock]:
        """Run one detection pass; return the block that fired, if any."""
        if paused or not self.blocks:
            return None
        now = self.clock()
        if self.last_fire_at is not None and now - self.last_fire_at < self.cooldown_sec:
            return None

        for block in self.blocks:
            if (
                block.open_offset not in self.record.prefetched
                and block.close_offset not in self.record.fired
                and total_progress >= block.open_offset - self.lookahead
            ):
                self.record.prefetched.add(block.open_offset)
                self.on_prefetch(block.inner_text)

            if block.close_offset in self.record.fired:
                continue
            in_zone = total_progress >= block.close_offset - self.trigger_margin
            forced = force and block.open_offset in self.record.prefetched
            if in_zone or forced:
                self.record.fired.add(block.close_offset)
                self.last_fire_at = now
                self.on_fire(block.inner_text)
                return block
        return None

    def forget_prefetched(self) -> None:
        """Voice or language changed: blocks not yet fired may pre-fetch again."""
        self.record.prefetched.clear()

    def reset(self) -> None:
        self.record.clear()
        self.last_fire_at = None
