"""
Browser identity descriptors (user agent, viewport, locale, timezone).

Descriptors come from fixed tables and are handed out round-robin with a
small random jitter, without repeating an entry until the whole table has
been used once.
"""

import random
from dataclasses import dataclass

DESKTOP = [
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", (1920, 1080)),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36", (1366, 768)),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36", (2560, 1440)),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36", (1536, 864)),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", (1440, 900)),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_1_0) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", (2560, 1600)),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0", (1280, 720)),
    ("Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0", (1280, 800)),
    ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_1) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.6 Safari/605.1.15", (1680, 1050)),
]

MOBILE = [
    ("Mozilla/5.0 (Linux; Android 14; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36", (412, 915)),
    ("Mozilla/5.0 (Linux; Android 13; Pixel 7 Pro) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Mobile Safari/537.36", (393, 851)),
    ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.6 Mobile/15E148 Safari/604.1", (390, 844)),
]

TABLET = [
    ("Mozilla/5.0 (iPad; CPU OS 17_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.6 Mobile/15E148 Safari/604.1", (768, 1024)),
    ("Mozilla/5.0 (Linux; Android 13; SM-X906C) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36", (1280, 800)),
]

LOCALES = ["ko-KR", "ko"]
TIMEZONES = ["Asia/Seoul"]


@dataclass(frozen=True)
class Fingerprint:
    user_agent: str
    viewport: tuple[int, int]
    locale: str
    timezone: str

    @property
    def device_class(self) -> str:
        ua = self.user_agent
        if "iPad" in ua or ("Android" in ua and "Mobile" not in ua):
            return "tablet"
        if "Mobile" in ua:
            return "mobile"
        return "desktop"


class FingerprintRotator:
    """Round-robin over the descriptor table with a ±1 jitter on each pick."""

    def __init__(self, table=None, rng: random.Random | None = None):
        self.table = list(table) if table is not None else [*DESKTOP, *MOBILE, *TABLET]
        self._rng = rng or random.SystemRandom()
        self._cursor = 0
        self._used: set[int] = set()

    def _next_index(self) -> int:
        total = len(self.table)
        if len(self._used) >= total:
            self._used.clear()

        for _ in range(total * 2):
            jitter = self._rng.randint(-1, 1)
            index = (self._cursor + jitter) % total
            if index not in self._used:
                break
        else:
            # jitter kept landing on used slots; take the first free one
            index = next(i for i in range(total) if i not in self._used)

        self._used.add(index)
        self._cursor += 1
        return index

    def next_descriptor(self) -> Fingerprint:
        user_agent, viewport = self.table[self._next_index()]
        return Fingerprint(
            user_agent=user_agent,
            viewport=viewport,
            locale=self._rng.choice(LOCALES),
            timezone=TIMEZONES[0],
        )

    def reset(self) -> None:
        self._cursor = 0
        self._used.clear()
