# scripts/tot/fallback.py
"""Seed never-vended keys from the last build number published remotely."""

import logging
import os
import time
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DEFAULT_URI = os.environ.get(
    "TOT_FALLBACK_URI",
    "https://storage.googleapis.com/kubernetes-jenkins/logs/{key}/latest-build.txt",
)


class FallbackHandler:
    """Callable that returns the last published number for a key, or 0."""

    def __init__(self, template: str = DEFAULT_URI, attempts: int = 10,
                 delay: float = 2.0, timeout: float = 10.0):
        if "{key}" not in template:
            raise ValueError(f"fallback URI must contain {{key}}: {template}")
        try:
            template.format(key="job")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"bad fallback URI {template}: {e!r}") from e
        self.template = template
        self.attempts = attempts
        self.delay = delay
        self.timeout = timeout

    def _fetch(self, url: str) -> str:
        for attempt in range(1, self.attempts + 1):
            try:
                r = requests.get(url, timeout=self.timeout)
            except requests.RequestException as e:
                logger.error(f"Failed to GET {url} (attempt {attempt}): {e}")
            else:
                if r.status_code == 200:
                    return r.text
                if r.status_code == 404:
                    return ""
                logger.error(f"GET {url} returned {r.status_code} (attempt {attempt})")
            if attempt < self.attempts:
                time.sleep(self.delay)
        return ""

    def __call__(self, key: str) -> int:
        url = self.template.format(key=quote(key, safe="/"))
        body = self._fetch(url).strip()
        try:
            n = int(body)
        except ValueError:
            if body:
                logger.error(f"Unparseable build number from {url}: {body[:40]!r}")
            return 0
        return max(n, 0)
