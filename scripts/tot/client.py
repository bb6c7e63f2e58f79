# scripts/tot/client.py
import os
from urllib.parse import quote

import requests

VALUE_HEADER = "X-Tot-Value"


class TotClient:
    def __init__(self, base_url: str = None, timeout: float = 10.0):
        self.base_url = (base_url or os.environ.get("TOT_BASE_URL", "http://localhost:8888")).rstrip("/")
        self.timeout = timeout

    def _url(self, key: str) -> str:
        if not key:
            raise ValueError("key is required")
        return f"{self.base_url}/vend/{quote(key, safe='/')}"

    def vend(self, key: str) -> int:
        """Take the next number for key."""
        r = requests.get(self._url(key), timeout=self.timeout)
        r.raise_for_status()
        return int(r.text)

    def peek(self, key: str) -> int:
        """Current number for key, read from the header since HEAD has no body."""
        r = requests.head(self._url(key), timeout=self.timeout)
        r.raise_for_status()
        return int(r.headers[VALUE_HEADER])

    def set(self, key: str, value: int) -> None:
        if value < 0:
            raise ValueError(f"value must be non-negative, got {value}")
        r = requests.post(self._url(key), data=str(value), timeout=self.timeout)
        r.raise_for_status()


if __name__ == "__main__":
    import sys
    args = sys.argv[1:]
    usage = "Usage: client.py vend KEY | peek KEY | set KEY VALUE"
    if len(args) < 2:
        print(usage)
        sys.exit(2)
    cmd, key = args[0], args[1]
    c = TotClient()
    if cmd == "vend":
        print(c.vend(key))
    elif cmd == "peek":
        print(c.peek(key))
    elif cmd == "set" and len(args) > 2:
        c.set(key, int(args[2]))
    else:
        print(f"Unknown command: {cmd}. {usage}")
        sys.exit(2)
