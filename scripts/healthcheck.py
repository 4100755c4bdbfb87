"""Container healthcheck for the nl2sql-analyst HTTP transport.

Exit code 0 means the /health route answered and the analyst service is
initialized; 1 otherwise. Uses stdlib only so it runs without the package.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Final
from urllib.request import Request, urlopen

URL: Final[str] = os.getenv("NL2SQL_ANALYST_HEALTH_URL", "http://127.0.0.1:8000/health")


def main() -> int:
    try:
        req = Request(URL, headers={"User-Agent": "nl2sql-analyst/healthcheck"})  # noqa: S310
        with urlopen(req, timeout=4) as resp:  # noqa: S310 - configured local endpoint
            if resp.status != 200:
                print(f"unexpected status: {resp.status}", file=sys.stderr)
                return 1
            data = json.loads(resp.read().decode("utf-8"))
    except Exception as exc:  # noqa: BLE001 - any failure is unhealthy
        print(f"healthcheck error: {exc}", file=sys.stderr)
        return 1

    if data.get("status") != "healthy":
        print(f"payload not healthy: {data}", file=sys.stderr)
        return 1
    analyst = data.get("analyst") or {}
    if not analyst.get("initialized"):
        print(f"analyst service not initialized: {analyst.get('error')}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - used by Docker
    raise SystemExit(main())
