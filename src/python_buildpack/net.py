from __future__ import annotations

import http.client
import logging
import shutil
import socket
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional

from .errors import DownloadFailure

LOG = logging.getLogger(__name__)


def fetch(url: str, *, retries: int = 3, timeout: int = 10, backoff: float = 1.0) -> bytes:
    """Fetch a URL, retrying transient failures a bounded number of times."""
    return _with_retries(url, lambda resp: resp.read(), retries=retries, timeout=timeout, backoff=backoff)


def download(url: str, destination: Path, *, retries: int = 3, timeout: int = 10, backoff: float = 1.0) -> Path:
    destination.parent.mkdir(parents=True, exist_ok=True)

    def _write(resp) -> Path:
        with destination.open("wb") as fh:
            shutil.copyfileobj(resp, fh)
        return destination

    return _with_retries(url, _write, retries=retries, timeout=timeout, backoff=backoff)


def _with_retries(url: str, handler, *, retries: int, timeout: int, backoff: float):
    attempts = max(1, retries)
    last_error: Optional[str] = None
    for attempt in range(1, attempts + 1):
        try:
            with urllib.request.urlopen(url, timeout=timeout) as resp:  # noqa: S310
                return handler(resp)
        except urllib.error.HTTPError as exc:
            last_error = f"HTTP {exc.code}"
            if exc.code < 500:
                # Client errors are deterministic; retrying will not help.
                raise DownloadFailure(url, last_error, attempts=attempt) from exc
        except (urllib.error.URLError, http.client.HTTPException, socket.timeout, ConnectionError) as exc:
            last_error = str(getattr(exc, "reason", exc))
        LOG.warning("Attempt %s/%s to fetch %s failed: %s", attempt, attempts, url, last_error)
        if attempt < attempts:
            time.sleep(backoff * attempt)
    raise DownloadFailure(url, last_error or "unknown error", attempts=attempts)
