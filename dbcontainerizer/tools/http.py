"""Outbound HTTP(S) retrieval for backups and generator configuration documents."""
from __future__ import annotations

import os
import ssl
import urllib.request
import uuid
from pathlib import Path


CHUNK_SIZE: int = 1024 * 64


class UrlFetch:
    """Fetches URLs with `urllib`, optionally without certificate validation.

    Parameters
    ----------
    insecure : bool, optional
        Skip TLS certificate and host name checks.  Only meant for internal
        mirrors with self-signed certificates.
    timeout : float, optional
        Socket timeout in seconds for each request.
    """

    def __init__(self, insecure: bool = False, timeout: float = 60.0) -> None:
        self.insecure = insecure
        self.timeout = timeout

    def _context(self) -> ssl.SSLContext:
        if self.insecure:
            ctx = ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            return ctx
        return ssl.create_default_context()

    def get(self, url: str) -> bytes:
        with urllib.request.urlopen(url, timeout=self.timeout, context=self._context()) as r:
            return r.read()

    def download(self, url: str, target: Path) -> Path:
        target = target.absolute()
        target.parent.mkdir(parents=True, exist_ok=True)

        # download to temp file in target directory
        temp = target.with_name(f"{target.name}.tmp.{uuid.uuid4().hex}")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout, context=self._context()) as r:
                with temp.open("wb") as f:
                    while True:
                        chunk = r.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
        except BaseException:
            temp.unlink(missing_ok=True)
            raise

        os.replace(temp, target)
        return target
