# sgglaw/fetch/http_probe.py
"""
Transporte HTTP do probe: uma chamada HEAD → status code.

Erro de transporte (timeout, DNS, conexao) vira 500; nunca levanta.
"""
from __future__ import annotations

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

TRANSPORT_ERROR_STATUS = 500


class HttpProbe:
    def __init__(self, timeout: int = 30, user_agent: str = "sgglaw/1.0", session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent

    def head(self, url: str) -> int:
        try:
            resp = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            return resp.status_code
        except requests.RequestException as e:
            logger.warning("HEAD %s falhou: %s", url, e)
            return TRANSPORT_ERROR_STATUS

    __call__ = head
