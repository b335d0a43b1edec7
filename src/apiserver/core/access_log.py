"""
Access logging.

One line per answered request on the "apiserver.access" logger, in a
combined-log-like format:

    127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "POST /api/users HTTP/1.1" 201 52 "curl/8.5.0" 0.84ms [3fa85f64]

Route it independently of the rest of the server:

    logging.getLogger("apiserver.access").addHandler(file_handler)

Connections that are abandoned before a response is written produce no
access line. The Session logs those at debug level instead.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone


logger = logging.getLogger("apiserver.access")


@dataclass
class RequestLog:
    """Structured access-log entry for one request/response exchange."""

    session_id: str
    method: str
    target: str
    version: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    @staticmethod
    def now() -> str:
        return datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target} {self.version}" {self.status_code} '
            f'{self.content_length} "{self.user_agent or "-"}" {self.duration_ms:.2f}ms [{self.session_id}]'
        )


def log_request(entry: RequestLog) -> None:
    logger.info(entry.to_text())
