"""
Detectors for sensitive data leaking through API responses.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from apiwatch.schemas import ResponseMetadata

_QUOTED_VALUE = r"""['"]?\s*[:=]\s*['"][^'"]+['"]"""
_SECRET_KEYS = (
    "password", "apikey", "api_key", "secret", "token", "auth",
    "jwt", "access_token", "refresh_token",
)

SENSITIVE_DATA_PATTERNS: Dict[str, re.Pattern] = {
    "EMAIL": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "CREDIT_CARD": re.compile(r"\b(?:\d[ -]*?){13,16}\b"),
    "SSN": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "SECRET": re.compile(
        "|".join(rf"\b{key}{_QUOTED_VALUE}" for key in _SECRET_KEYS)
        # JWT-shaped: header.payload.signature
        + r"|\b[A-Za-z0-9_\-]{21,}\.[A-Za-z0-9_\-]{6,}\.[A-Za-z0-9_\-]{27,}\b",
        re.IGNORECASE,
    ),
    "PHONE": re.compile(r"\b(?:\+\d{1,2}\s)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}\b"),
}


@dataclass
class SensitiveMatch:
    type: str
    count: int

    def as_dict(self) -> dict:
        return {"type": self.type, "count": self.count}


def scan_text(text: str) -> List[SensitiveMatch]:
    """Run every detector over `text`; only detectors that matched are returned."""
    found = []
    for data_type, pattern in SENSITIVE_DATA_PATTERNS.items():
        count = sum(1 for _ in pattern.finditer(text))
        if count:
            found.append(SensitiveMatch(type=data_type, count=count))
    return found


def metadata_text(metadata: ResponseMetadata) -> Optional[str]:
    """
    Text the detectors see: the captured body sample only. Headers are never
    scanned.
    """
    return metadata.response_body_sample or None
