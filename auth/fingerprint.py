"""
auth/fingerprint.py -- Derive a ClientFingerprint from an incoming request.

The raw User-Agent string is the binding value: a session remembers the one
it was created with and the session gate rejects any other. browser/os are
coarse labels for the session-history view only, so a short ordered pattern
table is enough -- first match wins, which is why Edge and Opera are checked
before Chrome and Chrome before Safari.

Client IP: first X-Forwarded-For hop when present, else the socket peer.
The IPv4-mapped IPv6 prefix (::ffff:) is stripped so the same client is
recorded the same way on dual-stack listeners.
"""

from __future__ import annotations

import re

from starlette.requests import Request

from auth.models import ClientFingerprint

_BROWSERS: list[tuple[str, re.Pattern[str]]] = [
    ("Edge", re.compile(r"Edg(e|A|iOS)?/", re.I)),
    ("Opera", re.compile(r"OPR/|Opera", re.I)),
    ("Firefox", re.compile(r"Firefox/|FxiOS/", re.I)),
    ("Chrome", re.compile(r"Chrome/|CriOS/", re.I)),
    ("Safari", re.compile(r"Safari/", re.I)),
    ("curl", re.compile(r"^curl/", re.I)),
]

_OPERATING_SYSTEMS: list[tuple[str, re.Pattern[str]]] = [
    ("Windows", re.compile(r"Windows NT", re.I)),
    ("Android", re.compile(r"Android", re.I)),
    ("iOS", re.compile(r"iPhone|iPad|iPod", re.I)),
    ("macOS", re.compile(r"Mac OS X|Macintosh", re.I)),
    ("Linux", re.compile(r"Linux|X11", re.I)),
]


def _classify(source: str, table: list[tuple[str, re.Pattern[str]]]) -> str:
    for label, pattern in table:
        if pattern.search(source):
            return label
    return "Other"


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"
    return ip.removeprefix("::ffff:")


def client_fingerprint(request: Request) -> ClientFingerprint:
    source = request.headers.get("User-Agent", "")
    return ClientFingerprint(
        source=source,
        ip_address=client_ip(request),
        browser=_classify(source, _BROWSERS),
        os=_classify(source, _OPERATING_SYSTEMS),
    )
