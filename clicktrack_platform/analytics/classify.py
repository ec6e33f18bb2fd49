"""
Request classification helpers for click events.

Simple string matching only: device type and browser from the User-Agent,
a coarse country bucket from the client address. No geolocation database.
"""

import ipaddress
import re
from typing import Optional, Tuple

_BOT = re.compile(r"bot|crawler|spider|slurp|preview", re.I)
_TABLET = re.compile(r"iPad|Tablet|PlayBook|Silk", re.I)
_MOBILE = re.compile(r"Mobile|Android|iPhone|iPod|Windows Phone", re.I)

# Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari.
_BROWSERS = (
    ("Edge", re.compile(r"Edg(e|A|iOS)?/")),
    ("Opera", re.compile(r"OPR/|Opera")),
    ("Samsung Internet", re.compile(r"SamsungBrowser/")),
    ("Chrome", re.compile(r"Chrome/|CriOS/")),
    ("Firefox", re.compile(r"Firefox/|FxiOS/")),
    ("Safari", re.compile(r"Safari/")),
    ("Internet Explorer", re.compile(r"MSIE |Trident/")),
)


def device_type(user_agent: str) -> str:
    """Classify a User-Agent as Bot, Tablet, Mobile or Desktop."""
    ua = user_agent or ""
    if not ua:
        return "Unknown"
    if _BOT.search(ua):
        return "Bot"
    if _TABLET.search(ua) or ("Android" in ua and "Mobile" not in ua):
        return "Tablet"
    if _MOBILE.search(ua):
        return "Mobile"
    return "Desktop"


def browser(user_agent: str) -> str:
    ua = user_agent or ""
    for name, pattern in _BROWSERS:
        if pattern.search(ua):
            return name
    return "Other" if ua else "Unknown"


def client_ip(forwarded_for: Optional[str], peer: Optional[str]) -> str:
    """First hop of X-Forwarded-For if present, else the socket peer."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer or ""


def location(ip: str) -> Tuple[str, str]:
    """
    Return (country, city) for an address.

    Private, loopback and link-local addresses map to ("Local", ""). Everything
    else is ("Unknown", ""); plug a real geolocation service in here.
    """
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return "Unknown", ""
    if addr.is_private or addr.is_loopback or addr.is_link_local:
        return "Local", ""
    return "Unknown", ""
