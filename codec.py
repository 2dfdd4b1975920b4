"""Destination URIs for every QR content type.

``destination_for(content_type, content)`` is a pure function: the same
inputs always produce the same string. Anything placed inside a URI component
is percent-encoded the way browsers' ``encodeURIComponent`` does it, so stored
codes render identically whichever client generated them.
"""

import json
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

from schema import (
    ContentVariant,
    EmailContent,
    LocationContent,
    SmsContent,
    SocialContent,
    TextContent,
    UnknownContent,
    UrlContent,
    VCardContent,
    WifiContent,
    parse_content,
)

SOCIAL_PROFILE_URLS = {
    "instagram": "https://instagram.com/{username}",
    "facebook": "https://facebook.com/{username}",
    "twitter": "https://twitter.com/{username}",
    "linkedin": "https://linkedin.com/in/{username}",
    "youtube": "https://youtube.com/@{username}",
    "tiktok": "https://tiktok.com/@{username}",
    "whatsapp": "https://wa.me/{username}",
    "telegram": "https://t.me/{username}",
}


def encode_component(value: str) -> str:
    return quote(value, safe="!~*'()")


def social_profile_url(platform: str, username: str) -> str:
    if not platform or not username:
        return ""
    username = re.sub(r"^@", "", username)
    template = SOCIAL_PROFILE_URLS.get(platform, "https://" + platform + ".com/{username}")
    return template.format(username=username)


def vcard_text(card: VCardContent) -> str:
    return (
        "BEGIN:VCARD\n"
        "VERSION:3.0\n"
        f"FN:{card.first_name} {card.last_name}\n"
        f"ORG:{card.company}\n"
        f"TITLE:{card.job_title}\n"
        f"EMAIL:{card.email}\n"
        f"TEL:{card.phone}\n"
        f"URL:{card.website}\n"
        "END:VCARD"
    )


def _has_coordinate(value) -> bool:
    return value is not None and value != ""


def build_destination(content: ContentVariant) -> str:
    if isinstance(content, UrlContent):
        return content.url
    if isinstance(content, TextContent):
        return "data:text/plain;charset=utf-8," + encode_component(content.text)
    if isinstance(content, EmailContent):
        return (
            f"mailto:{content.email}"
            f"?subject={encode_component(content.subject)}"
            f"&body={encode_component(content.body)}"
        )
    if isinstance(content, SmsContent):
        target = f"sms:{content.phone}"
        if content.message:
            target += f"?body={encode_component(content.message)}"
        return target
    if isinstance(content, WifiContent):
        return f"WIFI:T:{content.encryption or 'WPA'};S:{content.ssid};P:{content.password};;"
    if isinstance(content, LocationContent):
        if _has_coordinate(content.latitude) and _has_coordinate(content.longitude):
            return f"geo:{content.latitude},{content.longitude}"
        return content.address
    if isinstance(content, VCardContent):
        return vcard_text(content)
    if isinstance(content, SocialContent):
        return social_profile_url(content.platform, content.username)
    if isinstance(content, UnknownContent):
        # Diagnostic only; callers refuse to redirect to it
        return json.dumps(content.raw, separators=(",", ":"), ensure_ascii=False, default=str)
    raise TypeError(f"Unhandled content variant: {type(content).__name__}")


def destination_for(content_type: Optional[str], content: Optional[Dict[str, Any]]) -> str:
    return build_destination(parse_content(content_type, content))
