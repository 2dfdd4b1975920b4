from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Dict, List, Optional, Union


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Content variants -------------------------------------------------------

class ContentModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Stored maps use null for "not filled in"; let field defaults apply
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class UrlContent(ContentModel):
    url: str = ""


class TextContent(ContentModel):
    text: str = ""


class EmailContent(ContentModel):
    email: str = ""
    subject: str = ""
    body: str = ""


class SmsContent(ContentModel):
    phone: str = ""
    message: str = ""


class WifiContent(ContentModel):
    ssid: str = ""
    password: str = ""
    encryption: str = ""


Coordinate = Union[int, float, str]


class LocationContent(ContentModel):
    latitude: Optional[Coordinate] = Field(None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: Optional[Coordinate] = Field(None, validation_alias=AliasChoices("longitude", "lng"))
    address: str = ""


class VCardContent(ContentModel):
    first_name: str = Field("", validation_alias=AliasChoices("firstName", "first_name"))
    last_name: str = Field("", validation_alias=AliasChoices("lastName", "last_name"))
    company: str = Field("", validation_alias=AliasChoices("company", "org"))
    job_title: str = Field("", validation_alias=AliasChoices("jobTitle", "job_title", "title"))
    email: str = ""
    phone: str = ""
    website: str = Field("", validation_alias=AliasChoices("website", "url"))


class SocialContent(ContentModel):
    platform: str = ""
    username: str = ""


class UnknownContent(BaseModel):
    content_type: Optional[str] = None
    raw: Dict[str, Any] = {}


ContentVariant = Union[
    UrlContent,
    TextContent,
    EmailContent,
    SmsContent,
    WifiContent,
    LocationContent,
    VCardContent,
    SocialContent,
    UnknownContent,
]

CONTENT_MODELS = {
    "url": UrlContent,
    "text": TextContent,
    "email": EmailContent,
    "sms": SmsContent,
    "wifi": WifiContent,
    "location": LocationContent,
    "vcard": VCardContent,
    "social": SocialContent,
}


def parse_content(content_type: Optional[str], content: Optional[Dict[str, Any]]) -> ContentVariant:
    """Turn a stored content map into the variant for its content type.

    Raises pydantic.ValidationError when a known type carries unusable values.
    """
    raw = content or {}
    model = CONTENT_MODELS.get(content_type or "")
    if model is None:
        return UnknownContent(content_type=content_type, raw=raw)
    return model.model_validate(raw)


# --- Codes and scans --------------------------------------------------------

class QRCodeRecord(BaseModel):
    id: str
    short_id: Optional[str] = None
    user_id: Optional[str] = None
    content_type: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    destination_url: Optional[str] = None
    is_active: bool = False
    is_guest: bool = False
    expires_at: Optional[datetime] = None
    scan_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_scanned_at: Optional[datetime] = None

    @property
    def has_payload(self) -> bool:
        return self.content is not None or bool(self.destination_url)


class DeviceInfo(CamelModel):
    type: str = "unknown"
    os: str = "unknown"
    browser: str = "unknown"
    version: str = ""


class LocationInfo(CamelModel):
    country: str = "Unknown"
    city: str = "Unknown"
    region: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None


class ScanDraft(BaseModel):
    """Request-side facts captured before the redirect is returned."""
    ip_address: str = ""
    user_agent: str = ""
    referrer: Optional[str] = None
    device_info: DeviceInfo = DeviceInfo()


# --- HTTP payloads ----------------------------------------------------------

class ScanResponse(CamelModel):
    id: str
    qr_code_id: str
    scanned_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    device_info: DeviceInfo
    location: LocationInfo


class AnalyticsResponse(CamelModel):
    total_scans: int
    unique_scans: int
    recent_scans: List[ScanResponse]
    country_stats: Dict[str, int]
    device_stats: Dict[str, int]
    date_stats: Dict[str, int]
    last_scanned_at: Optional[datetime] = None


class CleanupSummary(CamelModel):
    deleted_qr_codes: int = Field(0, alias="deletedQRCodes")
    deleted_scans: int = 0


class CleanupResponse(CleanupSummary):
    success: bool = True
    message: str = "Cleanup completed"


class GuestStats(CamelModel):
    total_guest_qr_codes: int = Field(alias="totalGuestQRCodes")
    expired_guest_qr_codes: int = Field(alias="expiredGuestQRCodes")
    active_guest_qr_codes: int = Field(alias="activeGuestQRCodes")
    timestamp: datetime


class GuestStatsResponse(BaseModel):
    success: bool = True
    stats: GuestStats
