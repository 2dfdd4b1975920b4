import logging

from user_agents import parse

from schema import DeviceInfo

logger = logging.getLogger(__name__)

# ua-parser reports "Other" when it does not recognise a family
_UNKNOWN_FAMILY = "Other"


def _family(value: str) -> str:
    if not value or value == _UNKNOWN_FAMILY:
        return ""
    return value


def classify_user_agent(user_agent: str) -> DeviceInfo:
    """Parse a raw User-Agent header into a device descriptor.

    An absent UA gives type "unknown"; any other UA without a mobile or
    tablet signal is treated as desktop.
    """
    if not user_agent:
        return DeviceInfo()

    try:
        ua = parse(user_agent)
        if ua.is_tablet:
            device_type = "tablet"
        elif ua.is_mobile:
            device_type = "mobile"
        else:
            device_type = "desktop"

        os_name = _family(ua.os.family)
        os_label = " ".join(p for p in (os_name, ua.os.version_string if os_name else "") if p)
        browser_name = _family(ua.browser.family)

        return DeviceInfo(
            type=device_type,
            os=os_label or "unknown",
            browser=browser_name or "unknown",
            version=ua.browser.version_string if browser_name else "",
        )
    except Exception as e:
        logger.warning(f"Could not parse user agent {user_agent[:80]!r}: {e}")
        return DeviceInfo()
