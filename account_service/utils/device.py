"""
Client metadata parsing (browser, OS, device type) via user-agents
"""

from typing import Optional

from user_agents import parse

UNKNOWN = "Unknown"

# ua-parser reports unrecognised families as "Other"
_UNRECOGNISED = ("", "Other")


def _family(value: str) -> str:
    return UNKNOWN if value in _UNRECOGNISED else value


def parse_browser(user_agent: Optional[str]) -> str:
    if not user_agent:
        return UNKNOWN
    return _family(parse(user_agent).browser.family)


def parse_os(user_agent: Optional[str]) -> str:
    if not user_agent:
        return UNKNOWN
    return _family(parse(user_agent).os.family)


def parse_device_type(user_agent: Optional[str]) -> str:
    """'tablet', 'mobile', 'bot' or 'desktop' ('Unknown' without a user agent)"""
    if not user_agent:
        return UNKNOWN
    parsed = parse(user_agent)
    if parsed.is_tablet:
        return "tablet"
    if parsed.is_mobile:
        return "mobile"
    if parsed.is_bot:
        return "bot"
    return "desktop"


def describe_user_agent(user_agent: Optional[str]) -> str:
    """Human-readable device name, e.g. 'Chrome on Windows'"""
    return f"{parse_browser(user_agent)} on {parse_os(user_agent)}"
