"""
Unit tests for device fingerprinting and user agent parsing
"""

import pytest

from account_service.services.device_fingerprint import ClientMetadata, compute_fingerprint, describe_device
from account_service.utils.device import parse_browser, parse_device_type, parse_os
from tests.unit.conftest import FIREFOX_ON_LINUX


CHROME_ON_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_ON_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
SAFARI_ON_IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class TestComputeFingerprint:

    def test_stable_for_same_client(self):
        client = ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="203.0.113.7")

        assert compute_fingerprint(client) == compute_fingerprint(
            ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="203.0.113.7")
        )

    def test_differs_by_user_agent(self):
        first = ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="203.0.113.7")
        second = ClientMetadata(user_agent=CHROME_ON_WINDOWS, ip_address="203.0.113.7")

        assert compute_fingerprint(first) != compute_fingerprint(second)

    def test_differs_by_ip(self):
        first = ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="203.0.113.7")
        second = ClientMetadata(user_agent=FIREFOX_ON_LINUX, ip_address="198.51.100.1")

        assert compute_fingerprint(first) != compute_fingerprint(second)

    def test_missing_metadata_still_hashes(self):
        assert len(compute_fingerprint(ClientMetadata())) == 32


class TestDescribeDevice:

    @pytest.mark.parametrize("user_agent,expected", [
        (FIREFOX_ON_LINUX, "Firefox on Linux"),
        (SAFARI_ON_IPHONE, "Mobile Safari on iOS"),
        (None, "Unknown on Unknown"),
        ("", "Unknown on Unknown"),
    ])
    def test_display_name(self, user_agent, expected):
        assert describe_device(ClientMetadata(user_agent=user_agent)) == expected

    def test_windows_browser(self):
        assert describe_device(ClientMetadata(user_agent=CHROME_ON_WINDOWS)).startswith("Chrome on Windows")

    def test_unrecognised_agent(self):
        assert parse_browser("opaque") == "Unknown"
        assert parse_os("opaque") == "Unknown"

    @pytest.mark.parametrize("user_agent,expected", [
        (SAFARI_ON_IPHONE, "mobile"),
        (SAFARI_ON_IPAD, "tablet"),
        (CHROME_ON_WINDOWS, "desktop"),
        (None, "Unknown"),
    ])
    def test_device_type(self, user_agent, expected):
        assert parse_device_type(user_agent) == expected
