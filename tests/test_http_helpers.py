"""Unit tests for the shared HTTP helpers."""

import unittest

import httpx
import requests

from singleflight.auth import __version__
from singleflight.auth._http import _PY_VERSION, error_detail, get_user_agent, resolve_url


class TestGetUserAgent(unittest.TestCase):
    def test_basic_user_agent(self):
        ua = get_user_agent("requests/2.31.0")
        self.assertEqual(ua, f"singleflight-auth/{__version__} python/{_PY_VERSION} requests/2.31.0")

    def test_user_agent_with_client_name(self):
        ua = get_user_agent("python-httpx/0.28.1", "MyClient")
        self.assertEqual(ua, f"singleflight-auth/{__version__} python/{_PY_VERSION} python-httpx/0.28.1 MyClient")

    def test_user_agent_with_empty_client_name(self):
        ua = get_user_agent("requests/2.31.0", "")
        # Empty string is falsy, so no client name appended
        self.assertEqual(ua, f"singleflight-auth/{__version__} python/{_PY_VERSION} requests/2.31.0")


class TestErrorDetail(unittest.TestCase):
    def test_detail_field(self):
        resp = httpx.Response(400, json={"detail": "bad refresh token", "message": "ignored"})
        self.assertEqual(error_detail(resp), "bad refresh token")

    def test_message_field(self):
        resp = httpx.Response(404, json={"message": "No such item"})
        self.assertEqual(error_detail(resp), "No such item")

    def test_plain_text_body(self):
        resp = requests.Response()
        resp.status_code = 502
        resp._content = b"Bad Gateway"
        self.assertEqual(error_detail(resp), "Bad Gateway")

    def test_non_dict_json(self):
        resp = httpx.Response(500, json=["oops"])
        self.assertEqual(error_detail(resp), "['oops']")


class TestResolveUrl(unittest.TestCase):
    def test_relative_path(self):
        self.assertEqual(resolve_url("https://api.test/v1/", "items/1"), "https://api.test/v1/items/1")

    def test_base_without_trailing_slash(self):
        self.assertEqual(resolve_url("https://api.test/v1", "items"), "https://api.test/v1/items")

    def test_absolute_url_unchanged(self):
        self.assertEqual(resolve_url("https://api.test/v1/", "https://other.test/x"), "https://other.test/x")

    def test_leading_slash_rejected(self):
        with self.assertRaises(ValueError):
            resolve_url("https://api.test/v1/", "/items")


if __name__ == "__main__":
    unittest.main()
