import base64
import json
import time
import unittest
from datetime import timezone

from singleflight.auth.inspector import (
    TokenInspector,
    TokenStatus,
    decode_claims,
    get_expiry,
    inspect,
    is_expired,
)


def _encode(data) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


def _make_token(claims: dict) -> str:
    return f"{_encode({'alg': 'HS256', 'typ': 'JWT'})}.{_encode(claims)}.c2lnbmF0dXJl"


class DecodeClaimsTest(unittest.TestCase):
    def test_decodes_payload(self):
        token = _make_token({"sub": "user-1", "exp": 1700000000})
        self.assertEqual(decode_claims(token), {"sub": "user-1", "exp": 1700000000})

    def test_wrong_segment_count_raises(self):
        with self.assertRaises(ValueError):
            decode_claims("only.two")

    def test_garbage_payload_raises(self):
        with self.assertRaises(ValueError):
            decode_claims("aaa.!!!not-base64!!!.ccc")

    def test_non_object_payload_raises(self):
        token = f"{_encode({'alg': 'none'})}.{_encode([1, 2, 3])}.sig"
        with self.assertRaises(ValueError):
            decode_claims(token)

    def test_non_string_raises(self):
        with self.assertRaises(ValueError):
            decode_claims(None)


class InspectTest(unittest.TestCase):
    def test_future_expiry_is_valid(self):
        token = _make_token({"exp": int(time.time()) + 3600})
        self.assertIs(inspect(token), TokenStatus.VALID)
        self.assertFalse(is_expired(token))

    def test_past_expiry_is_expired(self):
        token = _make_token({"exp": int(time.time()) - 10})
        self.assertIs(inspect(token), TokenStatus.EXPIRED)
        self.assertTrue(is_expired(token))

    def test_missing_exp_is_expired(self):
        token = _make_token({"sub": "user-1"})
        self.assertIs(inspect(token), TokenStatus.EXPIRED)

    def test_malformed_is_reported_and_counts_as_expired(self):
        self.assertIs(inspect("not-a-jwt"), TokenStatus.MALFORMED)
        self.assertTrue(is_expired("not-a-jwt"))

    def test_non_numeric_exp_is_malformed(self):
        token = _make_token({"exp": "tomorrow"})
        self.assertIs(inspect(token), TokenStatus.MALFORMED)

    def test_margin_expires_token_early(self):
        token = _make_token({"exp": int(time.time()) + 20})
        self.assertFalse(is_expired(token))
        self.assertTrue(is_expired(token, margin=30))


class GetExpiryTest(unittest.TestCase):
    def test_returns_utc_datetime(self):
        expiry = get_expiry(_make_token({"exp": 1700000000}))
        self.assertEqual(expiry.tzinfo, timezone.utc)
        self.assertEqual(int(expiry.timestamp()), 1700000000)

    def test_none_for_malformed_or_missing(self):
        self.assertIsNone(get_expiry("garbage"))
        self.assertIsNone(get_expiry(_make_token({"sub": "x"})))

    def test_none_for_out_of_range_exp(self):
        self.assertIsNone(get_expiry(_make_token({"exp": 1e20})))
        self.assertIsNone(get_expiry(_make_token({"exp": -1e20})))


class TokenInspectorTest(unittest.TestCase):
    def test_is_valid(self):
        inspector = TokenInspector()
        self.assertTrue(inspector.is_valid(_make_token({"exp": int(time.time()) + 60})))
        self.assertFalse(inspector.is_valid(_make_token({"exp": int(time.time()) - 60})))
        self.assertFalse(inspector.is_valid(None))
        self.assertFalse(inspector.is_valid(""))

    def test_margin_is_applied(self):
        token = _make_token({"exp": int(time.time()) + 60})
        self.assertFalse(TokenInspector(margin=120).is_valid(token))


if __name__ == "__main__":
    unittest.main()
