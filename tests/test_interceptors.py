import unittest
from unittest.mock import MagicMock

from singleflight.auth.errors import UpstreamAuthFailure
from singleflight.auth.interceptors import (
    AttemptState,
    bearer_header,
    credential_from_header,
    is_auth_rejection,
    next_state,
    with_credential,
)


def _response(status_code):
    resp = MagicMock()
    resp.status_code = status_code
    return resp


class WithCredentialTest(unittest.TestCase):
    def test_returns_new_mapping(self):
        original = {"Accept": "application/json"}
        updated = with_credential(original, "tok")
        self.assertEqual(updated, {"Accept": "application/json", "Authorization": "Bearer tok"})
        self.assertEqual(original, {"Accept": "application/json"})

    def test_replaces_existing_header_case_insensitively(self):
        updated = with_credential({"authorization": "Bearer old"}, "new")
        self.assertEqual(updated, {"Authorization": "Bearer new"})

    def test_credential_from_header(self):
        self.assertEqual(credential_from_header(bearer_header("abc")), "abc")
        self.assertIsNone(credential_from_header("Basic xyz"))
        self.assertIsNone(credential_from_header(None))


class NextStateTest(unittest.TestCase):
    def test_auth_rejection(self):
        self.assertTrue(is_auth_rejection(401))
        self.assertFalse(is_auth_rejection(403))

    def test_pass_through(self):
        for status in (200, 204, 403, 404, 500):
            self.assertIsNone(next_state(AttemptState.FIRST_ATTEMPT, _response(status)))
            self.assertIsNone(next_state(AttemptState.RETRIED, _response(status)))

    def test_first_rejection_is_retried(self):
        self.assertIs(next_state(AttemptState.FIRST_ATTEMPT, _response(401)), AttemptState.RETRIED)

    def test_second_rejection_is_terminal(self):
        resp = _response(401)
        with self.assertRaises(UpstreamAuthFailure) as cm:
            next_state(AttemptState.RETRIED, resp)
        self.assertIs(cm.exception.response, resp)


if __name__ == "__main__":
    unittest.main()
