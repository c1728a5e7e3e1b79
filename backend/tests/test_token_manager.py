import json
import os
import tempfile
import unittest

import httpx

from token_manager import (
    REFRESH_BUFFER_MS,
    FileTokenStorage,
    MemoryTokenStorage,
    TokenManager,
)

NOW = 1_700_000_000.0       # seconds
NOW_MS = int(NOW * 1000)


def session(expires_at, access="access-1", refresh="refresh-1"):
    return {"access_token": access, "refresh_token": refresh, "expires_at": expires_at, "expires_in": 3600}


class TokenManagerTests(unittest.TestCase):
    def setUp(self):
        self.requests = []
        self.responses = {}
        self.clock_value = NOW

        def handler(request):
            self.requests.append(request)
            status, payload = self.responses.get(request.url.path, (404, {"success": False}))
            return httpx.Response(status, json=payload)

        self.http = httpx.Client(transport=httpx.MockTransport(handler))
        self.manager = TokenManager("http://firelog.test", MemoryTokenStorage(), http_client=self.http,
                                    clock=lambda: self.clock_value)

    def tearDown(self):
        self.http.close()

    def test_save_session_normalizes_seconds(self):
        self.manager.save_session(session(int(NOW) + 3600))
        self.assertEqual(self.manager.get_expires_at(), (int(NOW) + 3600) * 1000)

        self.manager.save_session(session(NOW_MS + 1000))
        self.assertEqual(self.manager.get_expires_at(), NOW_MS + 1000)

    def test_validity_boundary(self):
        self.manager.save_session(session(NOW_MS + REFRESH_BUFFER_MS + 1))
        self.assertTrue(self.manager.is_token_valid())
        self.assertFalse(self.manager.needs_refresh())

        self.manager.save_session(session(NOW_MS + REFRESH_BUFFER_MS))
        self.assertFalse(self.manager.is_token_valid())
        self.assertTrue(self.manager.needs_refresh())

    def test_no_session(self):
        self.assertFalse(self.manager.is_token_valid())
        self.assertTrue(self.manager.needs_refresh())
        self.assertIsNone(self.manager.refresh_token())
        self.assertIsNone(self.manager.get_valid_access_token())
        self.assertEqual(self.requests, [])

    def test_refresh_saves_new_session(self):
        self.manager.save_session(session(int(NOW)))
        self.responses["/api/auth/refresh"] = (200, {
            "success": True,
            "data": {"user": {"id": "u1"}, "session": session(int(NOW) + 3600, "access-2", "refresh-2")},
        })

        self.assertEqual(self.manager.get_valid_access_token(), "access-2")
        self.assertEqual(self.manager.get_refresh_token(), "refresh-2")
        self.assertEqual(json.loads(self.requests[0].content), {"refresh_token": "refresh-1"})

    def test_failed_refresh_clears_session(self):
        self.manager.save_session(session(int(NOW)))
        self.responses["/api/auth/refresh"] = (401, {
            "success": False,
            "error": {"code": "INVALID_REFRESH_TOKEN", "message": "Invalid or expired refresh token"},
        })

        self.assertIsNone(self.manager.refresh_token())
        self.assertIsNone(self.manager.get_access_token())
        self.assertIsNone(self.manager.get_expires_at())

    def test_incomplete_refresh_session_clears_session(self):
        self.manager.save_session(session(int(NOW)))
        self.responses["/api/auth/refresh"] = (200, {
            "success": True,
            "data": {"user": {"id": "u1"}, "session": {"access_token": "access-2"}},
        })

        self.assertIsNone(self.manager.refresh_token())
        self.assertIsNone(self.manager.get_access_token())

        self.manager.save_session(session(int(NOW)))
        self.assertIsNone(self.manager.get_valid_access_token())
        self.assertIsNone(self.manager.get_refresh_token())

    def test_transport_error_clears_session(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        with httpx.Client(transport=httpx.MockTransport(broken)) as http:
            manager = TokenManager("http://firelog.test", http_client=http, clock=lambda: NOW)
            manager.save_session(session(int(NOW)))
            self.assertIsNone(manager.refresh_token())
            self.assertIsNone(manager.get_refresh_token())

    def test_check_auth(self):
        self.manager.save_session(session(int(NOW) + 3600))
        self.responses["/api/auth/profile"] = (200, {"success": True, "data": {"user": {"id": "u1"}}})

        result = self.manager.check_auth()
        self.assertTrue(result["is_authenticated"])
        self.assertEqual(self.requests[0].headers["authorization"], "Bearer access-1")

    def test_check_auth_rejected_token(self):
        self.manager.save_session(session(int(NOW) + 3600))
        self.responses["/api/auth/profile"] = (401, {"success": False})

        self.assertEqual(self.manager.check_auth(), {"is_authenticated": False})
        self.assertIsNone(self.manager.get_access_token())

    def test_logout_always_clears(self):
        self.manager.save_session(session(int(NOW) + 3600))
        self.responses["/api/auth/logout"] = (500, {"success": False})

        self.manager.logout()
        self.assertEqual(self.requests[0].url.path, "/api/auth/logout")
        self.assertIsNone(self.manager.get_access_token())


class FileTokenStorageTests(unittest.TestCase):
    def test_persists_between_instances(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "session.json")
            FileTokenStorage(path).set_item("access_token", "abc")

            storage = FileTokenStorage(path)
            self.assertEqual(storage.get_item("access_token"), "abc")
            storage.remove_item("access_token")
            self.assertIsNone(FileTokenStorage(path).get_item("access_token"))

    def test_missing_or_corrupt_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "session.json")
            self.assertIsNone(FileTokenStorage(path).get_item("access_token"))

            with open(path, "w") as f:
                f.write("{not json")
            self.assertIsNone(FileTokenStorage(path).get_item("access_token"))


if __name__ == "__main__":
    unittest.main()
