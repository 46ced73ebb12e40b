import json
import os
import unittest
from unittest.mock import patch

from rafflepool.blockchain.api import ChainClient
from rafflepool.blockchain.utils import get_jwt_token, open_session


class DummyResponse:
    def __init__(self, json_data=None, content: bytes = b""):
        self._json = json_data
        if json_data is not None and not content:
            content = json.dumps(json_data).encode()
        self.content = content

    def json(self):
        return self._json

    def raise_for_status(self):
        pass


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls = []

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "params": params,
                "json": json,
                "timeout": timeout,
            }
        )
        return self.response


def _client(response: DummyResponse) -> tuple[ChainClient, DummySession]:
    session = DummySession(response)
    with patch("rafflepool.blockchain.api.open_session", return_value=(session, "csrf")), \
            patch("rafflepool.blockchain.api.get_jwt_token", return_value="jwt-token"):
        client = ChainClient(base_fqdn="ledger.example.com")
    return client, session


class TestChainClient(unittest.TestCase):
    @patch("rafflepool.blockchain.api.open_session")
    @patch("rafflepool.blockchain.api.load_dotenv")
    def test_requires_fqdn(self, mock_load_dotenv, mock_open_session):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                ChainClient()
        mock_open_session.assert_not_called()

    def test_init_sets_base_url_and_tokens(self):
        client, _ = _client(DummyResponse(json_data={}))
        self.assertEqual(client.base_url, "https://ledger.example.com")
        self.assertEqual(client.csrf, "csrf")
        self.assertEqual(client.jwt, "jwt-token")
        self.assertEqual(client.auth_csrf_headers["X-CSRFTOKEN"], "csrf")

    @patch("rafflepool.blockchain.api.get_jwt_token")
    @patch("rafflepool.blockchain.api.open_session")
    def test_init_reports_session_error(self, mock_open_session, mock_get_jwt):
        mock_open_session.side_effect = RuntimeError("network unreachable")
        with self.assertRaises(RuntimeError) as ctx:
            ChainClient(base_fqdn="ledger.example.com")
        self.assertIn("network unreachable", str(ctx.exception))
        mock_get_jwt.assert_not_called()

    def test_deposit_and_transfer_post_movements(self):
        client, session = _client(DummyResponse(json_data={"status": "success"}))

        self.assertEqual(client.deposit("sponsor", "custody", 250), {"status": "success"})
        client.transfer("custody", "winner", 25)

        deposit, transfer = session.calls
        self.assertEqual(deposit["method"], "POST")
        self.assertEqual(deposit["url"], "https://ledger.example.com/api/v1/ledger/deposit")
        self.assertEqual(
            deposit["json"], {"source": "sponsor", "destination": "custody", "amount": 250}
        )
        self.assertEqual(deposit["headers"]["Authorization"], "Bearer jwt-token")
        self.assertEqual(transfer["url"], "https://ledger.example.com/api/v1/ledger/transfer")
        self.assertEqual(transfer["timeout"], 45)

    def test_get_randomness_quotes_handle(self):
        client, session = _client(DummyResponse(json_data={"status": "requested"}))
        self.assertEqual(client.get_randomness("vrf/req 1"), {"status": "requested"})
        self.assertEqual(
            session.calls[0]["url"],
            "https://ledger.example.com/api/v1/randomness/vrf%2Freq%201",
        )
        self.assertEqual(session.calls[0]["method"], "GET")

    def test_clock_and_slot_hash(self):
        client, session = _client(DummyResponse(json_data={"slot": 7, "unix_timestamp": 8}))
        self.assertEqual(client.get_clock(), {"slot": 7, "unix_timestamp": 8})
        self.assertEqual(session.calls[0]["headers"], {"Accept": "application/json"})

        session.response = DummyResponse(json_data={"hash": "ab" * 32})
        self.assertEqual(client.get_recent_slot_hash(), "ab" * 32)

        session.response = DummyResponse()
        self.assertIsNone(client.get_recent_slot_hash())


class TestSessionHelpers(unittest.TestCase):
    def test_open_session_requires_fqdn(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(RuntimeError):
                open_session()

    def test_jwt_requires_credentials(self):
        with patch.dict(os.environ, {"BLOCKCHAIN_BASE_FQDN": "ledger.example.com"}, clear=True):
            with self.assertRaises(RuntimeError):
                get_jwt_token(DummySession(DummyResponse()))

    def test_jwt_posts_credentials(self):
        class LoginSession:
            def __init__(self):
                self.posted = None

            def post(self, url, json=None):
                self.posted = (url, json)
                return DummyResponse(json_data={"access": "token-123"})

        env = {
            "BLOCKCHAIN_BASE_FQDN": "ledger.example.com",
            "BLOCKCHAIN_ADMIN_USERNAME": "operator",
            "BLOCKCHAIN_ADMIN_PASSWORD": "secret",
        }
        session = LoginSession()
        with patch.dict(os.environ, env, clear=True):
            self.assertEqual(get_jwt_token(session), "token-123")
        self.assertEqual(
            session.posted,
            (
                "https://ledger.example.com/api/v1/auth/jwt-token",
                {"username": "operator", "password": "secret"},
            ),
        )


if __name__ == "__main__":
    unittest.main()
