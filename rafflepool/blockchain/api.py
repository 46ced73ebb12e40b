import os
from urllib.parse import quote, urljoin
from dotenv import load_dotenv
from .utils import open_session, get_jwt_token
from typing import Any, Optional, Mapping


class ChainClient:
    """HTTP client for the value ledger, the randomness oracle and the chain clock."""

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("BLOCKCHAIN_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'BLOCKCHAIN_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        session_info = open_session()
        if not session_info or len(session_info) != 2:
            raise ValueError("open_session() must return (session, csrf_token)")
        self.session, self.csrf = session_info
        self.jwt = get_jwt_token(self.session)
        self.timeout = timeout

    # -------- headers --------
    @property
    def public_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json"}

    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.public_headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- ledger --------
    def deposit(self, source: str, destination: str, amount: int) -> dict:
        """Move ``amount`` from an external wallet into a custody account.

        The ledger either fully applies the movement or rejects it; callers
        must check ``status == "success"`` before assuming the funds arrived.
        """
        return self._request(
            "POST",
            "/api/v1/ledger/deposit",
            headers=self.auth_csrf_headers,
            json={"source": source, "destination": destination, "amount": amount},
        )

    def transfer(self, source: str, destination: str, amount: int) -> dict:
        """Move ``amount`` out of a custody account to ``destination``."""
        return self._request(
            "POST",
            "/api/v1/ledger/transfer",
            headers=self.auth_csrf_headers,
            json={"source": source, "destination": destination, "amount": amount},
        )

    # -------- randomness oracle --------
    def get_randomness(self, handle: str) -> dict:
        """Read the oracle resource identified by ``handle``.

        The payload carries ``status`` (``"requested"`` until the oracle
        resolves, then ``"resolved"``) and, once resolved, the hex ``value``.
        """
        return self._request(
            "GET",
            f"/api/v1/randomness/{quote(handle, safe='')}",
            headers=self.auth_headers,
        )

    # -------- chain-local entropy --------
    def get_clock(self) -> dict:
        """Return the current ``{"slot": int, "unix_timestamp": int}``."""
        return self._request("GET", "/api/v1/chain/clock")

    def get_recent_slot_hash(self) -> Optional[str]:
        """Return the most recent slot hash as hex, or ``None`` when unavailable."""
        payload = self._request("GET", "/api/v1/chain/slot-hashes/latest")
        if not payload:
            return None
        return payload.get("hash")
