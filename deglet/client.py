"""
Deglet - API Client

Thin layer that ties the core together over HTTP:
- every request body is a token from auth.sign() (Content-Type application/jose)
- every response is a token signed by the server, verified with the request
  URL as audience
- wallet blobs go through store.encrypt()/store.decrypt() on the way

The multisig wallet itself is handled by an external engine (WalletEngine);
this module only seeds it and stores its encrypted export.
"""

import os
from typing import Any, Callable, Dict, List, Optional, Protocol

import requests

from . import auth, keys, store
from .errors import ApiError, ConfigError
from .keys import DerivedKeys
from .logger import get_logger
from .signing import DEFAULT_NETWORK, ExtendedKey, SigningKey
from .util import random_hex


# =============================================================================
# Configuration
# =============================================================================

API_URL = os.environ.get("DEGLET_API_URL", "http://localhost:5000")
DEFAULT_TIMEOUT = 30            # seconds

log = get_logger(__name__)


class WalletCredentials(Protocol):
    wallet_id: str
    n: int


class WalletEngine(Protocol):
    """The external multisig wallet engine, as far as this client uses it."""

    credentials: WalletCredentials

    def export(self) -> str: ...

    def seed_from_extended_private_key(self, xprv: str) -> None: ...

    def create_wallet(self, name: str, signer_name: str, m: int, n: int, **opts: Any) -> str: ...


# =============================================================================
# Requests
# =============================================================================

def _handle_signed_response(response: Optional[requests.Response], url: str,
                            is_trusted: Optional[Callable[[str], bool]]) -> Any:
    if response is None or not response.text:
        status = getattr(response, "status_code", None)
        raise ApiError({"code": -1, "error": f"Empty response from {url} (status {status})"})

    msg = auth.verify(url, response.text, is_trusted=is_trusted)
    data = msg.payload.get("data")
    if isinstance(data, dict) and data.get("error"):
        raise ApiError(data)
    return data


def signed_request(method: str, url: str, payload: Optional[Dict[str, Any]],
                   sign_key: SigningKey, session=None,
                   is_trusted: Optional[Callable[[str], bool]] = None,
                   timeout: float = DEFAULT_TIMEOUT) -> Any:
    """
    Send a signed request (method must support a body, e.g. POST / PUT).

    Returns:
        The "data" field of the verified response payload

    Raises:
        ApiError: transport failure or error reported by the server
        TokenError: response token failed verification
    """
    message = auth.sign(url, payload, sign_key)
    http = session or requests
    log.info("%s %s kid=%s", method, url, sign_key.address)
    try:
        response = http.request(
            method, url,
            data=message,
            headers={"Content-Type": auth.CONTENT_TYPE},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise ApiError({"code": -1, "error": str(e)}) from e
    return _handle_signed_response(response, url, is_trusted)


def simple_get(url: str, params: Optional[Dict[str, Any]] = None, session=None,
               is_trusted: Optional[Callable[[str], bool]] = None,
               timeout: float = DEFAULT_TIMEOUT) -> Any:
    """Send an unsigned GET (params become the query string); the response is still verified."""
    http = session or requests
    log.info("GET %s", url)
    try:
        response = http.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        raise ApiError({"code": -1, "error": str(e)}) from e
    return _handle_signed_response(response, url, is_trusted)


# =============================================================================
# Wallet client
# =============================================================================

class WalletClient:
    """
    Client bound to one user's signing key.

    Usage:
        data = keys.derive("some username", "some password")
        client = WalletClient(data.keys.sign)
        client.signup(data.metadata)

        # Later, on another device
        client = WalletClient()
        data = client.load_local_data("some username", "some password")
    """

    def __init__(self, sign_key: Optional[SigningKey] = None, api_url: Optional[str] = None,
                 wallet_engine: Optional[WalletEngine] = None, session=None,
                 server_identity: Optional[str] = None, network: str = DEFAULT_NETWORK):
        """
        Args:
            sign_key: Key that signs every request (see load_local_data)
            api_url: Base URL of the API server
            wallet_engine: External multisig engine (needed for wallet_* calls)
            session: requests.Session-like object
            server_identity: If set, only responses signed by this address are accepted
            network: "livenet" or "testnet"
        """
        self.sign = sign_key
        self.api_url = (api_url or API_URL).rstrip("/")
        self.wallet_engine = wallet_engine
        self.session = session
        self.server_identity = server_identity
        self.network = network

    # -------------------------------------------------------------------------

    def _is_trusted(self, kid: str) -> bool:
        return self.server_identity is None or kid == self.server_identity

    def _trust(self) -> Optional[Callable[[str], bool]]:
        return self._is_trusted if self.server_identity is not None else None

    def _post(self, path: str, payload: Optional[Dict[str, Any]]) -> Any:
        if self.sign is None:
            raise ConfigError("No signing key, call load_local_data() first")
        return signed_request("POST", self.api_url + path, payload, self.sign,
                              session=self.session, is_trusted=self._trust())

    def _engine(self) -> WalletEngine:
        if self.wallet_engine is None:
            raise ConfigError("No wallet engine configured")
        return self.wallet_engine

    def _wallet_id(self, wallet_id: Optional[str]) -> str:
        return wallet_id or self._engine().credentials.wallet_id

    # -------------------------------------------------------------------------

    def load_local_data(self, username: str, password: str) -> DerivedKeys:
        """
        Fetch salt and iteration count from the server and derive local keys.

        The password never leaves this device; only check bytes are sent to
        locate the right record. self.sign is replaced by the derived key.
        """
        opts = {"username": username, "check": keys.check_bytes(username + password)}
        res = simple_get(self.api_url + "/user/data", opts,
                         session=self.session, is_trusted=self._trust())
        data = keys.derive(username, password, res["iterations"], res["salt"],
                           network=self.network)
        self.sign = data.keys.sign
        return data

    def signup(self, metadata: keys.Metadata) -> Any:
        """Create a new account from the metadata returned by keys.derive()."""
        return self._post("/user/signup", metadata.to_dict())

    def wallet_count(self) -> Dict[str, Any]:
        """Return the number of wallets stored by this user ({"num": ...})."""
        return self._post("/user", {"count": 1})

    def wallet_blobs(self, enc_key) -> List[Dict[str, Any]]:
        """Return the wallet blobs stored by this user, decrypted."""
        result = self._post("/user", None) or []
        for raw in result:
            raw["blob"] = store.decrypt(enc_key, raw["blob"]).decode("utf-8")
        return result

    def wallet_store(self, enc_key) -> Any:
        """Store the current wallet as an encrypted blob."""
        engine = self._engine()
        opts = {
            "id": engine.credentials.wallet_id,
            "blob": store.encrypt(enc_key, engine.export()),
            # Blob updates are refused after all signers have joined
            "maxchanges": engine.credentials.n,
        }
        return self._post("/user/blob", opts)

    def wallet_create(self, gen_key: ExtendedKey, nrequired: Optional[int] = None,
                      nsigners: Optional[int] = None, wallet_name: Optional[str] = None,
                      **opts: Any) -> str:
        """
        Create a new wallet seeded from the wallet generation key.

        The seed is taken from m/<user wallet count + 1>' of gen_key.

        Args:
            gen_key: keys.derive(...).keys.gen_wallet
            nrequired: Minimum number of signers required (m)
            nsigners: Number of signers (n)
            wallet_name: Defaults to "wallet" + random hex
            opts: Passed as is to the wallet engine

        Returns:
            Secret to be shared with the signers expected to join the wallet
        """
        if not nrequired or not nsigners:
            raise ConfigError("nsigners and nrequired are both required")
        engine = self._engine()
        wallet_name = wallet_name or ("wallet" + random_hex(2))
        signer_name = "user" + random_hex(2)

        count = self.wallet_count()["num"]
        key = gen_key.derive(count + 1, hardened=True)
        engine.seed_from_extended_private_key(key.xprv)
        secret = engine.create_wallet(wallet_name, signer_name, nrequired, nsigners, **opts)
        log.info("created %d-of-%d wallet %s", nrequired, nsigners, wallet_name)
        return secret

    def add_sw_cosigner(self, secret: str, wallet_id: Optional[str] = None) -> Any:
        """Add a cosigner controlled by the server."""
        opts = {"id": self._wallet_id(wallet_id), "secret": secret}
        return self._post("/cosigner", opts)

    def new_address(self, num: int = 1, wallet_id: Optional[str] = None) -> Any:
        """Get one or more addresses using the server controlled cosigner."""
        opts = {"id": self._wallet_id(wallet_id), "num": num or 1}
        return self._post("/address", opts)

    def balance(self, wallet_id: Optional[str] = None) -> Any:
        return self._post("/balance", {"id": self._wallet_id(wallet_id)})
