"""OAuth 1.0a request signing.

RFC 5849 - The OAuth 1.0 Protocol, section 3.4. Builds the signature base
string from the HTTP method, the normalized URL and the sorted parameter
set, and signs it with HMAC-SHA1, RSA-SHA1 or PLAINTEXT.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..types import SignatureMethod


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from ..types import AuthenticationState


OAUTH_VERSION = "1.0"

_DEFAULT_PORTS = {"http": 80, "https": 443}


def percent_encode(value: str) -> str:
    """Percent-encode a value according to RFC 3986.

    Encodes all characters except unreserved: A-Z, a-z, 0-9, -, ., _, ~
    """
    return quote(str(value), safe="~")


def normalize_url(url: str) -> str:
    """Base string URI: lowercase scheme and host, no default port, no query."""
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"
    return urlunsplit((scheme, host, parts.path or "/", "", ""))


def normalize_parameters(params: Iterable[tuple[str, str]]) -> str:
    """Encode, sort by name then value, and join the request parameters."""
    encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in params)
    return "&".join(f"{k}={v}" for k, v in encoded)


def signature_base_string(method: str, url: str, params: Iterable[tuple[str, str]]) -> str:
    """Build the signature base string.

    Format: HTTP_METHOD&URL&NORMALIZED_PARAMS. Query parameters already
    present on ``url`` are folded into the parameter set.
    """
    query = parse_qsl(urlsplit(url).query, keep_blank_values=True)
    all_params = [*query, *params]
    return "&".join(
        [
            method.upper(),
            percent_encode(normalize_url(url)),
            percent_encode(normalize_parameters(all_params)),
        ]
    )


def _load_private_key(pem: str) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("RSA-SHA1 requires an RSA private key")
    return key


class OAuthSigner:
    """Produces signed OAuth 1.0a parameters for one authentication state.

    The signature is a pure function of the method, URL, parameters,
    keys, timestamp and nonce. Pass ``timestamp`` and ``nonce`` explicitly
    to get reproducible output.

    Parameters
    ----------
    auth : AuthenticationState
        Supplies the consumer credentials, signature method and, unless
        overridden per call, the token pair.
    """

    def __init__(self, auth: AuthenticationState) -> None:
        """Initialize the signer."""
        self.auth = auth

    @staticmethod
    def generate_nonce() -> str:
        """Generate a cryptographically secure random nonce."""
        return secrets.token_hex(16)

    @staticmethod
    def generate_timestamp() -> str:
        """Get current Unix timestamp as string."""
        return str(int(time.time()))

    def sign(
        self,
        method: str,
        url: str,
        params: Mapping[str, str] | None = None,
        *,
        token: str | None = None,
        token_secret: str | None = None,
        extra_oauth_params: Mapping[str, str] | None = None,
        timestamp: str | None = None,
        nonce: str | None = None,
    ) -> dict[str, str]:
        """Build and sign the OAuth protocol parameters for a request.

        Parameters
        ----------
        method : str
            HTTP method.
        url : str
            Request URL; any query string takes part in the signature.
        params : Mapping[str, str], optional
            Form body parameters to include in the signature.
        token : str, optional
            Token to sign with (defaults to the state's access token).
        token_secret : str, optional
            Token secret to sign with (defaults to the state's).
        extra_oauth_params : Mapping[str, str], optional
            Additional ``oauth_*`` parameters such as ``oauth_callback``
            or ``oauth_verifier``.
        timestamp : str, optional
            Fixed ``oauth_timestamp``.
        nonce : str, optional
            Fixed ``oauth_nonce``.

        Returns
        -------
        dict[str, str]
            The ``oauth_*`` parameters including ``oauth_signature``.
        """
        if token is None:
            token = self.auth.token
        if token_secret is None:
            token_secret = self.auth.token_secret

        oauth_params: dict[str, str] = {
            "oauth_consumer_key": self.auth.consumer_key,
            "oauth_signature_method": SignatureMethod(self.auth.signature_method).value,
            "oauth_timestamp": timestamp or self.generate_timestamp(),
            "oauth_nonce": nonce or self.generate_nonce(),
            "oauth_version": OAUTH_VERSION,
        }
        if token:
            oauth_params["oauth_token"] = token
        if extra_oauth_params:
            oauth_params.update(extra_oauth_params)

        body_params = list((params or {}).items())
        base_string = signature_base_string(method, url, [*oauth_params.items(), *body_params])
        oauth_params["oauth_signature"] = self.signature(base_string, token_secret)
        return oauth_params

    def signature(self, base_string: str, token_secret: str = "") -> str:
        """Sign a base string with the state's signature method."""
        method = SignatureMethod(self.auth.signature_method)
        key = f"{percent_encode(self.auth.consumer_secret)}&{percent_encode(token_secret)}"

        if method is SignatureMethod.HMAC_SHA1:
            digest = hmac.new(key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1)
            return base64.b64encode(digest.digest()).decode("ascii")

        if method is SignatureMethod.RSA_SHA1:
            if not self.auth.private_key:
                raise ValueError("RSA-SHA1 signing requires a private key")
            private_key = _load_private_key(self.auth.private_key)
            signed = private_key.sign(
                base_string.encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA1(),  # noqa: S303
            )
            return base64.b64encode(signed).decode("ascii")

        # PLAINTEXT: the key itself, no cryptographic signing
        return key

    def authorization_header(
        self,
        method: str,
        url: str,
        params: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> str:
        """Sign a request and format the result as an ``Authorization`` header value.

        Format: OAuth oauth_consumer_key="...", oauth_nonce="...", ...
        Keyword arguments are passed through to :meth:`sign`.
        """
        oauth_params = self.sign(method, url, params, **kwargs)
        return "OAuth " + ", ".join(
            f'{percent_encode(k)}="{percent_encode(v)}"' for k, v in sorted(oauth_params.items())
        )

    def query_string(
        self,
        method: str,
        url: str,
        params: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> str:
        """Sign a request and format the ``oauth_*`` parameters as a query fragment."""
        oauth_params = self.sign(method, url, params, **kwargs)
        return urlencode(sorted(oauth_params.items()), quote_via=quote, safe="~")

    def signed_url(self, url: str, params: Mapping[str, str] | None = None, **kwargs: Any) -> str:
        """Return ``url`` with ``params`` and a GET signature in its query string."""
        base = url
        if params:
            sep = "&" if urlsplit(url).query else "?"
            base = f"{url}{sep}{urlencode(params, quote_via=quote, safe='~')}"
        sep = "&" if urlsplit(base).query else "?"
        return f"{base}{sep}{self.query_string('GET', base, **kwargs)}"
