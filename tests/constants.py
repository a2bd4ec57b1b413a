"""Shared test constants.

Centralizes provider endpoints, the RFC 5849 reference request, and
timeouts so every test module talks to the same fictional provider.
"""

# =============================================================================
# Fictional provider
# =============================================================================

REQUEST_TOKEN_URL: str = "https://provider.example.com/oauth/request_token"
AUTHORIZE_TOKEN_URL: str = "https://provider.example.com/oauth/authorize"
ACCESS_TOKEN_URL: str = "https://provider.example.com/oauth/access_token"
CALLBACK_URL: str = "https://app.example.com/oauth/callback"

CONSUMER_KEY: str = "anonymous"
CONSUMER_SECRET: str = "anonymous-secret"

REQUEST_TOKEN_BODY: str = "oauth_token=abc&oauth_token_secret=def&oauth_callback_confirmed=true"
ACCESS_TOKEN_BODY: str = "oauth_token=final&oauth_token_secret=finalsecret"

# =============================================================================
# RFC 5849 section 1.2 example (photos.example.net)
# =============================================================================

RFC_CONSUMER_KEY: str = "dpf43f3p2l4k3l03"
RFC_CONSUMER_SECRET: str = "kd94hf93k423kf44"
RFC_TOKEN: str = "nnch734d00sl2jdk"
RFC_TOKEN_SECRET: str = "pfkkdhi9sl3r4s00"
RFC_URL: str = "http://photos.example.net/photos?file=vacation.jpg&size=original"
RFC_TIMESTAMP: str = "1191242096"
RFC_NONCE: str = "kllo9940pd9333jh"
RFC_SIGNATURE: str = "tR3+Ty81lMeYAr/Fid0kMTYa/WM="

# =============================================================================
# Timeouts (seconds)
# =============================================================================

# Timeout for HTTP requests against the loopback server
HTTP_TIMEOUT: float = 5.0

# Upper bound on event-loop iterations while waiting for a phase
MAX_LOOP_SPINS: int = 200
