"""Internal constants shared across the library."""

RPC_URL = "https://api.devnet.solana.com"
MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
MEMO_PREFIX = "POLLSAT_MERKLE_ROOT:"
USER_AGENT = "pollsat/1"

# ------------------------------------------------------------------
# Secure storage keys
# ------------------------------------------------------------------

DEVICE_KEYPAIR_KEY = "device-keypair"
DEVICE_AUTH_KEY = "device-auth"
MERKLE_ROOT_KEY = "merkle-root"
LEDGER_TX_KEY = "ledger-tx"
LOCAL_VOTE_CACHE_KEY = "local-vote-cache"
ACCESS_TOKEN_KEY = "access-token"

# ------------------------------------------------------------------
# Hashing
# ------------------------------------------------------------------

#: Length of a SHA-256 digest in lowercase hex.  Inputs of exactly this
#: length are treated as already hashed by the Merkle layer.
HASH_HEX_LENGTH = 64

#: Separator of the canonical vote / device-auth message.
CANONICAL_SEPARATOR = ":"

# ------------------------------------------------------------------
# Ledger
# ------------------------------------------------------------------

#: ``getSignatureStatuses`` confirmation levels, weakest first.
COMMITMENT_LEVELS: tuple[str, ...] = ("processed", "confirmed", "finalized")

#: JSON-RPC error codes that mean "try again later".
TRANSIENT_RPC_CODES: frozenset[int] = frozenset({-32005, -32004, -32014})

#: HTTP status codes retried with backoff.
TRANSIENT_HTTP_STATUS: frozenset[int] = frozenset({429, 500, 502, 503, 504})
