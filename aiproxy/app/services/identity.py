"""Client identity extraction for rate limiting.

Identities come from forwarded-address headers set by the hosting proxy.
They are not authenticated: clients behind one NAT share an identity and a
client that can set its own headers can pick one.
"""

import ipaddress
from typing import Mapping, Optional

from aiproxy.app.core.config import settings
from aiproxy.app.exceptions import ClientError

# Checked in order; the first usable address wins.
IDENTITY_HEADERS = ("x-forwarded-for", "client-ip", "x-real-ip")


def _parse_address(raw: str) -> Optional[str]:
    # X-Forwarded-For may hold a chain; the first hop is the client.
    candidate = raw.split(",")[0].strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def extract_client_address(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first valid address found in the forwarded headers."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in IDENTITY_HEADERS:
        raw = lowered.get(name)
        if raw:
            address = _parse_address(raw)
            if address is not None:
                return address
    return None


def resolve_client_identity(
    headers: Mapping[str, str],
    policy: Optional[str] = None,
    sentinel: Optional[str] = None,
) -> str:
    """Resolve the rate limit identity for a request.

    When no address can be determined, ``policy`` decides: ``"pool"`` files
    the request under the shared ``sentinel`` identity, ``"reject"`` raises.

    Raises:
        ClientError: If the address is unknown and the policy is ``"reject"``
    """
    policy = policy or settings.unknown_client_policy
    sentinel = sentinel or settings.unknown_client_identity

    address = extract_client_address(headers)
    if address is not None:
        return address
    if policy == "reject":
        raise ClientError("Unable to determine client address")
    return sentinel
