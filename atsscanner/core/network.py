"""
Caller identification for anonymous scan metering.
"""
from fastapi import Request

# Matches UsageTracking.ip_address (long enough for IPv6)
MAX_ADDRESS_LENGTH = 45
UNKNOWN_ADDRESS = "unknown"


def get_client_ip(request: Request) -> str:
    """
    Network address that anonymous usage is keyed on.

    Behind a proxy the left-most ``X-Forwarded-For`` hop is the original
    client. Without that header the socket peer is used.
    """
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop[:MAX_ADDRESS_LENGTH]

    if request.client and request.client.host:
        return request.client.host[:MAX_ADDRESS_LENGTH]

    return UNKNOWN_ADDRESS
