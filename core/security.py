"""
Caller classification for the Bulletin Gateway
==============================================

Maps a request to a Caller: the real client address (forwarding headers are
honoured only when the direct peer is a trusted proxy) and the admin /
friend / visitor roles granted by the configured networks.

Usage:
    classifier = CallerClassifier(config.GATEWAY)

    @router.post("/search/{datfile}")
    async def search(caller: Caller = Depends(get_caller)):
        ...
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, List, Optional, Union

from fastapi import HTTPException, Request

from config import GatewaySettings
from models import Caller

logger = logging.getLogger(__name__)

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

# Headers to consult when the request is from a trusted proxy.
FORWARDED_SINGLE_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Real-IP",
)
FORWARDED_CHAIN_HEADER = "X-Forwarded-For"


def parse_networks(entries: Iterable[str]) -> List[Network]:
    networks: List[Network] = []
    for entry in entries:
        entry = entry.strip()
        if not entry or entry.startswith("#"):
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("Invalid network CIDR ignored: %s", entry)
    return networks


def ip_in_networks(client_ip: Optional[str], networks: List[Network]) -> bool:
    if not client_ip:
        return False
    try:
        ip = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    return any(ip in network for network in networks)


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _parse_forwarded_for(value: str) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class CallerClassifier:
    """Resolves client addresses and roles from gateway settings."""

    def __init__(self, settings: GatewaySettings) -> None:
        self.admin_networks = parse_networks(settings.admin_networks)
        self.friend_networks = parse_networks(settings.friend_networks)
        self.visitor_networks = parse_networks(settings.visitor_networks)
        self.trusted_proxies = parse_networks(settings.trusted_proxies)

    def is_trusted_proxy(self, client_ip: Optional[str]) -> bool:
        return ip_in_networks(client_ip, self.trusted_proxies)

    def client_ip(self, request: Request) -> Optional[str]:
        """
        Extract the client IP from a request.

        If the request comes from a trusted proxy, honor forwarded
        headers (CF-Connecting-IP, X-Real-IP, X-Forwarded-For).
        """
        client_ip = request.client.host if request.client else None
        if not client_ip:
            return None

        if not self.is_trusted_proxy(client_ip):
            return client_ip

        for header in FORWARDED_SINGLE_IP_HEADERS:
            forwarded = request.headers.get(header)
            if forwarded and _is_valid_ip(forwarded):
                return forwarded

        chain = _parse_forwarded_for(request.headers.get(FORWARDED_CHAIN_HEADER, ""))
        if chain:
            chain.append(client_ip)
            while chain and self.is_trusted_proxy(chain[-1]):
                chain.pop()
            for ip in reversed(chain):
                if _is_valid_ip(ip):
                    return ip

        return client_ip

    def classify(self, request: Request) -> Caller:
        remote_addr = self.client_ip(request) or ""
        return Caller(
            remote_addr=remote_addr,
            forwarded_for=request.headers.get(FORWARDED_CHAIN_HEADER, ""),
            is_admin=ip_in_networks(remote_addr, self.admin_networks),
            is_friend=ip_in_networks(remote_addr, self.friend_networks),
            is_visitor=ip_in_networks(remote_addr, self.visitor_networks),
        )


def require_visitor(caller: Caller) -> Caller:
    """
    Refuse callers outside every configured role.

    Raises:
        HTTPException: 403 if the caller is neither admin, friend nor visitor
    """
    if caller.is_admin or caller.is_friend or caller.is_visitor:
        return caller
    logger.warning("Access denied for %s", caller.remote_addr or "unknown address")
    raise HTTPException(status_code=403, detail="Access denied")
