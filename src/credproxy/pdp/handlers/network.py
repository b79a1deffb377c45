"""IP_RESTRICTION handler."""

from __future__ import annotations

__all__ = ["evaluate_ip_restriction"]

import ipaddress

from credproxy.context.request import OperationRequest
from credproxy.pdp.configs import IpRestrictionConfig
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult
from credproxy.pdp.policy import Policy


def evaluate_ip_restriction(
    policy: Policy,
    config: IpRestrictionConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    """Test the source IP against the CIDR lists.

    Precedence: unknown IP → DENY, denied hit → DENY, then the allow list
    (hit → ALLOW, miss → DENY). With only a deny list and no hit the policy
    is NOT_APPLICABLE.
    """
    if not request.source_ip:
        return HandlerResult.deny("source IP is unknown")
    try:
        address = ipaddress.ip_address(request.source_ip.strip())
    except ValueError:
        return HandlerResult.deny(f"source IP {request.source_ip!r} is not a valid address")

    for network in config.denied_networks():
        if address in network:
            return HandlerResult.deny(f"source IP {address} is in denied range {network}")

    allowed = config.allowed_networks()
    if allowed:
        for network in allowed:
            if address in network:
                return HandlerResult.allow(f"source IP {address} is in allowed range {network}")
        return HandlerResult.deny(f"source IP {address} is not in any allowed range")

    return HandlerResult.not_applicable(f"source IP {address} is not in any denied range")
