"""Request context for credential policy evaluation.

- context/ (this module): Describes the operation being requested
- pdp/: Policy Decision Point - evaluates policies
- pep/: Policy Enforcement Point - holds pending approvals
- pips/: Policy Information Points - policy, counter and metadata stores

Structure:
    request.py    - OperationRequest + builder
"""

from credproxy.context.request import OperationRequest, build_operation_request

__all__ = [
    "OperationRequest",
    "build_operation_request",
]
