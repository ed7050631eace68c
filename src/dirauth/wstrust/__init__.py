"""WS-Trust federated username/password sign-in.

This package provides:
- WSTrustRequest: RST envelope construction and exchange
- WSTrustResponse: RSTR parsing and SAML assertion extraction
"""

from dirauth.wstrust.request import WSTrustRequest, WSTrustVersion
from dirauth.wstrust.response import WSTrustResponse

__all__ = [
    "WSTrustRequest",
    "WSTrustResponse",
    "WSTrustVersion",
]
