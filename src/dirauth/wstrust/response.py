"""WS-Trust RSTR parsing.

The response is checked for well-formedness and SOAP faults with defusedxml.
The assertion inside RequestedSecurityToken is then extracted from the raw
text so its bytes, and therefore its signature, survive untouched.
"""

from __future__ import annotations

__all__ = [
    "SAML1_TOKEN_TYPE",
    "SAML2_TOKEN_TYPE",
    "WSTrustResponse",
]

import logging
import re
from dataclasses import dataclass
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from dirauth.constants import APP_NAME, GrantType
from dirauth.exceptions import WSTrustError

_logger = logging.getLogger(f"{APP_NAME}.wstrust_response")

SAML1_TOKEN_TYPE = "urn:oasis:names:tc:SAML:1.0:assertion"
SAML2_TOKEN_TYPE = "urn:oasis:names:tc:SAML:2.0:assertion"

_GRANT_TYPE_BY_TOKEN_TYPE = {
    SAML1_TOKEN_TYPE: GrantType.SAML1,
    SAML2_TOKEN_TYPE: GrantType.SAML2,
}

_NAMESPACES = {
    "s": "http://www.w3.org/2003/05/soap-envelope",
    "wst13": "http://docs.oasis-open.org/ws-sx/ws-trust/200512",
    "wst2005": "http://schemas.xmlsoap.org/ws/2005/02/trust",
}

_REQUESTED_TOKEN = re.compile(
    r"<(?:\w+:)?RequestedSecurityToken\b[^>]*>(.*?)</(?:\w+:)?RequestedSecurityToken>",
    re.DOTALL,
)


def _text(element: Element | None) -> str | None:
    if element is None or element.text is None:
        return None
    return element.text.strip()


@dataclass(frozen=True)
class WSTrustResponse:
    """A successful RSTR.

    Attributes:
        token_type: SAML token type URI.
        token: Raw assertion XML, byte-for-byte as received.
    """

    token_type: str
    token: str

    @property
    def grant_type(self) -> str:
        """OAuth2 grant type used to exchange this assertion."""
        return _GRANT_TYPE_BY_TOKEN_TYPE[self.token_type]

    @classmethod
    def parse(cls, body: str) -> "WSTrustResponse":
        """Parse an RSTR envelope.

        Args:
            body: Response body text.

        Returns:
            WSTrustResponse with the assertion.

        Raises:
            WSTrustError: On malformed XML, a SOAP fault, a missing token or
                an unsupported token type.
        """
        if not body:
            raise WSTrustError("Received empty RSTR response body.")

        try:
            root = ET.fromstring(body)
        except (ET.ParseError, DefusedXmlException) as e:
            raise WSTrustError(f"Failed to parse RSTR in to DOM: {e}") from e

        fault = root.find("s:Body/s:Fault", _NAMESPACES)
        if fault is not None:
            fault_code = _text(fault.find("s:Code/s:Subcode/s:Value", _NAMESPACES)) or _text(
                fault.find("s:Code/s:Value", _NAMESPACES)
            )
            fault_message = _text(fault.find("s:Reason/s:Text", _NAMESPACES))
            _logger.warning(
                {
                    "event": "wstrust_fault",
                    "message": "Server returned a SOAP fault",
                    "fault_code": fault_code,
                    "fault_message": fault_message,
                }
            )
            raise WSTrustError(
                f"Server returned error in RSTR - ErrorCode: {fault_code} : FaultMessage: {fault_message}",
                fault_code=fault_code,
                fault_message=fault_message,
            )

        token_type = None
        for prefix in ("wst13", "wst2005"):
            token_type = _text(root.find(f".//{prefix}:TokenType", _NAMESPACES))
            if token_type:
                break
        if not token_type:
            raise WSTrustError("Unable to find TokenType in RSTR.")
        if token_type not in _GRANT_TYPE_BY_TOKEN_TYPE:
            raise WSTrustError(f"RSTR returned unknown token type: {token_type}")

        match = _REQUESTED_TOKEN.search(body)
        if match is None or not match.group(1).strip():
            raise WSTrustError("Unable to find RequestedSecurityToken in RSTR.")

        return cls(token_type=token_type, token=match.group(1).strip())
