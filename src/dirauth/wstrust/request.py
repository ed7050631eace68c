"""WS-Trust RequestSecurityToken for federated username/password sign-in.

The RST envelope is built from a fixed template in two passes: first the
message id, timestamps and endpoint are filled in, which gives a loggable
envelope still holding $username and $password placeholders; then the
XML-escaped credentials are substituted for sending.
"""

from __future__ import annotations

__all__ = [
    "WSTrustRequest",
    "WSTrustVersion",
]

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from string import Template
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

import httpx

from dirauth.constants import APP_NAME, WSTRUST_TIMESTAMP_WINDOW_SECONDS
from dirauth.exceptions import ProtocolError
from dirauth.utils.http import client_headers, endpoint_host
from dirauth.wstrust.response import WSTrustResponse

if TYPE_CHECKING:
    from dirauth.call_context import CallContext

_logger = logging.getLogger(f"{APP_NAME}.wstrust_request")

# Relying party the directory registers for federated sign-in
DEFAULT_APPLIES_TO = "urn:federation:MicrosoftOnline"


class WSTrustVersion(str, Enum):
    """Supported WS-Trust protocol versions."""

    WSTRUST13 = "wstrust13"
    WSTRUST2005 = "wstrust2005"

    @property
    def namespace(self) -> str:
        if self is WSTrustVersion.WSTRUST2005:
            return "http://schemas.xmlsoap.org/ws/2005/02/trust"
        return "http://docs.oasis-open.org/ws-sx/ws-trust/200512"

    @property
    def soap_action(self) -> str:
        return f"{self.namespace}/RST/Issue"

    @property
    def request_type(self) -> str:
        return f"{self.namespace}/Issue"

    @property
    def key_type(self) -> str:
        if self is WSTrustVersion.WSTRUST2005:
            return "http://schemas.xmlsoap.org/ws/2005/05/identity/NoProofKey"
        return "http://docs.oasis-open.org/ws-sx/ws-trust/200512/Bearer"


_RST_TEMPLATE = Template(
    "<s:Envelope xmlns:s='http://www.w3.org/2003/05/soap-envelope' "
    "xmlns:wsa='http://www.w3.org/2005/08/addressing' "
    "xmlns:wsu='http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd'>"
    "<s:Header>"
    "<wsa:Action s:mustUnderstand='1'>${soap_action}</wsa:Action>"
    "<wsa:messageID>urn:uuid:${message_id}</wsa:messageID>"
    "<wsa:ReplyTo><wsa:Address>http://www.w3.org/2005/08/addressing/anonymous</wsa:Address></wsa:ReplyTo>"
    "<wsa:To s:mustUnderstand='1'>${endpoint}</wsa:To>"
    "<wsse:Security s:mustUnderstand='1' "
    "xmlns:wsse='http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd'>"
    "<wsu:Timestamp wsu:Id='_0'>"
    "<wsu:Created>${created}</wsu:Created>"
    "<wsu:Expires>${expires}</wsu:Expires>"
    "</wsu:Timestamp>"
    "<wsse:UsernameToken wsu:Id='UsernameToken'>"
    "<wsse:Username>$$username</wsse:Username>"
    "<wsse:Password>$$password</wsse:Password>"
    "</wsse:UsernameToken>"
    "</wsse:Security>"
    "</s:Header>"
    "<s:Body>"
    "<wst:RequestSecurityToken xmlns:wst='${namespace}'>"
    "<wsp:AppliesTo xmlns:wsp='http://schemas.xmlsoap.org/ws/2004/09/policy'>"
    "<wsa:EndpointReference><wsa:Address>${applies_to}</wsa:Address></wsa:EndpointReference>"
    "</wsp:AppliesTo>"
    "<wst:KeyType>${key_type}</wst:KeyType>"
    "<wst:RequestType>${request_type}</wst:RequestType>"
    "</wst:RequestSecurityToken>"
    "</s:Body>"
    "</s:Envelope>"
)


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _literal(value: str) -> str:
    """XML-escape a value and protect any $ from the credential pass."""
    return escape(value).replace("$", "$$")


class WSTrustRequest:
    """One RST/RSTR exchange against a federation server.

    Usage:
        request = WSTrustRequest(call_context, endpoint_url, http_client)
        response = await request.acquire_token(username, password)
        response.token  # SAML assertion to exchange at the token endpoint
    """

    def __init__(
        self,
        call_context: "CallContext",
        endpoint_url: str,
        http_client: httpx.AsyncClient,
        version: WSTrustVersion = WSTrustVersion.WSTRUST13,
        applies_to: str = DEFAULT_APPLIES_TO,
    ) -> None:
        self._call_context = call_context
        self._endpoint_url = endpoint_url
        self._client = http_client
        self._version = version
        self._applies_to = applies_to

    def build_envelope_template(self) -> Template:
        """Build the RST with everything but the credentials filled in.

        The result still contains $username and $password placeholders and
        is safe to log.
        """
        now = datetime.now(timezone.utc)
        expires = now + timedelta(seconds=WSTRUST_TIMESTAMP_WINDOW_SECONDS)
        envelope = _RST_TEMPLATE.substitute(
            soap_action=self._version.soap_action,
            message_id=uuid.uuid4(),
            endpoint=_literal(self._endpoint_url),
            created=_timestamp(now),
            expires=_timestamp(expires),
            namespace=self._version.namespace,
            applies_to=_literal(self._applies_to),
            key_type=self._version.key_type,
            request_type=self._version.request_type,
        )
        return Template(envelope)

    async def acquire_token(self, username: str, password: str) -> WSTrustResponse:
        """Send the RST and parse the RSTR.

        Args:
            username: Federated user's sign-in name.
            password: User's password.

        Returns:
            Parsed WSTrustResponse.

        Raises:
            ProtocolError: Transport failure or non-2xx without a SOAP body.
            WSTrustError: SOAP fault or unusable RSTR.
        """
        template = self.build_envelope_template()
        host = endpoint_host(self._endpoint_url)

        _logger.debug(
            {
                "event": "wstrust_request_started",
                "message": f"Sending RST to {host}",
                "correlation_id": self._call_context.correlation_id,
                "version": self._version.value,
                "envelope": template.template,
            }
        )

        body = template.substitute(username=escape(username), password=escape(password))
        headers = {
            **client_headers(self._call_context),
            "Content-Type": "application/soap+xml; charset=utf-8",
            "SOAPAction": self._version.soap_action,
        }

        try:
            response = await self._client.post(self._endpoint_url, content=body.encode("utf-8"), headers=headers)
        except httpx.HTTPError as e:
            raise ProtocolError(f"WS-Trust RST request to {host} failed: {e}", host=host) from e

        # Faults usually arrive as HTTP 500 with a SOAP body; let the parser report them
        if response.status_code >= 300 and "Envelope" not in response.text:
            raise ProtocolError(
                f"WS-Trust RST request returned http error: {response.status_code} from {host}",
                status_code=response.status_code,
                host=host,
            )

        wstrust_response = WSTrustResponse.parse(response.text)

        _logger.info(
            {
                "event": "wstrust_token_received",
                "message": "Received SAML assertion from federation server",
                "correlation_id": self._call_context.correlation_id,
                "token_type": wstrust_response.token_type,
            }
        )
        return wstrust_response
