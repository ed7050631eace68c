"""Tests for WS-Trust RSTR parsing."""

from __future__ import annotations

import pytest

from dirauth.constants import GrantType
from dirauth.exceptions import WSTrustError
from dirauth.wstrust.response import SAML1_TOKEN_TYPE, SAML2_TOKEN_TYPE, WSTrustResponse

ASSERTION = (
    '<saml:Assertion MajorVersion="1" MinorVersion="1" '
    'AssertionID="_abc" xmlns:saml="urn:oasis:names:tc:SAML:1.0:assertion">'
    "<saml:AttributeStatement>value</saml:AttributeStatement>"
    "</saml:Assertion>"
)


def _rstr(token_type: str = SAML1_TOKEN_TYPE, assertion: str = ASSERTION, namespace: str | None = None) -> str:
    namespace = namespace or "http://docs.oasis-open.org/ws-sx/ws-trust/200512"
    return (
        '<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope">'
        "<s:Body>"
        f'<trust:RequestSecurityTokenResponseCollection xmlns:trust="{namespace}">'
        "<trust:RequestSecurityTokenResponse>"
        f"<trust:TokenType>{token_type}</trust:TokenType>"
        f"<trust:RequestedSecurityToken>{assertion}</trust:RequestedSecurityToken>"
        "</trust:RequestSecurityTokenResponse>"
        "</trust:RequestSecurityTokenResponseCollection>"
        "</s:Body>"
        "</s:Envelope>"
    )


FAULT = (
    '<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope">'
    "<s:Body><s:Fault>"
    "<s:Code><s:Value>s:Sender</s:Value>"
    "<s:Subcode><s:Value>a:FailedAuthentication</s:Value></s:Subcode></s:Code>"
    '<s:Reason><s:Text xml:lang="en-US">ID3242: The security token could not be authenticated.</s:Text></s:Reason>'
    "</s:Fault></s:Body>"
    "</s:Envelope>"
)


class TestWSTrustResponseParse:
    """Tests for WSTrustResponse.parse."""

    def test_saml1_assertion_extracted_verbatim(self) -> None:
        """Given a SAML 1.1 RSTR, returns the assertion text byte-for-byte."""
        # Act
        response = WSTrustResponse.parse(_rstr())

        # Assert
        assert response.token == ASSERTION
        assert response.token_type == SAML1_TOKEN_TYPE
        assert response.grant_type == GrantType.SAML1

    def test_saml2_maps_to_saml2_grant(self) -> None:
        """Given a SAML 2.0 token type, the grant type is saml2-bearer."""
        response = WSTrustResponse.parse(_rstr(token_type=SAML2_TOKEN_TYPE))

        assert response.grant_type == GrantType.SAML2

    def test_wstrust2005_namespace(self) -> None:
        """Given an RSTR in the 2005 namespace, it is parsed the same way."""
        response = WSTrustResponse.parse(_rstr(namespace="http://schemas.xmlsoap.org/ws/2005/02/trust"))

        assert response.token == ASSERTION

    def test_soap_fault(self) -> None:
        """Given a SOAP fault, raises WSTrustError with the subcode and reason."""
        with pytest.raises(WSTrustError) as exc_info:
            WSTrustResponse.parse(FAULT)

        assert exc_info.value.fault_code == "a:FailedAuthentication"
        assert exc_info.value.fault_message == "ID3242: The security token could not be authenticated."

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ("", "empty"),
            ("<s:Envelope", "Failed to parse RSTR"),
            (_rstr(token_type="urn:example:unknown"), "unknown token type"),
            (_rstr(assertion=""), "RequestedSecurityToken"),
            (_rstr().replace("TokenType", "Other"), "TokenType"),
        ],
        ids=["empty", "malformed", "unknown-type", "no-token", "no-token-type"],
    )
    def test_unusable_rstr(self, body: str, message: str) -> None:
        """Given an RSTR that cannot be used, raises WSTrustError."""
        with pytest.raises(WSTrustError, match=message):
            WSTrustResponse.parse(body)

    def test_entity_expansion_rejected(self) -> None:
        """Given a document declaring entities, parsing is refused."""
        body = (
            '<?xml version="1.0"?><!DOCTYPE lolz [<!ENTITY lol "lol">]>'
            '<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope"><s:Body>&lol;</s:Body></s:Envelope>'
        )

        with pytest.raises(WSTrustError, match="Failed to parse RSTR"):
            WSTrustResponse.parse(body)
