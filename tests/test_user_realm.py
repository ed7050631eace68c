"""Tests for user realm discovery."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from dirauth.authority import Authority
from dirauth.call_context import CallContext
from dirauth.exceptions import ProtocolError
from dirauth.user_realm import AccountType, UserRealm


@pytest.fixture
def realm(call_context: CallContext, authority: Authority, mock_http_client: MagicMock) -> UserRealm:
    return UserRealm(call_context, authority, mock_http_client)


class TestUserRealmDiscover:
    """Tests for UserRealm.discover."""

    async def test_federated_realm(self, realm: UserRealm, mock_http_client: MagicMock) -> None:
        """Given a federated document, returns its WS-Trust endpoint."""
        # Arrange
        mock_http_client.get.return_value = httpx.Response(
            200,
            json={
                "ver": "1.0",
                "account_type": "Federated",
                "federation_protocol": "WSTrust",
                "federation_metadata_url": "https://sts.contoso.com/adfs/services/trust/mex",
                "federation_active_auth_url": "https://sts.contoso.com/adfs/services/trust/2005/usernamemixed",
            },
        )

        # Act
        info = await realm.discover("alice@contoso.com")

        # Assert
        assert info.account_type is AccountType.FEDERATED
        assert info.federation_active_auth_url.endswith("/trust/2005/usernamemixed")
        url = mock_http_client.get.await_args.args[0]
        assert url == "https://login.example.com/common/UserRealm/alice@contoso.com?api-version=1.0"
        assert mock_http_client.get.await_args.kwargs["headers"]["client-request-id"] == "test-correlation-id"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Managed", AccountType.MANAGED), ("FEDERATED", AccountType.FEDERATED), ("Other", AccountType.UNKNOWN)],
    )
    async def test_account_type_case_insensitive(
        self, raw: str, expected: AccountType, realm: UserRealm, mock_http_client: MagicMock
    ) -> None:
        mock_http_client.get.return_value = httpx.Response(200, json={"account_type": raw})

        info = await realm.discover("alice@contoso.com")

        assert info.account_type is expected

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404, text="Not found"),
            httpx.Response(200, text="<html/>"),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
        ids=["http-error", "not-json", "not-object"],
    )
    async def test_bad_response(self, response: httpx.Response, realm: UserRealm, mock_http_client: MagicMock) -> None:
        """Given an unusable response, raises ProtocolError."""
        mock_http_client.get.return_value = response

        with pytest.raises(ProtocolError):
            await realm.discover("alice@contoso.com")

    async def test_transport_error(self, realm: UserRealm, mock_http_client: MagicMock) -> None:
        mock_http_client.get.side_effect = httpx.ConnectError("unreachable")

        with pytest.raises(ProtocolError) as exc_info:
            await realm.discover("alice@contoso.com")

        assert exc_info.value.host == "login.example.com"
