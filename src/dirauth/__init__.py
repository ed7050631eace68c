"""dirauth: OAuth2 and WS-Trust token acquisition for directory identity providers.

Typical usage:
    from dirauth.authentication_context import AuthenticationContext

    async with AuthenticationContext("https://login.example.com/contoso") as ctx:
        token = await ctx.acquire_token_with_client_credentials(
            resource, client_id, client_secret
        )
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
