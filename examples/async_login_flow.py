import asyncio
import contextlib
import os
import sys

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from anyio import create_task_group

from coreason_oidc import CoreasonOIDCError, OIDCClientConfig, RelyingParty


async def main() -> None:
    """
    Walks through the first half of an authorization code login.
    Includes:
    - TaskGroup for concurrency (discovery runs once even when raced)
    - PKCE, state and nonce generation
    - OpenTelemetry instrumentation (auto-applied by RelyingParty)
    """
    print(">>> Starting Async Login Flow Example")

    config = OIDCClientConfig(
        issuer=os.getenv("COREASON_OIDC_ISSUER", "https://auth.example.com/"),
        client_id=os.getenv("COREASON_OIDC_CLIENT_ID", "my-app"),
        redirect_uri="http://localhost:3000/callback",
        scope="openid email profile",
        http_timeout=5.0,
        unsafe_local_dev=True,  # Allows the plain-HTTP localhost redirect above
    )

    async with RelyingParty(config) as rp:
        print(">>> Racing two discovery calls...")
        login = None
        try:
            async with create_task_group() as tg:
                tg.start_soon(rp.get_issuer)
                tg.start_soon(rp.get_issuer)

            login = await rp.begin_login(prompt="login")
        except* CoreasonOIDCError as eg:
            # Without a reachable issuer discovery fails here
            print(f">>> Expected failure (no real server): {eg.exceptions[0]}")

        if login is None:
            return

        print(f">>> Redirect the browser to:\n    {login.url}")
        print(f">>> Persist these checks in the session: {login.checks.model_dump_json()}")

        callback = input(">>> Paste the full callback URL: ").strip()
        tokens = await rp.complete_login(callback, login.checks)
        print(f">>> Logged in: {tokens}")

        info = await rp.userinfo(tokens)
        print(f">>> Userinfo: {info}")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
