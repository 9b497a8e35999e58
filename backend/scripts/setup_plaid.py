#!/usr/bin/env python3
"""Plaid API setup script.

Validates Plaid API credentials by creating a test link token for the
transactions product, then offers to store them in the OS keychain.
Institution linking happens in the browser through Plaid Link, not here.

Usage:
    1. Sign up at https://dashboard.plaid.com/
    2. Get your client_id and secret from the Keys page
    3. Run this script and follow the prompts
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.plaid_client import PlaidClient
from services.credential_manager import set_credential


def _offer_keychain_store(credentials: dict[str, str]) -> None:
    """Prompt the user to store credentials in the keychain."""
    answer = input("\nStore these credentials in the keychain? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        for key, value in credentials.items():
            if set_credential(key, value):
                print(f"  Stored {key} in keychain")
            else:
                print(f"  Failed to store {key}")
    else:
        print("  Skipped keychain storage.")


def validate_credentials(client_id: str, secret: str, env: str) -> None:
    """Validate Plaid credentials by creating a test link token.

    Raises:
        Exception: If the API call fails.
    """
    client = PlaidClient(client_id=client_id, secret=secret, environment=env)
    token = client.create_link_token("setup-test")
    if not token:
        raise RuntimeError("No link_token in response")


def main():
    """Prompt for credentials and validate them."""
    print("Plaid API Setup")
    print("=" * 50)
    print()

    client_id = input("Enter your Plaid client_id: ").strip()
    if not client_id:
        print("Error: No client_id provided")
        sys.exit(1)

    secret = input("Enter your Plaid secret: ").strip()
    if not secret:
        print("Error: No secret provided")
        sys.exit(1)

    print()
    print("Choose environment:")
    print("  1. sandbox (for testing with fake data)")
    print("  2. production (for live use)")
    env_choice = input("Enter choice (1 or 2) [1]: ").strip() or "1"
    env = {"1": "sandbox", "2": "production"}.get(env_choice, "sandbox")

    print()
    print(f"Validating credentials against {env} environment...")

    try:
        validate_credentials(client_id, secret, env)
    except Exception as e:
        print(f"Error: {e}")
        print()
        print("Common issues:")
        print("  - Incorrect client_id or secret")
        print("  - Wrong environment selected")
        sys.exit(1)

    print()
    print("Success! Add the following to your .env file:")
    print()
    print(f"PLAID_ENVIRONMENT={env}")

    _offer_keychain_store({
        "PLAID_CLIENT_ID": client_id,
        "PLAID_SECRET": secret,
    })


if __name__ == "__main__":
    main()
