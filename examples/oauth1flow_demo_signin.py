"""Demo: OAuth 1.0a sign-in through the system browser.

Demonstrates the documented patterns:

- ``SignInController.from_settings()`` for provider configuration
- ``authorize_from_store()`` to reuse a saved access token
- ``run_in_browser()`` for loopback sign-in
- ``OAuth1Auth`` to sign API calls with the resulting credential

Setup
-----
1. Register an application with an OAuth 1.0a provider and allow a
   ``http://127.0.0.1`` callback.
2. Export the provider configuration::

       export OAUTH1FLOW_OAUTH1__CONSUMER_KEY="your-consumer-key"
       export OAUTH1FLOW_OAUTH1__CONSUMER_SECRET="your-consumer-secret"
       export OAUTH1FLOW_OAUTH1__REQUEST_TOKEN_URL="https://api.example.com/oauth/request_token"
       export OAUTH1FLOW_OAUTH1__AUTHORIZE_TOKEN_URL="https://api.example.com/oauth/authorize"
       export OAUTH1FLOW_OAUTH1__ACCESS_TOKEN_URL="https://api.example.com/oauth/access_token"

3. Optionally point the demo at an API endpoint to call once signed in::

       export DEMO_API_URL="https://api.provider.example.com/account"

4. Run::

       python examples/oauth1flow_demo_signin.py
"""

from __future__ import annotations

import os
import sys

import httpx

from oauth1flow import OAuth1Auth, SignInController, UserCanceled, enable_debug, get_settings


APP_SERVICE_NAME = "oauth1flow demo"


def main() -> int:
    """Sign in (or reuse the saved credential) and optionally call an API."""
    if "--debug" in sys.argv:
        enable_debug()

    if not get_settings().oauth1.consumer_key:
        print("Set OAUTH1FLOW_OAUTH1__CONSUMER_KEY and the endpoint URLs first.")
        return 1

    controller = SignInController.from_settings(app_service_name=APP_SERVICE_NAME)

    if SignInController.authorize_from_store(APP_SERVICE_NAME, controller.auth):
        print("Using the saved credential.")
    else:
        print("Opening the provider's authorization page in your browser...")
        result = controller.run_in_browser()
        if isinstance(result.error, UserCanceled):
            print("Sign-in cancelled.")
            return 1
        if not result.success:
            print(f"Sign-in failed: {result.error}")
            return 1
        print("Signed in; the credential was saved.")

    api_url = os.environ.get("DEMO_API_URL")
    if api_url:
        with httpx.Client(auth=OAuth1Auth(controller.auth)) as client:
            response = client.get(api_url)
        print(f"GET {api_url} -> {response.status_code}")
        print(response.text[:500])

    return 0


if __name__ == "__main__":
    sys.exit(main())
