"""
Smoke checks against a running Secure Data Access API.
Run the API server first: python -m secure_access.api.app
Then run this: python scripts/smoke_api.py
"""

import json
import os

import requests

from secure_access.api.auth import generate_token
from secure_access.config import SECRET_KEY
from secure_access.models import AccessContext

BASE_URL = os.getenv("SMOKE_BASE_URL", "http://localhost:8000")


def _show(title, response):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)
    print(f"Status Code: {response.status_code}")
    try:
        print(f"Response: {json.dumps(response.json(), indent=2)[:1500]}")
    except ValueError:
        print(f"Response: {response.text[:500]}")


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def check_health():
    response = requests.get(f"{BASE_URL}/health")
    _show("Health", response)
    return response.status_code == 200


def check_select_without_token():
    response = requests.get(f"{BASE_URL}/api/secure-select/products")
    _show("Select Without Token", response)
    return response.status_code == 401


def check_allowed_tables(token):
    response = requests.get(f"{BASE_URL}/api/secure-select/tables", headers=_auth(token))
    _show("Allowed Tables", response)
    return response.status_code == 200


def check_capabilities(token):
    response = requests.get(f"{BASE_URL}/api/secure-select/capabilities", headers=_auth(token))
    _show("Filter Capabilities", response)
    return response.status_code == 200


def check_denied_table(token):
    response = requests.get(f"{BASE_URL}/api/secure-select/otp_codes", headers=_auth(token))
    _show("Denied Table", response)
    return response.status_code == 403 and response.json().get("error") == "TABLE_DENIED"


def check_filtered_select(token):
    filters = [{"column": "name", "operator": "contains", "value": "a"}]
    response = requests.get(
        f"{BASE_URL}/api/secure-select/products",
        headers=_auth(token),
        params={"filters": json.dumps(filters), "limit": 9999, "page": 1},
    )
    _show("Filtered Select", response)
    return response.status_code == 200


def check_update_without_where(token):
    response = requests.put(
        f"{BASE_URL}/api/secure-update/places",
        headers=_auth(token),
        json={"where": {}, "data": {"name": "x"}},
    )
    _show("Update Without WHERE", response)
    return response.status_code in (400, 403)


def main():
    print("=" * 50)
    print("Secure Data Access API Smoke Checks")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running with the same JWT_SECRET_KEY!")

    role = os.getenv("SMOKE_ROLE", "user")
    token = generate_token(AccessContext(user_id="smoke-test", role=role), SECRET_KEY)

    results = {}
    try:
        results["Health"] = check_health()
        results["Select Without Token"] = check_select_without_token()
        results["Allowed Tables"] = check_allowed_tables(token)
        results["Filter Capabilities"] = check_capabilities(token)
        results["Denied Table"] = check_denied_table(token)
        results["Filtered Select"] = check_filtered_select(token)
        results["Update Without WHERE"] = check_update_without_where(token)
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, result in results.items():
        print(f"{'✓ PASS' if result else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
