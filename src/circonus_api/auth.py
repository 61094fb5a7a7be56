from typing import Optional

AUTH_TOKEN_HEADER = "X-Circonus-Auth-Token"
APP_NAME_HEADER = "X-Circonus-App-Name"
ACCOUNT_ID_HEADER = "X-Circonus-Account-ID"


def apply_auth_headers(
    headers: Optional[dict],
    token_key: str,
    token_app: str,
    account_id: Optional[str],
) -> dict:
    updated = dict(headers) if headers else {}
    if token_key:
        updated[AUTH_TOKEN_HEADER] = token_key
    if token_app:
        updated[APP_NAME_HEADER] = token_app
    if account_id:
        updated[ACCOUNT_ID_HEADER] = account_id
    return updated
