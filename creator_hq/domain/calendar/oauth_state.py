"""
Signed OAuth state.

The creator id is the only thing that survives the provider redirect, so it
travels signed and timestamped. A forged or stale state is rejected on the
callback.
"""

from typing import Optional

from ...security_utils import generate_timed_token, verify_timed_token

STATE_SALT = "calendar-oauth-state"


def issue_state(secret_key: str, creator_id: str) -> str:
    return generate_timed_token(secret_key, {"creator_id": creator_id}, salt=STATE_SALT)


def read_state(secret_key: str, state: Optional[str], max_age: int) -> Optional[str]:
    """Creator id carried by a valid state, or None"""
    if not state:
        return None
    data = verify_timed_token(secret_key, state, salt=STATE_SALT, max_age=max_age)
    if not isinstance(data, dict):
        return None
    creator_id = data.get("creator_id")
    return creator_id if isinstance(creator_id, str) and creator_id else None
