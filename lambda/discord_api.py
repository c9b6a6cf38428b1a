"""
Discord REST API operations.
Membership side effects of a successful verification (roles, welcome message).
"""
import requests
from typing import Optional
from logging_utils import log_discord_error


DISCORD_API_BASE = "https://discord.com/api/v10"
REQUEST_TIMEOUT = 5


def _headers(bot_token: str) -> dict:
    return {
        "Authorization": f"Bot {bot_token}",
        "Content-Type": "application/json"
    }


def _error_code(response) -> Optional[int]:
    try:
        return response.json().get('code') if response.content else None
    except ValueError:
        return None


def assign_role(user_id: str, guild_id: str, role_id: str, bot_token: str) -> bool:
    """
    Assign a role to a user via Discord REST API.

    Returns:
        True if role assigned successfully, False otherwise
    """
    url = f"{DISCORD_API_BASE}/guilds/{guild_id}/members/{user_id}/roles/{role_id}"

    try:
        response = requests.put(url, headers=_headers(bot_token), timeout=REQUEST_TIMEOUT)

        if response.status_code == 204:
            print("Successfully assigned role to user")
            return True
        elif response.status_code == 404:
            print("User or role not found in guild")
            return False
        else:
            log_discord_error('assign_role', response.status_code, _error_code(response))
            return False

    except requests.RequestException as e:
        print(f"Error assigning role: {e}")
        return False


def remove_role(user_id: str, guild_id: str, role_id: str, bot_token: str) -> bool:
    """
    Remove a role from a user via Discord REST API.

    Returns:
        True if role removed successfully, False otherwise
    """
    url = f"{DISCORD_API_BASE}/guilds/{guild_id}/members/{user_id}/roles/{role_id}"

    try:
        response = requests.delete(url, headers=_headers(bot_token), timeout=REQUEST_TIMEOUT)

        if response.status_code == 204:
            print("Successfully removed role from user")
            return True

        log_discord_error('remove_role', response.status_code, _error_code(response))
        return False

    except requests.RequestException as e:
        print(f"Error removing role: {e}")
        return False


def send_channel_message(channel_id: str, content: str, bot_token: str) -> bool:
    """
    Post a message to a channel.

    Returns:
        True if the message was created, False otherwise
    """
    url = f"{DISCORD_API_BASE}/channels/{channel_id}/messages"

    try:
        response = requests.post(
            url,
            headers=_headers(bot_token),
            json={'content': content, 'allowed_mentions': {'parse': ['users']}},
            timeout=REQUEST_TIMEOUT
        )

        if response.status_code in (200, 201):
            return True

        log_discord_error('send_message', response.status_code, _error_code(response))
        return False

    except requests.RequestException as e:
        print(f"Error sending channel message: {e}")
        return False


def grant_verified_membership(user_id: str, guild_id: str, bot_token: str,
                              verified_role_id: Optional[str] = None,
                              quarantine_role_id: Optional[str] = None,
                              welcome_channel_id: Optional[str] = None,
                              server_name: str = "our") -> bool:
    """
    Move a member from quarantine to verified and announce them.

    Each step is attempted independently; failures are logged.

    Returns:
        True if every configured step succeeded
    """
    ok = True

    if quarantine_role_id:
        ok = remove_role(user_id, guild_id, quarantine_role_id, bot_token) and ok

    if verified_role_id:
        ok = assign_role(user_id, guild_id, verified_role_id, bot_token) and ok
    else:
        print("WARNING: No verified role configured")

    if welcome_channel_id:
        ok = send_channel_message(
            welcome_channel_id,
            f"🎓 Please welcome <@{user_id}> to the {server_name} community! "
            "They've just completed verification and joined our server.",
            bot_token
        ) and ok

    return ok
