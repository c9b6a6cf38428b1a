"""
Discord Interactions API constants, payload helpers and request signing.
"""
from enum import IntEnum
import os
import time
from typing import Optional, Tuple
from nacl.signing import VerifyKey
from nacl.exceptions import BadSignatureError


class InteractionType(IntEnum):
    """Interaction types this endpoint handles."""
    PING = 1
    APPLICATION_COMMAND = 2


class InteractionResponseType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE_WITH_SOURCE = 4


class MessageFlags(IntEnum):
    EPHEMERAL = 64  # visible only to the invoking user


class CommandOptionType(IntEnum):
    """Application command option types."""
    SUB_COMMAND = 1
    SUB_COMMAND_GROUP = 2
    STRING = 3


ADMINISTRATOR_PERMISSION = 0x8

# Reject requests older than 5 minutes or in the future
MAX_TIMESTAMP_SKEW_SECONDS = 300


def get_command_options(interaction: dict) -> Tuple[Optional[str], dict]:
    """
    Flatten slash command options.

    Args:
        interaction: APPLICATION_COMMAND interaction payload

    Returns:
        Tuple of (subcommand name or None, {option name: value})
    """
    options = interaction.get('data', {}).get('options', []) or []

    if options and options[0].get('type') == CommandOptionType.SUB_COMMAND:
        subcommand = options[0]
        values = {opt['name']: opt.get('value') for opt in subcommand.get('options', []) or []}
        return subcommand.get('name'), values

    return None, {opt['name']: opt.get('value') for opt in options}


def member_is_admin(member: dict, admin_role_id: Optional[str] = None) -> bool:
    """
    Check ADMINISTRATOR permission or the configured admin role.

    Args:
        member: Interaction member object (includes 'permissions' and 'roles')
        admin_role_id: Optional admin role ID

    Returns:
        True if the member may use admin commands
    """
    if not member:
        return False

    try:
        permissions = int(member.get('permissions', '0'))
    except (TypeError, ValueError):
        permissions = 0

    if permissions & ADMINISTRATOR_PERMISSION:
        return True

    return bool(admin_role_id) and admin_role_id in member.get('roles', [])


def is_fresh_timestamp(timestamp: str, now: Optional[float] = None) -> bool:
    """True if the signed timestamp is within MAX_TIMESTAMP_SKEW_SECONDS of now."""
    try:
        skew = abs(int(now if now is not None else time.time()) - int(timestamp))
    except (TypeError, ValueError):
        print(f"ERROR: Invalid signature timestamp: {timestamp!r}")
        return False

    if skew > MAX_TIMESTAMP_SKEW_SECONDS:
        print(f"ERROR: Signature timestamp outside the allowed window ({skew}s skew)")
        return False
    return True


def verify_discord_signature(signature: str, timestamp: str, body: str) -> bool:
    """
    Verify a Discord interaction request.

    Discord signs timestamp + raw body with the application's Ed25519 key.
    Stale timestamps are rejected so captured requests cannot be replayed.

    Args:
        signature: x-signature-ed25519 header (hex)
        timestamp: x-signature-timestamp header
        body: Raw request body

    Returns:
        True if the request is authentic and fresh
    """
    if not is_fresh_timestamp(timestamp):
        return False

    public_key = os.environ.get('DISCORD_PUBLIC_KEY')
    if not public_key:
        print("ERROR: DISCORD_PUBLIC_KEY not found in environment")
        return False

    try:
        VerifyKey(bytes.fromhex(public_key)).verify(
            f"{timestamp}{body}".encode(), bytes.fromhex(signature)
        )
    except BadSignatureError:
        print("ERROR: Invalid Discord signature")
        return False
    except (TypeError, ValueError) as e:
        print(f"ERROR: Malformed signature or public key: {e}")
        return False
    return True
