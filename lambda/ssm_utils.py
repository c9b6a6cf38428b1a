"""
AWS Systems Manager Parameter Store utilities.
Loads secrets from SSM, with an environment override for local runs.
"""
import os
import boto3
from functools import lru_cache
from typing import Optional


ssm_client = boto3.client('ssm', region_name=os.environ.get('AWS_REGION', 'us-east-1'))

BOT_TOKEN_PARAMETER = '/discord-bot/token'


@lru_cache(maxsize=32)
def get_parameter(name: str) -> str:
    """
    Get SSM parameter with caching.

    Args:
        name: Parameter name (e.g., '/discord-bot/token')

    Returns:
        Parameter value, or "" if it cannot be read
    """
    try:
        response = ssm_client.get_parameter(Name=name, WithDecryption=True)
        return response['Parameter']['Value']
    except Exception as e:
        print(f"Error getting parameter {name}: {e}")
        return ""


def get_secret(name: str, env_var: Optional[str] = None) -> str:
    """
    Resolve a secret, preferring an environment variable when set.

    Args:
        name: SSM parameter name
        env_var: Environment variable that overrides SSM (optional)

    Returns:
        Secret value, or "" if unavailable
    """
    if env_var:
        value = os.environ.get(env_var)
        if value:
            return value
    return get_parameter(name)


def get_bot_token() -> str:
    """Discord bot token from DISCORD_BOT_TOKEN or SSM."""
    return get_secret(BOT_TOKEN_PARAMETER, 'DISCORD_BOT_TOKEN')
