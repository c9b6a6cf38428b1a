#!/usr/bin/env python3
"""
Register slash commands with Discord.
This script registers /verify, /verifycode and /admin for the configured server.
"""
import os
import sys
import requests


DISCORD_API_BASE = "https://discord.com/api/v10"

STRING_OPTION = 3
SUB_COMMAND = 1


# Read .env file manually
def load_env_file(filepath='.env'):
    env_vars = {}
    if os.path.exists(filepath):
        with open(filepath) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    env_vars[key.strip()] = value.strip()
    return env_vars


def _string_option(name, description):
    return {"type": STRING_OPTION, "name": name, "description": description, "required": True}


def _subcommand(name, description, options=None):
    return {"type": SUB_COMMAND, "name": name, "description": description, "options": options or []}


def build_commands():
    """Slash command definitions for the verification bot."""
    return [
        {
            "name": "verify",
            "type": 1,  # CHAT_INPUT
            "description": "Verify your educational email address",
            "dm_permission": False,
            "options": [_string_option("email", "Your educational email address")]
        },
        {
            "name": "verifycode",
            "type": 1,
            "description": "Submit your verification code",
            "dm_permission": False,
            "options": [_string_option("code", "Your verification code")]
        },
        {
            "name": "admin",
            "type": 1,
            "description": "Admin commands for bot management",
            "default_member_permissions": "8",  # ADMINISTRATOR permission required
            "dm_permission": False,
            "options": [
                _subcommand("checkemail", "Check email verification history",
                            [_string_option("email", "Email address to check")]),
                _subcommand("resetemail", "Reset an email to allow verification again",
                            [_string_option("email", "Email address to reset")]),
                _subcommand("domain-add", "Add a new allowed email domain",
                            [_string_option("domain", "Email domain to add (e.g., example.edu)")]),
                _subcommand("domain-remove", "Remove an allowed email domain",
                            [_string_option("domain", "Email domain to remove")]),
                _subcommand("domain-list", "List all allowed email domains"),
                _subcommand("storage-info", "Show current storage configuration information"),
            ]
        }
    ]


def register_commands(app_id, bot_token, server_id):
    """
    Overwrite the guild's commands with build_commands().

    Returns:
        True if Discord accepted the commands, False otherwise
    """
    url = f"{DISCORD_API_BASE}/applications/{app_id}/guilds/{server_id}/commands"
    headers = {
        "Authorization": f"Bot {bot_token}",
        "Content-Type": "application/json"
    }

    print(f"Registering commands for app {app_id} in server {server_id}...")
    response = requests.put(url, headers=headers, json=build_commands(), timeout=10)

    if response.status_code in [200, 201]:
        print("✅ Successfully registered commands:")
        for cmd in response.json():
            print(f"- /{cmd['name']}: {cmd['description']} (ID: {cmd['id']})")
        return True

    print(f"❌ Failed to register commands: {response.status_code}")
    print(response.text)
    return False


def main():
    env_vars = load_env_file()
    app_id = env_vars.get('DISCORD_APP_ID')
    bot_token = env_vars.get('DISCORD_TOKEN')
    server_id = env_vars.get('SERVER_ID')

    if not app_id or not bot_token or not server_id:
        print("ERROR: DISCORD_APP_ID, DISCORD_TOKEN and SERVER_ID must be set in .env file")
        return 1

    return 0 if register_commands(app_id, bot_token, server_id) else 1


if __name__ == '__main__':
    sys.exit(main())
