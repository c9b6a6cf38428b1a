"""
Slash command handlers for the Discord bot.
Routes /verify, /verifycode and /admin to the verification engine.
"""
import json
from typing import Optional

from code_store import CodeStore
from config import BotConfig, DiscordConfig, load_config
from discord_api import grant_verified_membership
from discord_interactions import (
    InteractionResponseType,
    MessageFlags,
    get_command_options,
    member_is_admin
)
from domain_registry import DomainRegistry
from errors import (
    CodeExpired,
    CodeMismatch,
    NoPendingRequest,
    NotFoundError,
    PersistenceError,
    StorageUnavailable,
    ThrottledError,
    TooManyAttempts,
    VerificationCapReached,
    VerificationError
)
from logging_utils import log_safe
from ses_email import send_verification_email
from ssm_utils import get_bot_token
from storage_backends import build_backend
from validation_utils import validate_input_lengths
from verification_engine import StartStatus, VerificationEngine, VerifiedSuccess


_engine: Optional[VerificationEngine] = None
_config: Optional[BotConfig] = None


def make_membership_hook(discord_config: DiscordConfig):
    """Post-verification hook that grants the verified role and says welcome."""
    def grant_membership(result: VerifiedSuccess) -> None:
        if not discord_config.server_id:
            print("WARNING: SERVER_ID not configured, skipping role assignment")
            return

        if not grant_verified_membership(
            result.user_id,
            discord_config.server_id,
            get_bot_token(),
            verified_role_id=discord_config.verified_role_id,
            quarantine_role_id=discord_config.quarantine_role_id,
            welcome_channel_id=discord_config.welcome_channel_id,
            server_name=discord_config.server_name
        ):
            print(f"WARNING: Membership update incomplete for user {result.user_id}")

    return grant_membership


def build_engine(config: BotConfig, s3_client=None) -> VerificationEngine:
    """
    Wire the engine from configuration.

    Backends are chosen here once per record class.
    """
    storage = config.storage
    domains_backend = build_backend(storage.use_local_domains, storage.local_data_dir,
                                    storage.bucket_name, storage.region, s3_client)
    pending_backend = build_backend(storage.use_local_codes, storage.local_data_dir,
                                    storage.bucket_name, storage.region, s3_client)
    used_backend = build_backend(storage.use_local_used_codes, storage.local_data_dir,
                                 storage.used_codes_bucket, storage.region, s3_client)

    registry = DomainRegistry(domains_backend)
    try:
        registry.initialize(config.verification.default_allowed_domains)
    except VerificationError as e:
        print(f"ERROR: Could not initialize allowed domains: {e.message}")

    expiry_minutes = config.verification.code_expiration_minutes

    def send_email(email: str, code: str) -> bool:
        return send_verification_email(email, code, expiry_minutes=expiry_minutes)

    engine = VerificationEngine(
        registry,
        CodeStore(pending_backend, used_backend),
        send_email,
        config=config.verification,
        on_verified=[make_membership_hook(config.discord)]
    )

    log_safe("Storage configuration", {
        name: value['backend'] for name, value in engine.storage_info().items()
    })
    return engine


def get_config() -> BotConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_engine() -> VerificationEngine:
    """Engine shared by all invocations of a warm Lambda container."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_config())
    return _engine


def handle_ping() -> dict:
    """Handle Discord PING for endpoint verification."""
    return {
        'statusCode': 200,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps({'type': InteractionResponseType.PONG})
    }


def handle_application_command(interaction: dict) -> dict:
    """
    Route a slash command.

    Args:
        interaction: Discord interaction payload

    Returns:
        Lambda response dict
    """
    command_name = interaction.get('data', {}).get('name')

    try:
        if command_name == 'verify':
            return handle_verify(interaction)
        elif command_name == 'verifycode':
            return handle_verify_code(interaction)
        elif command_name == 'admin':
            return handle_admin(interaction)
        else:
            return error_response(f"Unknown command: {command_name}")
    except VerificationError as e:
        log_safe(f"Command {command_name} failed", e.to_dict())
        return verification_error_response(e)


def _user_id(interaction: dict) -> str:
    member = interaction.get('member') or {}
    user = member.get('user') or interaction.get('user') or {}
    return user.get('id', '')


def is_already_verified(member: dict, discord_config: DiscordConfig) -> bool:
    """
    Read verification status from the member's roles in the payload.

    A member outside the quarantine role, or holding the verified role when no
    quarantine role is configured, already has access.
    """
    roles = (member or {}).get('roles', [])
    if discord_config.quarantine_role_id:
        return discord_config.quarantine_role_id not in roles
    if discord_config.verified_role_id:
        return discord_config.verified_role_id in roles
    return False


def handle_verify(interaction: dict) -> dict:
    """Handle /verify email:<address>."""
    _, options = get_command_options(interaction)
    email = (options.get('email') or '').strip()

    is_valid, error = validate_input_lengths(email=email)
    if not is_valid:
        return error_response(error)

    config = get_config()
    result = get_engine().start_verification(
        _user_id(interaction),
        email,
        already_verified=is_already_verified(interaction.get('member'), config.discord)
    )

    if result.status == StartStatus.ALREADY_VERIFIED:
        return ephemeral_response("✅ You're already verified! Enjoy the server!")

    return ephemeral_response(
        f"📧 **Great! I've sent a verification code to {result.email}**\n\n"
        f"📱 Please check your inbox (and spam/junk folders) for an email from {config.discord.server_name}.\n\n"
        f"✅ Once you have the code, use the `/verifycode` command to complete your verification.\n"
        f"⏱️ The code will expire in {result.expires_in_minutes} minutes.\n\n"
        f"Example: `/verifycode code:ABCD1234`"
    )


def handle_verify_code(interaction: dict) -> dict:
    """Handle /verifycode code:<code>."""
    _, options = get_command_options(interaction)
    code = (options.get('code') or '').strip()

    is_valid, error = validate_input_lengths(code=code)
    if not is_valid:
        return error_response(error)

    get_engine().submit_code(_user_id(interaction), code)

    return ephemeral_response(
        f"🎉 **Verification successful!** Welcome to the {get_config().discord.server_name} "
        "Discord community! You now have full access to the server."
    )


def handle_admin(interaction: dict) -> dict:
    """Handle /admin subcommands. Requires ADMINISTRATOR or the admin role."""
    config = get_config()
    if not member_is_admin(interaction.get('member'), config.discord.admin_role_id):
        return error_response("Sorry, only server administrators can use these commands.")

    subcommand, options = get_command_options(interaction)
    engine = get_engine()

    if subcommand == 'storage-info':
        return handle_storage_info(engine)
    elif subcommand == 'domain-add':
        return handle_domain_add(engine, options.get('domain'))
    elif subcommand == 'domain-remove':
        return handle_domain_remove(engine, options.get('domain'))
    elif subcommand == 'domain-list':
        return handle_domain_list(engine)
    elif subcommand == 'checkemail':
        return handle_check_email(engine, options.get('email'))
    elif subcommand == 'resetemail':
        return handle_reset_email(engine, options.get('email'))
    else:
        return error_response(f"Unknown subcommand: {subcommand}")


def handle_storage_info(engine: VerificationEngine) -> dict:
    labels = {'domains': 'Domains', 'pending_codes': 'Pending Codes', 'used_codes': 'Used Codes'}
    info = engine.storage_info()

    message = "📊 **Storage Configuration**\n\n"
    for key, label in labels.items():
        message += f"- {label}: **{info[key]['backend']}** (`{info[key]['location']}`)\n"

    return ephemeral_response(message)


def handle_domain_add(engine: VerificationEngine, domain: Optional[str]) -> dict:
    domain = (domain or '').strip().lower()
    if not domain:
        return error_response("Please provide a valid domain name (e.g., university.edu).")

    if engine.add_domain(domain):
        return ephemeral_response(f'✅ Successfully added "{domain}" to the allowed domains list.')
    return ephemeral_response(f'📝 The domain "{domain}" is already in the allowed list.')


def handle_domain_remove(engine: VerificationEngine, domain: Optional[str]) -> dict:
    domain = (domain or '').strip().lower()
    if not domain:
        return error_response("Please provide a domain to remove.")

    engine.remove_domain(domain)
    return ephemeral_response(f'✅ Successfully removed "{domain}" from the allowed domains list.')


def handle_domain_list(engine: VerificationEngine) -> dict:
    domains = engine.list_domains()
    if not domains:
        return ephemeral_response("⚠️ No domains are currently allowed. Please add at least one domain.")

    domain_list = "\n".join(f"- {d}" for d in domains)
    return ephemeral_response(f"📋 **Currently Allowed Email Domains:**\n{domain_list}")


def handle_check_email(engine: VerificationEngine, email: Optional[str]) -> dict:
    status = engine.check_email(email or '')

    message = f"📧 **Email:** {status['email']}\n"
    message += f"🔢 **Total Verifications:** {status['count']}/{status['max_allowed']}\n"
    message += f"💾 **Storage Method:** {status['backend']}\n"
    message += f"🌐 **Domain Status:** {'✅ Allowed' if status['domain_allowed'] else '❌ Not Allowed'}\n"

    if status['count'] >= status['max_allowed']:
        message += "\n⚠️ This email has reached its maximum verification limit."

    return ephemeral_response(message)


def handle_reset_email(engine: VerificationEngine, email: Optional[str]) -> dict:
    email = (email or '').strip().lower()
    if not email:
        return error_response("Please provide an email address to reset.")

    try:
        outcome = engine.reset_email(email)
    except NotFoundError as e:
        return error_response(f"Unable to reset {email}: {e.message}")

    return ephemeral_response(
        f"✅ Successfully reset verification for {email}! "
        f"Deleted {outcome.deleted_count} record(s). "
        "This email can now be used for verification again."
    )


ERROR_PREFIXES = {
    ThrottledError: "⏳",
    NoPendingRequest: "❓",
    CodeExpired: "⏰",
    TooManyAttempts: "🔒",
}


def verification_error_response(error: VerificationError) -> dict:
    """Map an engine error to the message shown to the user."""
    if isinstance(error, CodeMismatch):
        remaining = error.attempts_remaining
        return ephemeral_response(
            f"❌ That code doesn't match what we sent you. "
            f"You have {remaining} attempt{'s' if remaining != 1 else ''} left.\n\n"
            "📋 Please double-check and try again, or use `/verify` to request a new code."
        )

    if isinstance(error, VerificationCapReached):
        return ephemeral_response(
            f"❌ {error.message}\n\n**Need help?** Please contact a server admin by sending them a "
            "direct message. They can use `/admin resetemail` to allow your email to be used again."
        )

    if isinstance(error, StorageUnavailable):
        return error_response("Verification is temporarily unavailable. Please try again later.")

    if isinstance(error, PersistenceError):
        return error_response(
            "We couldn't save that change. Please try again in a moment."
        )

    prefix = ERROR_PREFIXES.get(type(error), "❌")
    return ephemeral_response(f"{prefix} {error.message}")


def ephemeral_response(content: str) -> dict:
    """Helper to create ephemeral message response."""
    return {
        'statusCode': 200,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps({
            'type': InteractionResponseType.CHANNEL_MESSAGE_WITH_SOURCE,
            'data': {
                'content': content,
                'flags': MessageFlags.EPHEMERAL
            }
        })
    }


def error_response(message: str) -> dict:
    """Helper for error responses."""
    return ephemeral_response(f"❌ {message}")
