"""
Bot configuration.
Reads environment variables once into immutable settings objects.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


DEFAULT_ALLOWED_DOMAINS = ('example.edu',)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"WARNING: Invalid integer for {name}: {value!r}, using default {default}")
        return default


def _env_domains(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default
    domains = tuple(d.strip().lower() for d in value.split(',') if d.strip())
    return domains or default


@dataclass(frozen=True)
class StorageConfig:
    """
    Backend selection per record class.

    Each of domains, pending codes and used codes is stored either on the
    local filesystem or in S3. The codes flags fall back to the global flag.
    """
    use_local_domains: bool = False
    use_local_codes: bool = False
    use_local_used_codes: bool = False
    local_data_dir: str = 'data'
    bucket_name: Optional[str] = None
    used_codes_bucket: Optional[str] = None
    region: str = 'us-east-1'


@dataclass(frozen=True)
class VerificationConfig:
    code_length: int = 8
    code_expiration_minutes: int = 30
    throttle_minutes: int = 5
    max_attempts: int = 3
    max_verifications_per_email: int = 2
    default_allowed_domains: Tuple[str, ...] = DEFAULT_ALLOWED_DOMAINS


@dataclass(frozen=True)
class DiscordConfig:
    server_id: Optional[str] = None
    quarantine_role_id: Optional[str] = None
    verified_role_id: Optional[str] = None
    welcome_channel_id: Optional[str] = None
    admin_role_id: Optional[str] = None
    server_name: str = 'PLACEHOLDER Discord Server'


@dataclass(frozen=True)
class BotConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)


def load_storage_config() -> StorageConfig:
    use_local = _env_bool('USE_LOCAL_STORAGE')
    bucket_name = os.environ.get('S3_BUCKET_NAME') or None

    return StorageConfig(
        use_local_domains=use_local,
        use_local_codes=_env_bool('USE_LOCAL_CODES_STORAGE') or use_local,
        use_local_used_codes=_env_bool('USE_LOCAL_USED_CODES_STORAGE') or use_local,
        local_data_dir=os.environ.get('LOCAL_DATA_DIR', 'data'),
        bucket_name=bucket_name,
        used_codes_bucket=os.environ.get('USED_CODES_BUCKET') or bucket_name,
        region=os.environ.get('AWS_REGION', 'us-east-1'),
    )


def load_verification_config() -> VerificationConfig:
    return VerificationConfig(
        code_length=_env_int('CODE_LENGTH', 8),
        code_expiration_minutes=_env_int('CODE_EXPIRATION_MINUTES', 30),
        throttle_minutes=_env_int('THROTTLE_MINUTES', 5),
        max_attempts=_env_int('MAX_VERIFICATION_ATTEMPTS', 3),
        max_verifications_per_email=_env_int('MAX_VERIFICATIONS_PER_EMAIL', 2),
        default_allowed_domains=_env_domains('DEFAULT_ALLOWED_DOMAINS', DEFAULT_ALLOWED_DOMAINS),
    )


def load_discord_config() -> DiscordConfig:
    verification_channel = os.environ.get('VERIFICATION_CHANNEL_ID') or None

    return DiscordConfig(
        server_id=os.environ.get('SERVER_ID') or None,
        quarantine_role_id=os.environ.get('QUARANTINE_ROLE_ID') or None,
        verified_role_id=os.environ.get('VERIFIED_ROLE_ID') or None,
        welcome_channel_id=os.environ.get('WELCOME_CHANNEL_ID') or verification_channel,
        admin_role_id=os.environ.get('ADMIN_ROLE_ID') or None,
        server_name=os.environ.get('SERVER_NAME', 'PLACEHOLDER Discord Server'),
    )


def load_config() -> BotConfig:
    """
    Load the full bot configuration from environment variables.

    Returns:
        BotConfig with storage, verification and Discord settings
    """
    return BotConfig(
        storage=load_storage_config(),
        verification=load_verification_config(),
        discord=load_discord_config(),
    )
