"""
Central pytest configuration and fixtures for the email verification bot tests.

This module provides reusable fixtures for:
- AWS service mocking (S3, SES, SSM)
- Local and S3 storage backends
- A verification engine wired to a recording email sink
- Signed Discord interaction events
"""
import pytest
import sys
import os
import json
import time
from pathlib import Path

# Add lambda directory and payload fixtures to path for imports
lambda_dir = Path(__file__).parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))
sys.path.insert(0, str(Path(__file__).parent / 'fixtures'))

# AWS mocking
from moto import mock_aws
import boto3
from nacl.signing import SigningKey


TEST_SIGNING_KEY = SigningKey.generate()
TEST_BUCKET = 'verification-bot-data'
TEST_USED_CODES_BUCKET = 'verification-bot-used-codes'


# ==============================================================================
# Environment Setup
# ==============================================================================

@pytest.fixture(scope='session', autouse=True)
def set_test_environment():
    """Set up test environment variables for all tests."""
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
    os.environ['AWS_REGION'] = 'us-east-1'
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'

    # Discord configuration
    os.environ['DISCORD_PUBLIC_KEY'] = TEST_SIGNING_KEY.verify_key.encode().hex()
    os.environ['DISCORD_APP_ID'] = '1234567890'

    os.environ['FROM_EMAIL'] = 'test@test.com'

    yield


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'


# ==============================================================================
# AWS S3 Fixtures
# ==============================================================================

@pytest.fixture
def mock_s3(aws_credentials):
    """Mock S3 with the main and used-codes buckets created."""
    with mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        s3.create_bucket(Bucket=TEST_BUCKET)
        s3.create_bucket(Bucket=TEST_USED_CODES_BUCKET)
        yield s3


@pytest.fixture
def mock_ses_service(aws_credentials):
    """Mock AWS SES service with a verified sender."""
    with mock_aws():
        ses = boto3.client('ses', region_name='us-east-1')
        ses.verify_email_identity(EmailAddress='test@test.com')
        yield ses


# ==============================================================================
# Storage Fixtures
# ==============================================================================

@pytest.fixture
def local_backend(tmp_path):
    from storage_backends import LocalBackend
    return LocalBackend(tmp_path / 'data')


@pytest.fixture
def s3_backends(mock_s3):
    """S3 backends for (domains + pending codes, used codes)."""
    from storage_backends import S3Backend
    return (
        S3Backend(TEST_BUCKET, client=mock_s3),
        S3Backend(TEST_USED_CODES_BUCKET, client=mock_s3)
    )


@pytest.fixture
def registry(local_backend):
    """Domain registry seeded with school.edu."""
    from domain_registry import DomainRegistry
    registry = DomainRegistry(local_backend)
    registry.initialize(['school.edu'])
    return registry


@pytest.fixture
def code_store(local_backend):
    from code_store import CodeStore
    return CodeStore(local_backend, local_backend)


# ==============================================================================
# Engine Fixtures
# ==============================================================================

class RecordingEmailSender:
    """Email sink that records every send and can be told to fail."""

    def __init__(self):
        self.sent = []
        self.succeed = True

    def __call__(self, email, code):
        self.sent.append((email, code))
        return self.succeed

    @property
    def last_code(self):
        return self.sent[-1][1] if self.sent else None


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def verified_events():
    """List collecting VerifiedSuccess results from the post-success hook."""
    return []


@pytest.fixture
def engine(registry, code_store, email_sender, verified_events):
    """Verification engine with default limits (cap 2, throttle 5m, expiry 30m)."""
    from verification_engine import VerificationEngine
    return VerificationEngine(
        registry,
        code_store,
        email_sender,
        on_verified=[verified_events.append]
    )


# ==============================================================================
# Discord Event Helpers
# ==============================================================================

def create_signed_event(body_dict, timestamp=None, signing_key=None):
    """Helper to create an API Gateway event signed like Discord does."""
    return create_signed_raw_event(json.dumps(body_dict), timestamp, signing_key)


def create_signed_raw_event(body, timestamp=None, signing_key=None):
    """Signed event for an arbitrary (possibly malformed) body string."""
    timestamp = str(timestamp if timestamp is not None else int(time.time()))
    key = signing_key or TEST_SIGNING_KEY
    signature = key.sign(f"{timestamp}{body}".encode()).signature.hex()

    return {
        'headers': {
            'x-signature-ed25519': signature,
            'x-signature-timestamp': timestamp,
            'content-type': 'application/json'
        },
        'body': body
    }


def response_content(response):
    """Content of an ephemeral Discord message response."""
    body = json.loads(response['body'])
    return body.get('data', {}).get('content', '')


# Make helper functions available to tests
pytest.create_signed_event = create_signed_event
pytest.create_signed_raw_event = create_signed_raw_event
pytest.response_content = response_content
