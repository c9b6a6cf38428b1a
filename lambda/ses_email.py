"""
Amazon SES email delivery for verification codes.

send_verification_email() is the engine's email sink: it never raises and
reports the outcome as a bool. Outcomes are also counted in CloudWatch.
"""
import boto3
import os
from botocore.exceptions import ClientError
from logging_utils import log_email_event


AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
METRIC_NAMESPACE = 'DiscordBot/SES'
DEFAULT_FROM_EMAIL = 'DiscordVerificationBot@example.com'

ses_client = boto3.client('ses', region_name=AWS_REGION)
cloudwatch = boto3.client('cloudwatch', region_name=AWS_REGION)


def publish_email_metric(metric_name: str, value: float = 1.0):
    """Count a delivery outcome in CloudWatch. Failures are only logged."""
    try:
        cloudwatch.put_metric_data(
            Namespace=METRIC_NAMESPACE,
            MetricData=[{'MetricName': metric_name, 'Value': value, 'Unit': 'Count'}]
        )
    except Exception as e:
        print(f"ERROR publishing metric {metric_name}: {e}")


def build_email_bodies(code: str, server_name: str, expiry_minutes: int) -> tuple:
    """
    Render the subject, text and HTML bodies of a verification email.

    Returns:
        Tuple of (subject, text_body, html_body)
    """
    subject = f"Your {server_name} Discord Verification Code"

    text_body = (
        f"{server_name} Discord Verification\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code will expire in {expiry_minutes} minutes.\n\n"
        "Return to Discord and use the /verifycode command with this code "
        "to get full access to the server.\n\n"
        "If you didn't request this code, please ignore this email.\n"
    )

    html_body = f"""<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: #00447c;">{server_name} Discord Verification</h2>
    <p>Thanks for joining the {server_name} Discord community! Your verification code is:</p>
    <div style="font-size: 24px; font-weight: bold; letter-spacing: 4px; text-align: center; background-color: #f5f5f5; padding: 10px; margin: 15px 0;">
        {code}
    </div>
    <p><strong>This code will expire in {expiry_minutes} minutes.</strong></p>
    <p>Return to Discord and use the <strong>/verifycode</strong> command with this code to get full access to the server.</p>
    <p style="color: #777; font-size: 12px;">
        If you didn't request this code, please ignore this email.
        Check your spam folder if the email is not in your inbox.
    </p>
</body>
</html>"""

    return subject, text_body, html_body


def _utf8(data: str) -> dict:
    return {'Data': data, 'Charset': 'UTF-8'}


def send_verification_email(email: str, code: str, expiry_minutes: int = 30) -> bool:
    """
    Send a verification code via Amazon SES.

    Sender settings come from FROM_EMAIL, FROM_NAME and SERVER_NAME.

    Args:
        email: Recipient email address
        code: Verification code
        expiry_minutes: Minutes until the code expires (shown in the email)

    Returns:
        True if SES accepted the message, False otherwise
    """
    from_email = os.environ.get('FROM_EMAIL', DEFAULT_FROM_EMAIL)
    from_name = os.environ.get('FROM_NAME')
    server_name = os.environ.get('SERVER_NAME', 'PLACEHOLDER Discord Server')

    subject, text_body, html_body = build_email_bodies(code, server_name, expiry_minutes)

    try:
        response = ses_client.send_email(
            Source=f"{from_name} <{from_email}>" if from_name else from_email,
            Destination={'ToAddresses': [email]},
            Message={
                'Subject': _utf8(subject),
                'Body': {'Text': _utf8(text_body), 'Html': _utf8(html_body)}
            }
        )
    except ClientError as e:
        log_email_event("sent", email, False, f"SES Error: {e.response['Error']['Message']}")
        publish_email_metric('EmailsFailed')
        return False
    except Exception as e:
        print(f"Unexpected error sending email: {type(e).__name__}")
        publish_email_metric('EmailsFailed')
        return False

    log_email_event("sent", email, True, f"MessageId: {response['MessageId']}")
    publish_email_metric('EmailsSent')
    return True
