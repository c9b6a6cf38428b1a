"""
AWS Lambda entry point for the Discord email verification bot.

API Gateway forwards every Discord interaction here. Requests must carry a
valid Ed25519 signature; Discord expects an answer within 3 seconds.
"""
import json
import traceback
from discord_interactions import InteractionType, verify_discord_signature
from handlers import error_response, handle_application_command, handle_ping
from logging_utils import log_safe


def _http_error(status_code: int, message: str) -> dict:
    return {'statusCode': status_code, 'body': json.dumps({'error': message})}


def lambda_handler(event, context):
    """
    Authenticate, parse and route one Discord interaction.

    Args:
        event: API Gateway proxy event
        context: Lambda context (unused)

    Returns:
        API Gateway proxy response
    """
    # Body is logged once parsed
    log_safe("Event", {key: value for key, value in event.items() if key != 'body'})

    headers = {name.lower(): value for name, value in (event.get('headers') or {}).items()}
    raw_body = event.get('body') or '{}'

    signature = headers.get('x-signature-ed25519')
    timestamp = headers.get('x-signature-timestamp')
    if not (signature and timestamp and verify_discord_signature(signature, timestamp, raw_body)):
        return _http_error(401, 'Invalid signature')

    try:
        interaction = json.loads(raw_body)
    except json.JSONDecodeError as e:
        print(f"ERROR: Invalid JSON body: {e}")
        return _http_error(400, 'Invalid JSON')

    log_safe("Interaction", interaction)
    interaction_type = interaction.get('type')

    try:
        if interaction_type == InteractionType.PING:
            return handle_ping()

        if interaction_type == InteractionType.APPLICATION_COMMAND:
            print(f"Slash command: /{interaction.get('data', {}).get('name')}")
            return handle_application_command(interaction)

        print(f"WARNING: Unsupported interaction type: {interaction_type}")
        return error_response("Unknown interaction type")

    except Exception as e:
        # Full detail stays in CloudWatch; the user gets a generic message
        print(f"ERROR: Unhandled {type(e).__name__} while handling interaction")
        traceback.print_exc()
        return error_response(
            "An error occurred while processing your command. "
            "Please try again later or contact a server admin."
        )
