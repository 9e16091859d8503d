import json
import logging
from typing import Any, Dict, Optional

from scatterbrain.error_handler import AppError, InvalidInputError

logger = logging.getLogger(__name__)

PAID_TIERS = ('professional', 'agency', 'enterprise')

class BillingService:
    """Creates Stripe checkout/portal sessions through Supabase edge functions."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def create_checkout_session(self, tier: str, access_token: Optional[str] = None) -> str:
        if tier not in PAID_TIERS:
            raise InvalidInputError(f"Unknown subscription tier: {tier}")
        return self._invoke('create-checkout', {'tier': tier}, access_token)

    def create_portal_session(self, access_token: Optional[str] = None) -> str:
        return self._invoke('customer-portal', {}, access_token)

    def _invoke(self, function_name: str, body: Dict[str, Any], access_token: Optional[str]) -> str:
        invoke_options: Dict[str, Any] = {'body': body}
        if access_token:
            invoke_options['headers'] = {'Authorization': f"Bearer {access_token}"}

        try:
            response = self.supabase.functions.invoke(function_name, invoke_options=invoke_options)
        except Exception as e:
            logger.error(f"Billing function {function_name} failed: {str(e)}")
            raise AppError(f"Billing function {function_name} failed: {str(e)}", status_code=502) from e

        data = _decode(response)
        url = data.get('url')
        if not url:
            logger.error(f"Billing function {function_name} returned no url: {data}")
            raise AppError(f"Billing function {function_name} returned no url", status_code=502)

        logger.info(f"Created {function_name} session")
        return url


def _decode(response: Any) -> Dict[str, Any]:
    # functions.invoke returns raw bytes for JSON bodies
    if isinstance(response, (bytes, bytearray)):
        response = response.decode('utf-8')
    if isinstance(response, str):
        try:
            response = json.loads(response)
        except json.JSONDecodeError:
            return {}
    return response if isinstance(response, dict) else {}
