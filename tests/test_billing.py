import json

import pytest
from unittest.mock import MagicMock

from api.services.billing import BillingService
from scatterbrain.error_handler import AppError, InvalidInputError


def test_checkout_invokes_edge_function():
    supabase = MagicMock()
    supabase.functions.invoke.return_value = json.dumps({'url': 'https://checkout.stripe.test/s/1'}).encode()

    url = BillingService(supabase).create_checkout_session('professional', 'token-1')

    assert url == 'https://checkout.stripe.test/s/1'
    name = supabase.functions.invoke.call_args.args[0]
    options = supabase.functions.invoke.call_args.kwargs['invoke_options']
    assert name == 'create-checkout'
    assert options == {'body': {'tier': 'professional'}, 'headers': {'Authorization': 'Bearer token-1'}}


def test_checkout_rejects_unknown_tier():
    supabase = MagicMock()

    with pytest.raises(InvalidInputError):
        BillingService(supabase).create_checkout_session('starter')

    supabase.functions.invoke.assert_not_called()


def test_portal_accepts_dict_response():
    supabase = MagicMock()
    supabase.functions.invoke.return_value = {'url': 'https://billing.stripe.test/p/1'}

    assert BillingService(supabase).create_portal_session() == 'https://billing.stripe.test/p/1'
    assert supabase.functions.invoke.call_args.args[0] == 'customer-portal'


@pytest.mark.parametrize('response', [b'not json', {'error': 'no customer'}, None])
def test_missing_url_is_an_error(response):
    supabase = MagicMock()
    supabase.functions.invoke.return_value = response

    with pytest.raises(AppError) as exc_info:
        BillingService(supabase).create_portal_session('token-1')

    assert exc_info.value.status_code == 502


def test_invoke_failure_is_wrapped():
    supabase = MagicMock()
    supabase.functions.invoke.side_effect = RuntimeError("edge function crashed")

    with pytest.raises(AppError) as exc_info:
        BillingService(supabase).create_checkout_session('agency')

    assert exc_info.value.status_code == 502
