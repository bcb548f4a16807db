"""BDD tests for settling payments from the provider callback."""

from pytest_bdd import parsers, scenarios, then, when

scenarios("features/payment_callback.feature")


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the provider reports the payment as "{status}"'))
def _(checkout, journey, status):
    token = journey.session_token
    error_code = None if status == "OK" else status
    journey.result = checkout.complete_from_callback(token, provider_reference=token, error_code=error_code)


@when("the shopper cancels the order")
def _(checkout, journey):
    result = checkout.cancel_order(journey.order_number, journey.shopper)
    assert result.is_ok, result


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the callback succeeds")
def _(journey):
    assert journey.result.is_ok, journey.result


@then(parsers.cfparse('the callback fails with "{code}"'))
def _(journey, code):
    result = journey.result
    assert not result.is_ok
    assert result.error.code.value == code
