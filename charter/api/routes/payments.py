"""
Gateway endpoints
=================

POST /api/v1/payments/gomypay/callback  -- server-to-server payment result
POST /api/v1/payments/gomypay-callback  -- same, URL registered by older links
GET  /api/v1/payments/gomypay-callback  -- reachability probe for the gateway
GET|POST /api/v1/payments/gomypay/return -- browser return, bounced to the app

The callback is never rate limited and answers in plain text.  Anything the
gateway should not retry gets a 200; only an unparseable body (400) or an
internal failure (5xx) makes it try again.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from charter.api.dependencies import get_dispatcher, get_gateway_config, get_reconciler
from charter.config import GatewayConfig
from charter.domain.errors import LockTimeout, MalformedCallback
from charter.domain.order_codec import BOOKING_NUMBER_PREFIX, OrderIdentifierCodec
from charter.services.outbox import EventDispatcher
from charter.services.reconciler import SUCCESS_RESULT, SettlementReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


async def _gateway_params(request: Request) -> dict[str, str]:
    """Query string and form body merged; the body wins on conflicts."""
    params = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({key: str(value) for key, value in form.items()})
    return params


@router.post(
    "/gomypay/callback",
    response_class=PlainTextResponse,
    summary="GoMyPay payment result callback",
)
@router.post(
    "/gomypay-callback",
    response_class=PlainTextResponse,
    include_in_schema=False,
)
async def gomypay_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: SettlementReconciler = Depends(get_reconciler),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    params = await _gateway_params(request)
    try:
        ack = await reconciler.handle_callback(params)
    except MalformedCallback as exc:
        logger.warning("Malformed gateway callback: %s", exc)
        return PlainTextResponse(str(exc), status_code=400)
    except LockTimeout:
        logger.warning("Booking busy; asking gateway to retry %s", params.get("e_orderno"))
        return PlainTextResponse("Busy", status_code=503)

    if ack.events:
        background_tasks.add_task(dispatcher.dispatch, ack.events)
    return PlainTextResponse(ack.body, status_code=ack.status_code)


@router.get(
    "/gomypay-callback",
    response_class=PlainTextResponse,
    summary="Callback reachability probe",
)
async def gomypay_callback_probe():
    return PlainTextResponse("OK")


@router.get("/gomypay/return", summary="Browser return from the payment page")
@router.post("/gomypay/return", include_in_schema=False)
async def gomypay_return(
    request: Request,
    config: GatewayConfig = Depends(get_gateway_config),
):
    params = await _gateway_params(request)
    order_no = params.get("e_orderno") or params.get("booking_order_no") or ""
    status = "success" if params.get("result") == SUCCESS_RESULT else "failed"

    booking_number = order_no
    if order_no.startswith(BOOKING_NUMBER_PREFIX):
        booking_number = OrderIdentifierCodec().booking_number_of(order_no)

    query = urlencode({"status": status, "orderNo": booking_number})
    return RedirectResponse(f"{config.app_deep_link}?{query}", status_code=302)
