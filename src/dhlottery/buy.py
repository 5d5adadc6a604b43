from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from common.alerts import NotificationPayload, format_krw
from common.dates import add_years_and_days, format_with, next_saturday_kst
from common.errors import PurchaseError, PurchaseErrorKind
from common.notifier import NotificationSink
from common.session import CookieSession

from .account import get_account_info
from .constants import (
    GAMES_PER_PURCHASE,
    OL_ORIGIN,
    SUCCESS_CODE,
    TOTAL_PURCHASE_COST,
    USER_AGENT,
)
from .models import (
    PurchaseFailure,
    PurchaseOutcome,
    PurchaseReady,
    PurchaseResult,
    PurchaseSuccess,
)


logger = logging.getLogger(__name__)

GAME_BASE_URL = f"{OL_ORIGIN}/olotto/game"
GAME_PAGE_URL = f"{GAME_BASE_URL}/game645.do"
READY_URL = f"{GAME_BASE_URL}/egovUserReadySocket.json"
EXEC_BUY_URL = f"{GAME_BASE_URL}/execBuy.do"

AJAX_HEADERS = {
    "Origin": OL_ORIGIN,
    "Referer": GAME_PAGE_URL,
    "X-Requested-With": "XMLHttpRequest",
}
GAME_SLOTS = ("A", "B", "C", "D", "E")
AUTO_GEN_TYPE = "0"
SALE_MEDIA_CODE = "10"  # online


def prepare_purchase(session: CookieSession) -> PurchaseReady:
    resp = session.send(
        READY_URL,
        method="POST",
        headers={
            "Content-Type": "application/json; charset=UTF-8",
            "User-Agent": USER_AGENT,
            **AJAX_HEADERS,
        },
    )
    if resp.status_code != 200:
        raise PurchaseError(
            PurchaseErrorKind.READY_FAILED, f"Purchase ready failed: {resp.status_code}"
        )
    try:
        return PurchaseReady.model_validate_json(resp.content)
    except ValidationError as exc:
        raise PurchaseError(
            PurchaseErrorKind.INVALID_RESPONSE, "Invalid purchase ready response", cause=exc
        ) from exc


def build_purchase_form(round_number: int, ready_ip: str, now: Optional[datetime] = None) -> str:
    draw_date = next_saturday_kst(now)
    pay_limit = add_years_and_days(draw_date, 1, 1)
    games = [
        {"genType": AUTO_GEN_TYPE, "arrGameChoiceNum": None, "alpabet": slot}
        for slot in GAME_SLOTS[:GAMES_PER_PURCHASE]
    ]
    return urlencode(
        {
            "round": str(round_number),
            "direct": ready_ip,
            "nBuyAmount": str(TOTAL_PURCHASE_COST),
            "param": json.dumps(games, separators=(",", ":")),
            "gameCnt": str(GAMES_PER_PURCHASE),
            "saleMdaDcd": SALE_MEDIA_CODE,
            "ROUND_DRAW_DATE": format_with(draw_date, "/"),
            "WAMT_PAY_TLMT_END_DT": format_with(pay_limit, "/"),
        }
    )


def execute_purchase(
    session: CookieSession,
    ready: PurchaseReady,
    round_number: int,
    now: Optional[datetime] = None,
) -> PurchaseResult:
    logger.debug(
        "Purchase parameters: round=%s direct=%s amount=%s games=%s",
        round_number,
        ready.ready_ip,
        TOTAL_PURCHASE_COST,
        GAMES_PER_PURCHASE,
    )
    resp = session.send(
        EXEC_BUY_URL,
        method="POST",
        headers={
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "User-Agent": USER_AGENT,
            **AJAX_HEADERS,
        },
        content=build_purchase_form(round_number, ready.ready_ip, now),
    )
    if resp.status_code != 200:
        raise PurchaseError(
            PurchaseErrorKind.EXECUTION_FAILED, f"Purchase execution failed: {resp.status_code}"
        )
    try:
        return PurchaseResult.model_validate_json(resp.content)
    except ValidationError as exc:
        raise PurchaseError(
            PurchaseErrorKind.INVALID_RESPONSE, "Invalid purchase result response", cause=exc
        ) from exc


def purchase_lottery(
    session: CookieSession,
    notifier: NotificationSink,
    now: Optional[datetime] = None,
) -> PurchaseOutcome:
    """
    Buy five auto-numbered Lotto 6/45 games for the current round.

    A rejection from the server is a PurchaseFailure outcome with its own
    notification. Transport and protocol errors raise, and the caller reports
    them; nothing here retries, so a purchase is attempted at most once.
    """
    info = get_account_info(session)
    round_number = info.current_round

    ready = prepare_purchase(session)
    result = execute_purchase(session, ready, round_number, now)

    if result.result.result_code == SUCCESS_CODE:
        logger.info("Purchased round %s: %s games", round_number, GAMES_PER_PURCHASE)
        notifier.notify(
            NotificationPayload(
                type="success",
                title="Lottery Purchase Completed",
                message=(
                    f"{round_number}회 로또 {GAMES_PER_PURCHASE}게임을 "
                    f"{format_krw(TOTAL_PURCHASE_COST)}에 구매했습니다."
                ),
                details={
                    "회차": f"{round_number}회",
                    "게임수": f"{GAMES_PER_PURCHASE}게임",
                    "결제금액": format_krw(TOTAL_PURCHASE_COST),
                },
            )
        )
        return PurchaseSuccess(
            round_number=round_number,
            game_count=GAMES_PER_PURCHASE,
            total_amount=TOTAL_PURCHASE_COST,
            purchase_date=(now or datetime.now(UTC)).isoformat(),
            message=result.result.result_msg,
        )

    logger.warning(
        "Purchase rejected: %s (code=%s)", result.result.result_msg, result.result.result_code
    )
    notifier.notify(
        NotificationPayload(
            type="error",
            title="Lottery Purchase Failed",
            message=result.result.result_msg,
            details={"오류코드": result.result.result_code},
        )
    )
    return PurchaseFailure(error=result.result.result_msg, code=result.result.result_code)
