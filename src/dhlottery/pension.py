"""
Pension 720+ next-week reservation on el.dhlottery.co.kr.

Pipeline (single pass, never retried):
  bootstrap -> round discovery -> deposit -> duplicate check -> commit

Every step after round discovery is an enveloped POST: the form body is
encrypted under a key derived from the session cookie and sent as the single
field `q`; the JSON answer carries its own encrypted `q`.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Type, TypeVar
from urllib.parse import urlencode

from pydantic import ValidationError

from common.alerts import NotificationPayload, format_krw
from common.dates import add_days, format_with
from common.envelope import decrypt_envelope, encrypt_envelope
from common.errors import LotteryError, ReserveError, ReserveErrorKind, describe
from common.notifier import NotificationSink
from common.session import CookieSession

from .constants import (
    EL_ORIGIN,
    PENSION_RESERVE_COST,
    PENSION_TICKET_COUNT,
    SUCCESS_CODE,
    USER_AGENT,
)
from .models import (
    ElAddMyReserve,
    ElCheckMyReserve,
    ElDeposit,
    ElResult,
    ElRoundRemainTime,
    ReservationContext,
    ReserveFailure,
    ReserveOutcome,
    ReserveSkipped,
    ReserveSuccess,
)


logger = logging.getLogger(__name__)

TOTAL_GAME_URL = f"{EL_ORIGIN}/game/TotalGame.jsp?LottoId=LP72"
RESERVE_PAGE_URL = f"{EL_ORIGIN}/game/pension720/reserveGame.jsp"
ROUND_REMAIN_TIME_URL = f"{EL_ORIGIN}/roundRemainTime.do"
CHECK_DEPOSIT_URL = f"{EL_ORIGIN}/checkDeposit.do"
CHECK_MY_RESERVE_URL = f"{EL_ORIGIN}/checkMyReserve.do"
ADD_MY_RESERVE_URL = f"{EL_ORIGIN}/addMyReserve.do"

# The reservation page's empty `frmAuto` form, serialized. Session-scoped
# queries (round info, deposit) accept it verbatim.
FRM_AUTO_SERIALIZED = "ROUND=&SEL_NO=&BUY_CNT=&AUTO_SEL_SET=&SEL_CLASS=&ACCS_TYPE=01"

SESSION_COOKIES = ("JSESSIONID", "DHJSESSIONID")
FAILURE_TITLE = "Pension Reserve Failed"
SKIPPED_TITLE = "Pension Reserve Skipped"

T = TypeVar("T", bound=ElResult)


def _ajax_headers(referer: str) -> dict[str, str]:
    return {
        "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
        "User-Agent": USER_AGENT,
        "Origin": EL_ORIGIN,
        "Referer": referer,
        "X-Requested-With": "XMLHttpRequest",
    }


def _session_id(session: CookieSession) -> str:
    # The EL host issues its own JSESSIONID; fall back to the main site's cookie
    for name in SESSION_COOKIES:
        value = session.get_cookie(name)
        if value:
            logger.debug("Using %s for EL encryption", name)
            return value
    raise ReserveError(ReserveErrorKind.AUTH_MISSING, "Missing session cookie for pension reserve")


def build_reserve_form(ctx: ReservationContext, *, win_date: str) -> str:
    """Serialize the reservation form; `win_date` is empty for the duplicate check."""
    return urlencode(
        {
            "ROUND": str(ctx.current_round),
            "reserveJo": "0",
            "repeatRoundCnt": "1",
            "totalBuyAmt": str(PENSION_RESERVE_COST),
            "totalBuyCnt": str(PENSION_TICKET_COUNT),
            # trailing slash is how the page serializes these balances
            "moneyBalance": "0/",
            "couponBalance": "0/",
            "nextRound": str(ctx.next_round),
            "repeatClass": "5",
            "roundBuyCnt": "1",
            "curdeposit": str(ctx.deposit or 0),
            "curpay": str(PENSION_RESERVE_COST),
            "winDate": win_date,
            "WORKING_FLAG": "false",
            "repeatRound": "1",
            "repeatRoundHidden": ctx.next_draw_date,
        }
    )


# --------------- Steps ---------------
def bootstrap_el_session(session: CookieSession) -> None:
    resp = session.send(TOTAL_GAME_URL, headers={"User-Agent": USER_AGENT})
    if resp.status_code != 200:
        raise ReserveError(
            ReserveErrorKind.BOOTSTRAP_FAILED,
            f"Failed to load EL total game page: HTTP {resp.status_code}",
        )

    resp = session.send(
        RESERVE_PAGE_URL, headers={"User-Agent": USER_AGENT, "Referer": TOTAL_GAME_URL}
    )
    if resp.status_code != 200:
        raise ReserveError(
            ReserveErrorKind.BOOTSTRAP_FAILED,
            f"Failed to load EL reserve page: HTTP {resp.status_code}",
        )


def fetch_round_info(session: CookieSession) -> ReservationContext:
    resp = session.send(
        ROUND_REMAIN_TIME_URL,
        method="POST",
        headers=_ajax_headers(RESERVE_PAGE_URL),
        content=FRM_AUTO_SERIALIZED,
    )
    if resp.status_code != 200:
        raise ReserveError(
            ReserveErrorKind.ROUND_FETCH_FAILED,
            f"Failed to fetch round remain time: HTTP {resp.status_code}",
        )

    try:
        data = ElRoundRemainTime.model_validate_json(resp.content)
    except ValidationError as exc:
        raise ReserveError(
            ReserveErrorKind.INVALID_RESPONSE, "Invalid round remain time response", cause=exc
        ) from exc

    if data.result_code != SUCCESS_CODE:
        raise ReserveError(
            ReserveErrorKind.API_RESULT,
            f"Round remain time API failed: {data.result_code} {data.result_msg}",
            code=data.result_code,
        )

    try:
        current_round = int(data.round_no)
    except ValueError:
        current_round = 0
    if current_round <= 0:
        raise ReserveError(ReserveErrorKind.INVALID_ROUND, f"Invalid round value: {data.round_no}")

    try:
        next_draw = add_days(data.draw_date, 7)
    except (ValueError, IndexError) as exc:
        raise ReserveError(
            ReserveErrorKind.INVALID_RESPONSE, f"Invalid draw date: {data.draw_date}", cause=exc
        ) from exc

    # Draws are weekly and numbered sequentially; a skipped number is not detected.
    return ReservationContext(
        current_round=current_round,
        next_round=current_round + 1,
        next_draw_date=format_with(next_draw, "."),
    )


def post_enveloped(
    session: CookieSession,
    url: str,
    plain_form: str,
    model: Type[T],
    *,
    referer: str = RESERVE_PAGE_URL,
) -> T:
    session_id = _session_id(session)
    body = urlencode({"q": encrypt_envelope(plain_form, session_id)})

    resp = session.send(url, method="POST", headers=_ajax_headers(referer), content=body)
    if resp.status_code != 200:
        raise ReserveError(
            ReserveErrorKind.API_FAILED, f"EL API request failed: HTTP {resp.status_code}"
        )

    try:
        payload = resp.json()
    except ValueError as exc:
        raise ReserveError(
            ReserveErrorKind.INVALID_RESPONSE, "EL API response is not JSON", cause=exc
        ) from exc
    encrypted = payload.get("q") if isinstance(payload, dict) else None
    if not encrypted:
        raise ReserveError(ReserveErrorKind.INVALID_RESPONSE, "EL API response is missing q payload")

    plain = decrypt_envelope(encrypted, session_id)
    try:
        return model.model_validate_json(plain)
    except ValidationError as exc:
        raise ReserveError(
            ReserveErrorKind.INVALID_RESPONSE, "EL API payload has an unexpected shape", cause=exc
        ) from exc


def _parse_deposit(value: str) -> Optional[int]:
    try:
        return int(float(value.replace(",", "")))
    except (ValueError, OverflowError):
        # "1e400" parses as inf
        return None


def _duplicates_for(data: ElCheckMyReserve, target_round: int) -> List[str]:
    found: List[str] = []
    for item in data.double_round or []:
        try:
            round_no = int(item.double_round)
        except ValueError:
            continue
        if round_no == target_round:
            found.append(f"{item.double_round}회 {item.double_cnt}매")
    return found


# --------------- Outcomes ---------------
def _send(notifier: NotificationSink, payload: NotificationPayload) -> None:
    try:
        notifier.notify(payload)
    except Exception:
        # A broken channel must not turn into a different outcome
        logger.exception("Notification sink raised for %r", payload.title)


def _fail(
    notifier: NotificationSink,
    *,
    error: str,
    code: Optional[str],
    target_round: Optional[int],
    message: str,
    notification_type: str = "error",
    title: str = FAILURE_TITLE,
    details: Optional[dict] = None,
) -> ReserveFailure:
    logger.warning("Pension reserve failed: %s (code=%s)", error, code)
    _send(
        notifier,
        NotificationPayload(
            type=notification_type,  # type: ignore[arg-type]
            title=title,
            message=message,
            details=details
            if details is not None
            else {
                "오류코드": code,
                "대상회차": f"{target_round}회" if target_round else None,
            },
        ),
    )
    return ReserveFailure(target_round=target_round, error=error, code=code)


def reserve_pension_next_week(
    session: CookieSession, notifier: NotificationSink
) -> ReserveOutcome:
    """
    Reserve one ticket per group for next week's pension draw.

    Never raises. Every path returns exactly one outcome and sends exactly one
    notification; a duplicate reservation is a skip, not a failure.
    """
    target_round: Optional[int] = None
    try:
        bootstrap_el_session(session)

        ctx = fetch_round_info(session)
        target_round = ctx.next_round
        logger.info("Pension target round %s (draw %s)", target_round, ctx.next_draw_date)

        deposit_data = post_enveloped(session, CHECK_DEPOSIT_URL, FRM_AUTO_SERIALIZED, ElDeposit)
        if deposit_data.result_code != SUCCESS_CODE:
            return _fail(
                notifier,
                error=deposit_data.result_msg,
                code=deposit_data.result_code,
                target_round=target_round,
                message=f"연금복권 예치금 조회에 실패했습니다: {deposit_data.result_msg}",
            )

        deposit = _parse_deposit(deposit_data.deposit)
        if deposit is None:
            return _fail(
                notifier,
                error="Invalid deposit value from EL API",
                code=ReserveErrorKind.INVALID_DEPOSIT.value,
                target_round=target_round,
                message="연금복권 예치금 값을 파싱하지 못했습니다.",
            )

        if deposit < PENSION_RESERVE_COST:
            return _fail(
                notifier,
                error="Insufficient balance for pension reserve",
                code=ReserveErrorKind.INSUFFICIENT_DEPOSIT.value,
                target_round=target_round,
                message="연금복권 예약에 필요한 예치금이 부족하여 예약을 건너뜁니다.",
                notification_type="warning",
                title=SKIPPED_TITLE,
                details={
                    "대상회차": f"{target_round}회",
                    "필요금액": format_krw(PENSION_RESERVE_COST),
                    "보유예치금": format_krw(deposit),
                },
            )
        ctx = ctx.model_copy(update={"deposit": deposit})

        duplicate_data = post_enveloped(
            session, CHECK_MY_RESERVE_URL, build_reserve_form(ctx, win_date=""), ElCheckMyReserve
        )
        if duplicate_data.result_code != SUCCESS_CODE:
            return _fail(
                notifier,
                error=duplicate_data.result_msg,
                code=duplicate_data.result_code,
                target_round=target_round,
                message=f"연금복권 중복 예약 확인에 실패했습니다: {duplicate_data.result_msg}",
            )

        duplicates = _duplicates_for(duplicate_data, target_round)
        if duplicates:
            logger.info("Round %s already reserved: %s", target_round, duplicates)
            _send(
                notifier,
                NotificationPayload(
                    type="warning",
                    title=SKIPPED_TITLE,
                    message=f"대상 회차({target_round}회)가 이미 예약되어 예약을 건너뜁니다.",
                    details={"중복회차": ", ".join(duplicates)},
                ),
            )
            return ReserveSkipped(
                target_round=target_round,
                total_amount=PENSION_RESERVE_COST,
                ticket_count=PENSION_TICKET_COUNT,
                message="Duplicate reserve detected",
                duplicate_rounds=tuple(duplicates),
            )

        reserve_data = post_enveloped(
            session,
            ADD_MY_RESERVE_URL,
            build_reserve_form(ctx, win_date=ctx.next_draw_date),
            ElAddMyReserve,
        )
        if reserve_data.result_code != SUCCESS_CODE:
            return _fail(
                notifier,
                error=reserve_data.result_msg,
                code=reserve_data.result_code,
                target_round=target_round,
                message=f"연금복권 예약 요청에 실패했습니다: {reserve_data.result_msg}",
            )

        logger.info("Pension round %s reserved: order %s", target_round, reserve_data.reserve_order_no)
        _send(
            notifier,
            NotificationPayload(
                type="success",
                title="Pension Reserve Completed",
                message=f"{target_round}회 연금복권720+ 예약(모든조, 1매씩)을 완료했습니다.",
                details={
                    "대상회차": f"{target_round}회",
                    "예약금액": format_krw(PENSION_RESERVE_COST),
                    "예약수량": f"{PENSION_TICKET_COUNT}매",
                    "예약번호": reserve_data.reserve_order_no,
                },
            ),
        )
        return ReserveSuccess(
            target_round=target_round,
            total_amount=PENSION_RESERVE_COST,
            ticket_count=PENSION_TICKET_COUNT,
            message=reserve_data.result_msg,
            reserve_order_no=reserve_data.reserve_order_no,
            reserve_order_date=reserve_data.reserve_order_date,
        )
    except Exception as exc:
        if isinstance(exc, LotteryError):
            code = exc.code
        else:
            code = ReserveErrorKind.UNEXPECTED_ERROR.value
            logger.exception("Unexpected error during pension reserve")
        message = describe(exc)
        return _fail(
            notifier,
            error=message,
            code=code,
            target_round=target_round,
            message=f"연금복권 예약 중 오류가 발생했습니다: {message}",
        )


__all__ = [
    "FRM_AUTO_SERIALIZED",
    "bootstrap_el_session",
    "build_reserve_form",
    "fetch_round_info",
    "post_enveloped",
    "reserve_pension_next_week",
]
