from __future__ import annotations

import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from common.alerts import NotificationPayload
from common.envelope import decrypt_envelope, encrypt_envelope
from common.errors import ReserveError, ReserveErrorKind
from common.session import CookieSession
from dhlottery import pension
from dhlottery.models import (
    ElDeposit,
    ReservationContext,
    ReserveFailure,
    ReserveSkipped,
    ReserveSuccess,
)


SESSION_ID = "ELSESSION0123456789abcdef0123456789.node1"


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[NotificationPayload] = []

    def notify(self, payload: NotificationPayload) -> None:
        self.sent.append(payload)


class RaisingNotifier:
    def __init__(self) -> None:
        self.calls = 0

    def notify(self, payload: NotificationPayload) -> None:
        self.calls += 1
        raise RuntimeError("telegram down")


class FakeEl:
    """
    Scripted el.dhlottery.co.kr.

    Enveloped endpoints decrypt `q` with the session cookie they handed out
    and answer with an encrypted `q`, like the real site.
    """

    def __init__(self) -> None:
        self.round_info: Dict[str, Any] = {"resultCode": "100", "ROUND": 303, "DRAW_DATE": "2026-02-19"}
        self.deposit: Dict[str, Any] = {"resultCode": "100", "resultMsg": "", "deposit": "10000"}
        self.check: Dict[str, Any] = {"resultCode": "100", "resultMsg": "", "doubleRound": []}
        self.add: Dict[str, Any] = {
            "resultCode": "100",
            "resultMsg": "예약이 완료되었습니다.",
            "reserveOrderNo": "R20260220001",
            "reserveOrderDate": "2026-02-20",
        }
        self.overrides: Dict[str, httpx.Response] = {}
        self.requests: List[httpx.Request] = []
        self.forms: Dict[str, Dict[str, List[str]]] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.overrides:
            return self.overrides[path]
        if path == "/game/TotalGame.jsp":
            return httpx.Response(200, headers=[("set-cookie", f"JSESSIONID={SESSION_ID}; Path=/")])
        if path == "/game/pension720/reserveGame.jsp":
            return httpx.Response(200, text="<html>reserve</html>")
        if path == "/roundRemainTime.do":
            return httpx.Response(200, json=self.round_info)
        payloads = {
            "/checkDeposit.do": self.deposit,
            "/checkMyReserve.do": self.check,
            "/addMyReserve.do": self.add,
        }
        if path in payloads:
            q = parse_qs(request.content.decode())["q"][0]
            self.forms[path] = parse_qs(decrypt_envelope(q, SESSION_ID), keep_blank_values=True)
            body = encrypt_envelope(json.dumps(payloads[path], ensure_ascii=False), SESSION_ID)
            return httpx.Response(200, json={"q": body})
        return httpx.Response(404)

    def session(self) -> CookieSession:
        return CookieSession(client=httpx.Client(transport=httpx.MockTransport(self.handler)))

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture()
def site() -> FakeEl:
    return FakeEl()


def _reserve(site: FakeEl, notifier: Optional[Any] = None):
    notifier = notifier if notifier is not None else RecordingNotifier()
    with site.session() as s:
        return pension.reserve_pension_next_week(s, notifier), notifier


def test_success_reserves_next_round(site):
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveSuccess)
    assert outcome.status == "success"
    assert outcome.target_round == 304
    assert outcome.total_amount == 5000
    assert outcome.ticket_count == 5
    assert outcome.reserve_order_no == "R20260220001"
    assert site.paths() == [
        "/game/TotalGame.jsp",
        "/game/pension720/reserveGame.jsp",
        "/roundRemainTime.do",
        "/checkDeposit.do",
        "/checkMyReserve.do",
        "/addMyReserve.do",
    ]

    form = site.forms["/addMyReserve.do"]
    assert form["ROUND"] == ["303"]
    assert form["nextRound"] == ["304"]
    assert form["winDate"] == ["2026.02.26"]
    assert form["repeatRoundHidden"] == ["2026.02.26"]
    assert form["curdeposit"] == ["10000"]
    assert form["moneyBalance"] == ["0/"]
    assert site.forms["/checkMyReserve.do"]["winDate"] == [""]

    assert [n.type for n in notifier.sent] == ["success"]


def test_bootstrap_cookie_is_replayed_and_round_query_is_cleartext(site):
    _reserve(site)
    reserve_page = site.requests[1]
    assert reserve_page.headers["referer"] == pension.TOTAL_GAME_URL
    assert f"JSESSIONID={SESSION_ID}" in reserve_page.headers["cookie"]
    assert site.requests[2].content.decode() == pension.FRM_AUTO_SERIALIZED
    assert site.requests[3].headers["x-requested-with"] == "XMLHttpRequest"


def test_duplicate_round_is_skipped_without_commit(site):
    site.check["doubleRound"] = [
        {"doubleRound": "303", "doubleCnt": "5"},
        {"doubleRound": 304, "doubleCnt": 5},
    ]
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveSkipped)
    assert outcome.success is True and outcome.skipped is True
    assert outcome.target_round == 304
    assert outcome.duplicate_rounds == ("304회 5매",)
    assert "/addMyReserve.do" not in site.paths()
    assert [n.type for n in notifier.sent] == ["warning"]


def test_other_reserved_rounds_do_not_block(site):
    site.check["doubleRound"] = [{"doubleRound": "303", "doubleCnt": "5"}]
    outcome, _ = _reserve(site)
    assert isinstance(outcome, ReserveSuccess)


def test_insufficient_deposit_is_failure_with_warning(site):
    site.deposit["deposit"] = "4,000"
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_INSUFFICIENT_DEPOSIT"
    assert outcome.target_round == 304
    assert site.paths()[-1] == "/checkDeposit.do"
    assert len(notifier.sent) == 1
    assert notifier.sent[0].type == "warning"
    assert notifier.sent[0].details["보유예치금"] == "4,000원"


@pytest.mark.parametrize("raw", ["N/A", "1e400", "nan"])
def test_unparseable_deposit_is_failure(site, raw):
    site.deposit["deposit"] = raw
    outcome, notifier = _reserve(site)
    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_INVALID_DEPOSIT"
    assert len(notifier.sent) == 1


@pytest.mark.parametrize("step", ["deposit", "check", "add"])
def test_non_success_result_code_carries_server_code(site, step):
    getattr(site, step).update({"resultCode": "200", "resultMsg": "처리 불가"})
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "200"
    assert outcome.error == "처리 불가"
    assert len(notifier.sent) == 1
    assert notifier.sent[0].type == "error"


def test_round_result_code_failure(site):
    site.round_info = {"resultCode": "999", "resultMsg": "점검중"}
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "999"
    assert outcome.target_round is None
    assert site.paths()[-1] == "/roundRemainTime.do"
    assert len(notifier.sent) == 1


def test_zero_round_is_invalid(site):
    site.round_info["ROUND"] = 0
    outcome, _ = _reserve(site)
    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_INVALID_ROUND"


def test_bootstrap_failure(site):
    site.overrides["/game/TotalGame.jsp"] = httpx.Response(500)
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_BOOTSTRAP_FAILED"
    assert site.paths() == ["/game/TotalGame.jsp"]
    assert len(notifier.sent) == 1


def test_missing_q_is_invalid_response(site):
    site.overrides["/checkDeposit.do"] = httpx.Response(200, json={"resultCode": "100"})
    outcome, notifier = _reserve(site)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_API_INVALID_RESPONSE"
    assert len(notifier.sent) == 1


def test_non_200_enveloped_call_is_api_failure(site):
    site.overrides["/checkMyReserve.do"] = httpx.Response(502)
    outcome, _ = _reserve(site)
    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_API_FAILED"


def test_undecryptable_q_is_decrypt_failure(site):
    site.overrides["/checkDeposit.do"] = httpx.Response(200, json={"q": "0" * 96 + "!!!!"})
    outcome, _ = _reserve(site)
    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_DECRYPT_FAILED"


def test_transport_error_is_unexpected_failure(site):
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with CookieSession(client=httpx.Client(transport=httpx.MockTransport(boom))) as s:
        notifier = RecordingNotifier()
        outcome = pension.reserve_pension_next_week(s, notifier)

    assert isinstance(outcome, ReserveFailure)
    assert outcome.code == "PENSION_UNEXPECTED_ERROR"
    assert len(notifier.sent) == 1


def test_raising_notifier_does_not_change_outcome(site):
    notifier = RaisingNotifier()
    outcome, _ = _reserve(site, notifier)
    assert isinstance(outcome, ReserveSuccess)
    assert notifier.calls == 1


def test_missing_session_cookie_is_auth_missing():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200)

    with CookieSession(client=httpx.Client(transport=httpx.MockTransport(handler))) as s:
        with pytest.raises(ReserveError) as ei:
            pension.post_enveloped(s, pension.CHECK_DEPOSIT_URL, "a=b", ElDeposit)
    assert ei.value.kind is ReserveErrorKind.AUTH_MISSING


def test_main_site_cookie_is_fallback_key():
    def handler(request: httpx.Request) -> httpx.Response:
        q = parse_qs(request.content.decode())["q"][0]
        assert decrypt_envelope(q, SESSION_ID) == pension.FRM_AUTO_SERIALIZED
        body = encrypt_envelope('{"resultCode":"100","deposit":"7000"}', SESSION_ID)
        return httpx.Response(200, json={"q": body})

    with CookieSession(client=httpx.Client(transport=httpx.MockTransport(handler))) as s:
        s._capture([f"DHJSESSIONID={SESSION_ID}"])
        data = pension.post_enveloped(
            s, pension.CHECK_DEPOSIT_URL, pension.FRM_AUTO_SERIALIZED, ElDeposit
        )
    assert data.deposit == "7000"


def test_build_reserve_form_field_order():
    ctx = ReservationContext(current_round=303, next_round=304, next_draw_date="2026.02.26", deposit=9000)
    form = pension.build_reserve_form(ctx, win_date="")
    keys = [pair.split("=", 1)[0] for pair in form.split("&")]
    assert keys == [
        "ROUND",
        "reserveJo",
        "repeatRoundCnt",
        "totalBuyAmt",
        "totalBuyCnt",
        "moneyBalance",
        "couponBalance",
        "nextRound",
        "repeatClass",
        "roundBuyCnt",
        "curdeposit",
        "curpay",
        "winDate",
        "WORKING_FLAG",
        "repeatRound",
        "repeatRoundHidden",
    ]
    assert "moneyBalance=0%2F" in form
