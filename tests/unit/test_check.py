from __future__ import annotations

from datetime import UTC, datetime
from typing import List

import httpx

from common.alerts import NotificationPayload
from common.session import CookieSession
from dhlottery.check import check_winning, filter_jackpot_wins, parse_winning_results


# Monday 12:00 KST
NOW = datetime(2026, 10, 19, 3, 0, tzinfo=UTC)


def _row(round_no: str, result: str, prize: str) -> str:
    return (
        "<tr>"
        "<td>2026-10-17</td>"
        "<td>로또6/45</td>"
        f"<td><a href=\"#\" onclick=\"detailPop('12345', '67890', '{round_no}'); return false;\">상세</a></td>"
        "<td>5</td>"
        f"<td><strong>{result}</strong></td>"
        f"<td>{prize}</td>"
        "<td>2026-10-17</td>"
        "</tr>"
    )


PAGE = (
    "<table><thead><tr><th>구입일자</th><th>복권명</th><th>회차</th></tr></thead><tbody>"
    + _row("1194", "1등 (6개 일치)", "2,345,678,900원")
    + _row("1194", "2등", "55,000,000원")
    + _row("1194", "낙첨", "-")
    + "<tr><td colspan='7'>조회 결과가 없습니다.</td></tr>"
    + "</tbody></table>"
)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[NotificationPayload] = []

    def notify(self, payload: NotificationPayload) -> None:
        self.sent.append(payload)


def _session(handler) -> CookieSession:
    return CookieSession(client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_parse_rows_skips_header_losses_and_short_rows():
    results = parse_winning_results(PAGE)
    assert [(r.round_number, r.rank, r.prize_amount) for r in results] == [
        (1194, 1, 2345678900),
        (1194, 2, 55000000),
    ]
    assert results[0].match_count == 6
    assert results[1].match_count is None


def test_filter_jackpot_wins():
    assert [r.rank for r in filter_jackpot_wins(parse_winning_results(PAGE))] == [1]


def test_check_winning_queries_previous_week_and_notifies_jackpots():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=PAGE.encode("euc-kr"))

    notifier = RecordingNotifier()
    with _session(handler) as s:
        jackpots = check_winning(s, notifier, NOW)

    params = seen[0].url.params
    assert params["method"] == "lottoBuyList"
    assert params["searchStartDate"] == "2026-10-12"
    assert params["searchEndDate"] == "2026-10-18"
    assert params["nowPage"] == "1"

    assert len(jackpots) == 1
    assert len(notifier.sent) == 1
    sent = notifier.sent[0]
    assert sent.type == "success"
    assert sent.details["roundNumber"] == 1194
    assert sent.details["prizeAmountKrw"] == "2,345,678,900원"
    assert sent.details["period"] == "2026-10-12 ~ 2026-10-18"


def test_no_jackpot_sends_nothing():
    page = "<table>" + _row("1194", "5등", "5,000원") + "</table>"
    notifier = RecordingNotifier()
    with _session(lambda _r: httpx.Response(200, content=page.encode("euc-kr"))) as s:
        assert check_winning(s, notifier, NOW) == []
    assert notifier.sent == []


def test_fetch_problems_are_non_fatal():
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    notifier = RecordingNotifier()
    with _session(boom) as s:
        assert check_winning(s, notifier, NOW) == []
    with _session(lambda _r: httpx.Response(500)) as s:
        assert check_winning(s, notifier, NOW) == []
    assert notifier.sent == []


def test_markup_inside_comments_does_not_shift_cells():
    row = _row("1194", "1등 (6개 일치)", "2,345,678,900원").replace(
        "<td>로또6/45</td>", "<td>로또6/45<!-- old layout: </td><td>x</td> --></td>"
    )
    results = parse_winning_results(f"<table>{row}</table>")
    assert [(r.round_number, r.rank, r.prize_amount) for r in results] == [(1194, 1, 2345678900)]


def test_nested_cells_and_attributes_are_handled():
    row = (
        "<tr class='win'>"
        "<td class='date'>2026-10-17</td>"
        "<td><span class='name'>로또6/45</span></td>"
        "<td><span onclick=\"detailPop('1', '2', '1194')\">상세</span></td>"
        "<td>5</td>"
        "<td class='result'><em>1등</em></td>"
        "<td><strong>1,000,000,000</strong>원</td>"
        "<td>2026-10-17</td>"
        "</tr>"
    )
    (win,) = parse_winning_results(f"<table><tbody>{row}</tbody></table>")
    assert (win.round_number, win.rank, win.prize_amount) == (1194, 1, 1000000000)


def test_jackpot_page_with_extended_hangul_is_parsed():
    page = "<table>" + _row("1194", "1등 똠", "2,000,000,000원") + "</table>"
    notifier = RecordingNotifier()
    with _session(lambda _r: httpx.Response(200, content=page.encode("cp949"))) as s:
        (win,) = check_winning(s, notifier, NOW)
    assert win.rank == 1
    assert len(notifier.sent) == 1
