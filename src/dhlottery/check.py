from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup, Tag

from common.alerts import NotificationPayload, format_krw
from common.dates import WeekRange, previous_week_range_kst
from common.errors import LotteryError, WinningError, WinningErrorKind
from common.notifier import NotificationSink
from common.session import CookieSession

from .constants import USER_AGENT, WWW_ORIGIN
from .models import WinningResult


logger = logging.getLogger(__name__)

WINNING_LIST_URL = f"{WWW_ORIGIN}/myPage.do?method=lottoBuyList"

# detailPop('...', '...', '1153') -> round number in the third argument
_DETAIL_POP = re.compile(r"detailPop\(\s*'[^']*'\s*,\s*'[^']*'\s*,\s*'(\d+)'\s*\)", re.IGNORECASE)
_FIRST_NUMBER = re.compile(r"(\d+)")
_MATCH_COUNT = re.compile(r"(\d+)\s*개")


def previous_week_range(now: Optional[datetime] = None) -> WeekRange:
    week = previous_week_range_kst(now)
    if week.start > week.end:
        raise WinningError(WinningErrorKind.INVALID_DATE_RANGE, "Invalid date range computed")
    return week


def _detail_round(row: Tag) -> Optional[int]:
    # The round only appears in the detail link's onclick/href script
    for link in row.find_all(["a", "span", "button"]):
        for attr in ("onclick", "href"):
            match = _DETAIL_POP.search(link.get(attr) or "")
            if match:
                return int(match.group(1))
    return None


def parse_winning_results(html: str) -> List[WinningResult]:
    """
    Parse lottoBuyList rows.

    Cell layout: 0 buy date, 1 game, 2 detail, 3 count, 4 result, 5 prize,
    6 draw date. Rows without a round, a rank or a prize are skipped.
    """
    soup = BeautifulSoup(html, "html5lib")
    results: List[WinningResult] = []
    for row in soup.find_all("tr"):
        if row.find("th") is not None:
            continue
        cells = [td.get_text(" ", strip=True) for td in row.find_all("td", recursive=False)]
        if len(cells) < 6:
            continue

        round_number = _detail_round(row)
        # First number in the result cell is the rank; survives mangled encodings
        rank_match = _FIRST_NUMBER.search(cells[4])
        prize_digits = re.sub(r"\D", "", cells[5])
        if round_number is None or not rank_match or not prize_digits:
            continue

        rank = int(rank_match.group(1))
        if rank < 1:
            continue
        match_count = _MATCH_COUNT.search(cells[4])
        results.append(
            WinningResult(
                round_number=round_number,
                rank=rank,
                prize_amount=int(prize_digits),
                match_count=int(match_count.group(1)) if match_count else None,
            )
        )
    return results


def filter_jackpot_wins(results: List[WinningResult]) -> List[WinningResult]:
    return [r for r in results if r.rank == 1]


def check_winning(
    session: CookieSession,
    notifier: NotificationSink,
    now: Optional[datetime] = None,
) -> List[WinningResult]:
    """
    Look up last week's results and announce first-prize wins.

    Fetch and parse problems are logged and give an empty list; only an
    impossible date range raises.
    """
    week = previous_week_range(now)
    query = urlencode(
        {"searchStartDate": week.start_date, "searchEndDate": week.end_date, "nowPage": "1"}
    )

    try:
        resp = session.send(f"{WINNING_LIST_URL}&{query}", headers={"User-Agent": USER_AGENT})
        if resp.status_code != 200 and not resp.is_redirect:
            logger.error("Winning fetch failed: HTTP %s", resp.status_code)
            return []
        # The buy list is served in EUC-KR
        parsed = parse_winning_results(resp.text("euc-kr"))
    except (httpx.HTTPError, LotteryError, ValueError) as exc:
        logger.error("Winning check failed (non-fatal): %s", exc)
        return []

    jackpots = filter_jackpot_wins(parsed)
    for win in jackpots:
        notifier.notify(
            NotificationPayload(
                type="success",
                title="Lottery Jackpot Win!",
                message=f"{win.round_number}회차 로또 {win.rank}등 당첨을 확인했습니다.",
                details={
                    "roundNumber": win.round_number,
                    "rank": win.rank,
                    "prizeAmount": win.prize_amount,
                    "prizeAmountKrw": format_krw(win.prize_amount),
                    "matchCount": win.match_count,
                    "period": f"{week.start_date} ~ {week.end_date}",
                },
            )
        )
    logger.info("Winning check: %d rows, %d jackpot", len(parsed), len(jackpots))
    return jackpots
