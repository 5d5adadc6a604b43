from __future__ import annotations


# Browser-like User-Agent; the site rejects obviously scripted clients.
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.77 Safari/537.36"
)

MAIN_ORIGIN = "https://dhlottery.co.kr"
WWW_ORIGIN = "https://www.dhlottery.co.kr"
OL_ORIGIN = "https://ol.dhlottery.co.kr"
EL_ORIGIN = "https://el.dhlottery.co.kr"

SUCCESS_CODE = "100"

# Lotto 6/45: 5 auto games per run, no safety buffer above the cost.
GAMES_PER_PURCHASE = 5
COST_PER_GAME = 1000
TOTAL_PURCHASE_COST = GAMES_PER_PURCHASE * COST_PER_GAME
MIN_DEPOSIT_AMOUNT = TOTAL_PURCHASE_COST

# Manual top-up amount shown on the virtual-account charge page.
CHARGE_AMOUNT = 50000

# Pension 720+: one ticket in each of the 5 groups ("모든조") for next week.
PENSION_TICKET_COUNT = 5
PENSION_TICKET_PRICE = 1000
PENSION_RESERVE_COST = PENSION_TICKET_COUNT * PENSION_TICKET_PRICE
