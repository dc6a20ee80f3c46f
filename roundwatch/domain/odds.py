from __future__ import annotations

from decimal import Decimal

from roundwatch.domain.models import ImpliedMultiples, RoundData, Winner

WEI_PER_BNB = 10**18


def calculate_implied_multiples(total: int, bull: int, bear: int) -> ImpliedMultiples:
    """Payout multiple each side would get if the pools locked as they are now.

    An empty side has no odds (``None``). An empty round reports ``0.0`` for
    both sides, which readers treat differently from ``None``.
    """
    if total == 0:
        return ImpliedMultiples(implied_up=0.0, implied_down=0.0)
    return ImpliedMultiples(
        implied_up=total / bull if bull > 0 else None,
        implied_down=total / bear if bear > 0 else None,
    )


def determine_winner(rnd: RoundData) -> Winner:
    if not rnd.oracle_called:
        return Winner.UNKNOWN
    if rnd.close_price > rnd.lock_price:
        return Winner.UP
    if rnd.close_price < rnd.lock_price:
        return Winner.DOWN
    return Winner.DRAW


def calculate_winner_multiple(rnd: RoundData) -> float | None:
    winner = determine_winner(rnd)
    if winner in (Winner.DRAW, Winner.UNKNOWN):
        return None
    winning_pool = rnd.bull_amount if winner is Winner.UP else rnd.bear_amount
    if winning_pool == 0 or rnd.reward_base_cal_amount == 0:
        return None
    return rnd.reward_amount / rnd.reward_base_cal_amount


def format_wei(wei: int) -> str:
    bnb = Decimal(int(wei)) / Decimal(WEI_PER_BNB)
    return f"{bnb:.6f}"
