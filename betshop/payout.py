"""American odds arithmetic."""
from .models import WIN, LOSE


def american_payout(stake: float, price: int) -> float:
    """
    Total return (stake plus profit) for a winning bet at American odds.

    Positive prices pay price per 100 staked, negative prices need |price|
    staked to win 100. A zero price is not a real quote and is paid as a push.
    """
    if price > 0:
        return stake + stake * price / 100
    if price < 0:
        return stake + stake * 100 / abs(price)
    return stake


def balance_delta(outcome: str, stake: float, price: int) -> float:
    """
    Change to the agent's balance when a ticket settles.

    The balance is the agent's debt to the shop: a win pays out the profit
    (balance goes down), a loss keeps the stake (balance goes up).
    """
    if outcome == WIN:
        return -round(american_payout(stake, price) - stake, 2)
    if outcome == LOSE:
        return round(stake, 2)
    return 0.0
