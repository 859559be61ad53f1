from bisect import bisect_right
from typing import List

from .config import Settings


def customer_demand(week: int, settings: Settings) -> int:
    """Return the exogenous customer order seen by the Retailer in ``week``.

    The schedule is a step function: ``CUSTOMER_DEMAND[0]`` until the first
    change week, then one level higher at every entry of
    ``DEMAND_CHANGE_WEEKS``. With the defaults that is 4 for weeks 0-7, 8 for
    8-18, 12 for 19-25, 16 for 26-38 and 20 from week 39 on.
    """
    level = bisect_right(settings.DEMAND_CHANGE_WEEKS, max(0, int(week)))
    return settings.CUSTOMER_DEMAND[level]


def demand_schedule(num_weeks: int, settings: Settings) -> List[int]:
    """Expand the step schedule into one value per week."""
    if num_weeks <= 0:
        return []
    return [customer_demand(week, settings) for week in range(num_weeks)]
