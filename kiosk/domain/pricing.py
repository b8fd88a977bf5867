"""Job pricing."""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from kiosk.core.value_objects import ColorMode, PrintMode
from kiosk.infrastructure.settings import PricingSettings


def calculate_job_amount(
    mode: PrintMode,
    color_mode: ColorMode,
    copies: Union[int, float],
    pricing: PricingSettings,
) -> float:
    """
    Price of a job: (per-page base + colour surcharge) * copies.

    Copies are floored and never below one; the result is rounded to
    two decimals.
    """
    safe_copies = 1
    if math.isfinite(copies):
        safe_copies = max(1, math.floor(copies))
    base = pricing.print_per_page if mode == PrintMode.PRINT else pricing.copy_per_page
    color = pricing.color_surcharge if color_mode == ColorMode.COLORED else 0
    total = (Decimal(str(base)) + Decimal(str(color))) * safe_copies
    return float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
