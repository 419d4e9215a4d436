from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from .schemas import PassRequest

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True)
class LegacyResult:
    legacy_amount: float            # base currency units
    legacy_amount_display: str      # formatted, e.g. "$14.8M"
    legacy_type: str                # "Perpetual Legacy" | "Finite Legacy" | ...
    withdrawal_rate: float          # 0.035 == 3.5%
    success_probability: float      # 0..1
    explanation_text: str


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def generate_serial_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"LEGACY-{millis}-{suffix}".upper()


def format_withdrawal_rate(rate: float) -> str:
    return f"{rate * 100:.2f}%"


def format_success_probability(prob: float) -> str:
    return f"{prob * 100:.1f}%"


def build_wallet_pass_request(result: LegacyResult, *, now: datetime | None = None) -> PassRequest:
    """
    Turn a legacy calculation result into a PassRequest: fresh serial,
    clamped rates, display strings and a JSON barcode payload.
    """
    now = now or datetime.now(timezone.utc)
    serial = generate_serial_number(now)

    rate = _clamp01(result.withdrawal_rate)
    prob = _clamp01(result.success_probability)

    barcode = json.dumps(
        {
            "serial": serial,
            "amount": result.legacy_amount,
            "type": result.legacy_type,
            "date": now.isoformat().replace("+00:00", "Z"),
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )

    return PassRequest(
        serial_number=serial,
        legacy_amount=result.legacy_amount,
        legacy_amount_display=result.legacy_amount_display,
        legacy_type=result.legacy_type,
        withdrawal_rate=rate,
        success_probability=prob,
        withdrawal_rate_display=format_withdrawal_rate(rate),
        success_probability_display=format_success_probability(prob),
        explanation_text=result.explanation_text,
        barcode_message=barcode,
    )
