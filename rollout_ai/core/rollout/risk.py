"""Qualitative risk factors derived from metric values."""

from __future__ import annotations

from typing import List, Mapping

from rollout_ai.core.rollout.models import (
    CONVERSION_RATE,
    ERROR_RATE,
    RESPONSE_TIME,
    RiskFactor,
    RiskLevel,
)

ERROR_RATE_RISK_THRESHOLD = 2.0
RESPONSE_TIME_RISK_THRESHOLD = 500.0
CONVERSION_RATE_RISK_FLOOR = 5.0


def assess_risk_factors(metrics: Mapping[str, float]) -> List[RiskFactor]:
    """Check error rate, response time and conversion rate against fixed bars.

    Metrics missing from the mapping are not assessed.
    """
    factors: List[RiskFactor] = []

    error_rate = metrics.get(ERROR_RATE)
    if error_rate is not None and error_rate > ERROR_RATE_RISK_THRESHOLD:
        factors.append(
            RiskFactor(
                name="Elevated error rate",
                level=RiskLevel.HIGH,
                impact=0.3,
                description=f"Error rate of {error_rate:.2f}% is above the recommended level",
            )
        )

    response_time = metrics.get(RESPONSE_TIME)
    if response_time is not None and response_time > RESPONSE_TIME_RISK_THRESHOLD:
        factors.append(
            RiskFactor(
                name="High response time",
                level=RiskLevel.MEDIUM,
                impact=0.2,
                description=f"Response time of {response_time:.0f}ms may degrade user experience",
            )
        )

    conversion_rate = metrics.get(CONVERSION_RATE)
    if conversion_rate is not None and conversion_rate < CONVERSION_RATE_RISK_FLOOR:
        factors.append(
            RiskFactor(
                name="Low conversion",
                level=RiskLevel.MEDIUM,
                impact=0.15,
                description=f"Conversion rate of {conversion_rate:.2f}% is below average",
            )
        )

    return factors


def high_risk_factors(factors: List[RiskFactor]) -> List[RiskFactor]:
    return [f for f in factors if f.level == RiskLevel.HIGH]
