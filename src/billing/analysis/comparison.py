"""Compare what the same consumption would cost on several tariffs."""

from dataclasses import dataclass, field

from ..calculation import ReconciliationRequest, calculate_price
from ..config import Settings
from ..models import (
    CategoryAdjustment,
    ConsumptionInterval,
    CostEstimate,
    PriceCapEntry,
    RatePeriod,
    StandingChargePeriod,
    TariffCategory,
    UnitType,
)
from ..tariffs import expected_samples


@dataclass
class TariffCandidate:
    """A tariff to price. Half-hourly tariffs may need their own readings."""

    name: str
    category: TariffCategory
    rates: list[RatePeriod]
    standing_charges: list[StandingChargePeriod]
    consumption: list[ConsumptionInterval] | None = None


@dataclass
class TariffComparison:
    """Annualised cost of one candidate tariff."""

    name: str
    category: TariffCategory
    estimate: CostEstimate
    average_unit_rate: float  # pence per kWh
    saving: float | None = None  # pounds saved against the baseline
    notes: list[str] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return self.estimate.total_cost


def _average_unit_rate(estimate: CostEstimate, samples: int, category: TariffCategory, annualise: bool) -> float:
    """Average pence per unit implied by an estimate."""
    units = estimate.total_unit
    expected = expected_samples(category)
    if annualise and 0 < samples < expected:
        units = units * expected / samples
    if units <= 0:
        return 0.0
    return round(estimate.total_price * 100 / units, 2)


def compare_tariffs(
    consumption: list[ConsumptionInterval],
    candidates: list[TariffCandidate],
    unit_type: UnitType = UnitType.ELECTRICITY,
    price_caps: list[PriceCapEntry] | None = None,
    baseline: TariffCategory | None = TariffCategory.SVT,
    adjustments: list[CategoryAdjustment] | None = None,
    settings: Settings | None = None,
    annualise: bool = True,
) -> list[TariffComparison]:
    """Price every candidate and return them cheapest first.

    Each candidate is an independent calculation. When a candidate of the
    ``baseline`` category is present, every result carries its saving
    against it (positive means cheaper than the baseline).
    """
    settings = settings or Settings()
    comparisons = []

    for candidate in candidates:
        readings = candidate.consumption if candidate.consumption is not None else consumption
        request = ReconciliationRequest(
            category=candidate.category,
            unit_type=unit_type,
            consumption=readings,
            rates=candidate.rates,
            standing_charges=candidate.standing_charges,
            price_caps=price_caps or [],
            gas_conversion_factor=settings.gas_conversion_factor,
            adjustments=adjustments or [],
            timezone=settings.timezone,
            annualise=annualise,
        )
        estimate = calculate_price(request)

        notes = []
        if estimate.coverage < 1.0:
            notes.append(f"{estimate.coverage:.1%} of readings priced")
        comparisons.append(
            TariffComparison(
                name=candidate.name,
                category=request.category,
                estimate=estimate,
                average_unit_rate=_average_unit_rate(estimate, len(readings), request.category, annualise),
                notes=notes,
            )
        )

    base = next((c for c in comparisons if baseline is not None and c.category is TariffCategory(baseline)), None)
    if base is not None:
        for comparison in comparisons:
            comparison.saving = round(base.total_cost - comparison.total_cost, 2)

    return sorted(comparisons, key=lambda c: c.total_cost)
