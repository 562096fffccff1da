"""
Deal aggregation per ad campaign and per form name

Both axes are folded from the same deal details. Output order follows the
first appearance of each campaign name or form name in the input, so the
same input always yields the same rows.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Sequence

from loguru import logger

from models.sync_records import (
    AggregationRow,
    Campaign,
    DealBucket,
    DealDetails,
    FORM_NOT_FOUND,
    FormSubmissionRecord,
)


NETWORK_SEPARATOR = " / "


@dataclass
class _Counts:
    open: int = 0
    closed_won: int = 0
    closed_lost: int = 0

    def add(self, deal: DealDetails) -> None:
        if deal.bucket == DealBucket.OPEN:
            self.open += 1
        elif deal.bucket == DealBucket.CLOSED_WON:
            self.closed_won += 1
        elif deal.bucket == DealBucket.CLOSED_LOST:
            self.closed_lost += 1

    @property
    def total(self) -> int:
        return self.open + self.closed_won + self.closed_lost


@dataclass
class AggregationResult:
    campaign_rows: List[AggregationRow] = field(default_factory=list)
    form_rows: List[AggregationRow] = field(default_factory=list)


def _unique_deals(deals: Iterable[DealDetails]) -> List[DealDetails]:
    seen = {}
    for deal in deals:
        seen.setdefault(deal.id, deal)
    return list(seen.values())


def aggregate_by_campaign(campaigns: Sequence[Campaign], deals: Iterable[DealDetails]) -> List[AggregationRow]:
    """
    Count deals per campaign name.

    Campaign rows sharing a name (one per network) collapse into one row with
    summed cost. Only campaigns with at least one open or closed-won deal
    produce a row.
    """
    costs: Dict[str, Decimal] = {}
    networks: Dict[str, List[str]] = {}
    for campaign in campaigns:
        costs[campaign.name] = costs.get(campaign.name, Decimal("0")) + campaign.cost
        seen_networks = networks.setdefault(campaign.name, [])
        if campaign.network not in seen_networks:
            seen_networks.append(campaign.network)

    counts = {name: _Counts() for name in costs}
    for deal in _unique_deals(deals):
        for name in dict.fromkeys(deal.campaign_names):
            if name in counts:
                counts[name].add(deal)

    rows = []
    for name, cost in costs.items():
        tally = counts[name]
        if tally.open == 0 and tally.closed_won == 0:
            continue
        rows.append(AggregationRow(
            key=name,
            network=NETWORK_SEPARATOR.join(networks[name]),
            cost=cost,
            open_count=tally.open,
            closed_won_count=tally.closed_won,
            closed_lost_count=tally.closed_lost,
        ))

    logger.info(f"Campaign aggregation: {len(rows)} of {len(costs)} campaigns have pipeline activity")
    return rows


def aggregate_by_form(records: Sequence[FormSubmissionRecord],
                      deals: Mapping[str, DealDetails]) -> List[AggregationRow]:
    """
    Count deals per resolved form name.

    The "form not found" bucket never produces a row. A deal reached through
    several contacts of the same form is counted once for that form.
    """
    contacts: Dict[str, int] = {}
    form_deals: Dict[str, Dict[str, None]] = {}
    for record in records:
        if record.form_name == FORM_NOT_FOUND:
            continue
        contacts[record.form_name] = contacts.get(record.form_name, 0) + 1
        ids = form_deals.setdefault(record.form_name, {})
        for deal_id in record.deal_ids:
            ids[str(deal_id)] = None

    rows = []
    for form_name, deal_ids in form_deals.items():
        tally = _Counts()
        for deal_id in deal_ids:
            deal = deals.get(deal_id)
            if deal is not None:
                tally.add(deal)
        if tally.total == 0:
            continue
        rows.append(AggregationRow(
            key=form_name,
            contact_count=contacts[form_name],
            open_count=tally.open,
            closed_won_count=tally.closed_won,
            closed_lost_count=tally.closed_lost,
        ))

    logger.info(f"Form aggregation: {len(rows)} forms with deals")
    return rows


def aggregate(campaigns: Sequence[Campaign], deals: Mapping[str, DealDetails],
              forms: Sequence[FormSubmissionRecord]) -> AggregationResult:
    return AggregationResult(
        campaign_rows=aggregate_by_campaign(campaigns, deals.values()),
        form_rows=aggregate_by_form(forms, deals),
    )
