"""Campaigns stage: campaign details and campaign-item links.

Only automatic (8) and auction (9) campaigns in a finished, active or paused
state are synced. Links follow the campaign status: active and paused
campaigns get their links replaced, any other status loses them.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sellersync.core.logging import get_logger
from sellersync.features.catalog.models import (
    LEGACY_CAMPAIGN_TYPE_CODES,
    SYNCED_STATUS_CODES,
    BidType,
    Campaign,
    CampaignDailyMetric,
    CampaignItemLink,
    CampaignStatus,
    CampaignType,
)
from sellersync.features.marketplace.chunking import chunked
from sellersync.features.marketplace.client import (
    AUCTION_DETAILS_BATCH_MAX,
    CAMPAIGN_DETAILS_BATCH_MAX,
)
from sellersync.features.marketplace.errors import unwrap
from sellersync.features.marketplace.schemas import AuctionCampaign, CampaignCounts, CampaignDetails
from sellersync.features.sync.stages.base import StageContext, cabinet_item_ids, check_batch
from sellersync.features.sync.upsert import UpsertResult, upsert_by_natural_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class CampaignRecord:
    """Campaign details normalised across the two upstream shapes."""

    campaign_id: int
    name: str | None
    type_code: int
    status_code: int
    bid_type: BidType | None
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    create_time: datetime.datetime | None = None
    change_time: datetime.datetime | None = None
    item_ids: list[int] = field(default_factory=list)

    @property
    def status(self) -> CampaignStatus | None:
        return CampaignStatus.from_code(self.status_code)

    @classmethod
    def from_details(cls, details: CampaignDetails) -> CampaignRecord:
        return cls(
            campaign_id=details.campaign_id,
            name=details.name,
            type_code=details.type_code,
            status_code=details.status,
            bid_type=BidType.from_code(details.bid_type),
            start_time=details.start_time,
            end_time=details.end_time,
            create_time=details.create_time,
            change_time=details.change_time,
            item_ids=list(details.item_ids),
        )

    @classmethod
    def from_auction(cls, campaign: AuctionCampaign) -> CampaignRecord:
        timestamps = campaign.timestamps
        return cls(
            campaign_id=campaign.campaign_id,
            name=campaign.settings.name if campaign.settings else None,
            type_code=CampaignType.AUCTION.code,
            status_code=campaign.status,
            bid_type=BidType.UNIFIED if campaign.bid_type == "unified" else BidType.MANUAL,
            start_time=timestamps.started if timestamps else None,
            create_time=timestamps.created if timestamps else None,
            change_time=timestamps.updated if timestamps else None,
            item_ids=[setting.item_id for setting in campaign.nm_settings],
        )


def split_campaign_ids(counts: CampaignCounts) -> tuple[list[int], list[int]]:
    """Pick automatic and auction campaign ids worth syncing.

    Returns:
        (automatic ids, auction ids), each in response order.
    """
    automatic: list[int] = []
    auction: list[int] = []
    for group in counts.adverts:
        if group.status not in SYNCED_STATUS_CODES:
            continue
        ids = [ref.campaign_id for ref in group.adverts]
        match CampaignType.from_code(group.type_code):
            case CampaignType.AUTOMATIC:
                automatic.extend(ids)
            case CampaignType.AUCTION:
                auction.extend(ids)
            case None if group.type_code not in LEGACY_CAMPAIGN_TYPE_CODES:
                logger.warning(
                    "sync.unknown_campaign_type",
                    type_code=group.type_code,
                    campaigns=len(ids),
                )
    return automatic, auction


def known_type(record: CampaignRecord) -> bool:
    """Whether a record's type code is one we sync; unknown codes are logged."""
    if CampaignType.from_code(record.type_code) is not None:
        return True
    if record.type_code not in LEGACY_CAMPAIGN_TYPE_CODES:
        logger.warning(
            "sync.unknown_campaign_type",
            campaign_id=record.campaign_id,
            type_code=record.type_code,
        )
    return False


def _apply_campaign(row: Campaign, record: CampaignRecord) -> None:
    status = record.status
    if status is None:
        logger.warning(
            "sync.unknown_campaign_status",
            campaign_id=record.campaign_id,
            status_code=record.status_code,
        )
    row.name = record.name
    row.type_code = record.type_code
    row.status = status.value if status else None
    row.bid_type = record.bid_type.value if record.bid_type else None
    row.start_time = record.start_time
    row.end_time = record.end_time
    row.create_time = record.create_time
    row.change_time = record.change_time


async def upsert_campaigns(
    db: AsyncSession,
    cabinet_id: int,
    records: list[CampaignRecord],
) -> UpsertResult:
    """Create or refresh campaigns; unknown type codes are skipped."""
    result = UpsertResult()
    usable = [record for record in records if known_type(record)]
    result.skipped += len(records) - len(usable)

    async def find(session: AsyncSession, campaign_id: int) -> Campaign | None:
        return await session.get(Campaign, campaign_id)

    def build(record: CampaignRecord) -> Campaign:
        row = Campaign(campaign_id=record.campaign_id, cabinet_id=cabinet_id)
        _apply_campaign(row, record)
        return row

    return result.merge(
        await upsert_by_natural_key(
            db,
            usable,
            cabinet_id=cabinet_id,
            entity="campaign",
            key_of=lambda record: record.campaign_id,
            find_existing=find,
            build=build,
            apply=_apply_campaign,
        )
    )


async def replace_campaign_links(
    db: AsyncSession,
    cabinet_id: int,
    record: CampaignRecord,
    cabinet_items: set[int],
) -> int:
    """Bring one campaign's item links in line with its status.

    Active and paused campaigns get their links deleted and re-inserted. When
    the upstream lists no items, the items seen in the campaign's statistics
    are used instead. Items the cabinet does not own are never linked.

    Returns:
        Number of links inserted.
    """
    await db.execute(
        delete(CampaignItemLink).where(CampaignItemLink.campaign_id == record.campaign_id)
    )
    status = record.status
    if status is None or not status.keeps_links:
        return 0

    item_ids = record.item_ids
    if not item_ids:
        stmt = (
            select(CampaignDailyMetric.item_id)
            .where(CampaignDailyMetric.campaign_id == record.campaign_id)
            .distinct()
        )
        item_ids = list((await db.execute(stmt)).scalars())

    linked = sorted({item_id for item_id in item_ids if item_id in cabinet_items})
    db.add_all(
        CampaignItemLink(cabinet_id=cabinet_id, campaign_id=record.campaign_id, item_id=item_id)
        for item_id in linked
    )
    return len(linked)


async def fetch_campaign_records(ctx: StageContext) -> list[CampaignRecord]:
    """Collect details of every synced campaign of the cabinet.

    Raises:
        ApiCallError: If the campaign listing itself fails.
    """
    counts = unwrap(await ctx.client.get_campaign_counts(ctx.credential), "campaign_counts")
    automatic_ids, auction_ids = split_campaign_ids(counts)

    records: list[CampaignRecord] = []
    for batch in chunked(automatic_ids, CAMPAIGN_DETAILS_BATCH_MAX):
        details = check_batch(
            await ctx.client.get_campaign_details(ctx.credential, batch),
            "campaign_details",
            batch_size=len(batch),
        )
        records.extend(CampaignRecord.from_details(d) for d in details or [])

    for batch in chunked(auction_ids, AUCTION_DETAILS_BATCH_MAX):
        await ctx.limiters.auction.wait()
        auctions = check_batch(
            await ctx.client.get_auction_campaigns(ctx.credential, batch),
            "auction_campaigns",
            batch_size=len(batch),
        )
        if auctions is not None:
            records.extend(CampaignRecord.from_auction(a) for a in auctions.adverts)

    return records


async def sync_campaigns(db: AsyncSession, ctx: StageContext) -> UpsertResult:
    """Upsert campaigns, then refresh or remove their item links."""
    records = await fetch_campaign_records(ctx)
    result = await upsert_campaigns(db, ctx.cabinet_id, records)

    foreign = {conflict.key for conflict in result.conflicts}
    cabinet_items = set(await cabinet_item_ids(db, ctx.cabinet_id))
    links = 0
    for record in records:
        if record.campaign_id in foreign or CampaignType.from_code(record.type_code) is None:
            continue
        links += await replace_campaign_links(db, ctx.cabinet_id, record, cabinet_items)

    logger.info(
        "sync.campaigns_synced",
        campaigns=len(records),
        links=links,
        **result.as_log_fields(),
    )
    return result
