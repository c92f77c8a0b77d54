"""Trade-up contracts: 5 items of one rarity in, 1 item of the next rarity out.

The delete of the inputs, the insert of the output and the audit row share
one transaction. Rewards (XP, missions) and notifications follow after the
commit and can't take the new item away if they fail.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.config import get_settings
from equipgg.db.models import InventoryItem, Item, TradeUpContract
from equipgg.errors import LedgerError, NotFoundError, TransientStoreError, ValidationError
from equipgg.gamification.mission_service import sync_inventory_missions, track_mission_progress
from equipgg.gamification.xp_service import RewardBurst, commit_burst, credit_xp
from equipgg.notifications.service import Channel, notify, publish

logger = logging.getLogger(__name__)

TRADE_UP_SIZE = 5

RARITY_LADDER = ("common", "uncommon", "rare", "epic", "legendary")

RARITY_MULTIPLIERS = {
    "common": Decimal("1"),
    "uncommon": Decimal("1.5"),
    "rare": Decimal("2.5"),
    "epic": Decimal("4"),
    "legendary": Decimal("7"),
}


@dataclass
class TradeUpResult:
    input_items: list[dict[str, Any]]
    output_item: dict[str, Any]
    contract_id: int


def next_rarity(rarity: str) -> str:
    """One step up the ladder. Legendary maps to itself."""
    try:
        idx = RARITY_LADDER.index(rarity)
    except ValueError:
        raise ValidationError("Invalid rarity for trade-up", rarity=rarity) from None
    return RARITY_LADDER[min(idx + 1, len(RARITY_LADDER) - 1)]


def compute_output_value(values: Sequence[int], input_rarity: str) -> int:
    """floor(floor(sum / 5) * multiplier(out) / multiplier(in))."""
    output_rarity = next_rarity(input_rarity)
    average = sum(values) // TRADE_UP_SIZE
    value = Decimal(average) * RARITY_MULTIPLIERS[output_rarity] / RARITY_MULTIPLIERS[input_rarity]
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def _snapshot(item: InventoryItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "item_id": item.item_id,
        "name": item.item_name,
        "rarity": item.rarity,
        "value": item.value,
    }


async def _load_inputs(db: AsyncSession, user_id: int, item_ids: Sequence[int]) -> list[InventoryItem]:
    """Fetch and validate the 5 inventory rows. Raises ValidationError."""
    if len(item_ids) != TRADE_UP_SIZE:
        raise ValidationError("Exactly 5 items are required for trade-up", count=len(item_ids))
    if len(set(item_ids)) != TRADE_UP_SIZE:
        raise ValidationError("Trade-up items must be distinct", item_ids=list(item_ids))

    result = await db.execute(
        select(InventoryItem)
        .where(InventoryItem.id.in_(item_ids), InventoryItem.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    by_id = {item.id: item for item in result.scalars()}

    missing = [item_id for item_id in item_ids if item_id not in by_id]
    if missing:
        raise ValidationError("Items not found in your inventory", missing=missing)

    items = [by_id[item_id] for item_id in item_ids]
    equipped = [item.id for item in items if item.equipped]
    if equipped:
        raise ValidationError("Equipped items cannot be traded up", equipped=equipped)

    rarities = {item.rarity.lower() for item in items}
    if len(rarities) != 1:
        raise ValidationError("All 5 items must be the same rarity for trade-up", rarities=sorted(rarities))
    return items


async def process_trade_up(
    db: AsyncSession,
    redis: object,
    user_id: int,
    item_ids: Sequence[int],
    rng: random.Random | None = None,
) -> TradeUpResult:
    """Trade 5 same-rarity items for one random item of the next rarity.

    Raises ValidationError (bad input, nothing changed) or NotFoundError
    (no catalog item at the output rarity, nothing changed).
    """
    settings = get_settings()
    if rng is None:
        rng = random.Random()
    item_ids = list(item_ids)

    items = await _load_inputs(db, user_id, item_ids)
    input_rarity = items[0].rarity.lower()
    output_rarity = next_rarity(input_rarity)
    output_value = compute_output_value([item.value for item in items], input_rarity)

    result = await db.execute(
        select(Item)
        .where(Item.rarity == output_rarity, Item.is_active.is_(True))
        .order_by(Item.id)
        .limit(settings.trade_up_candidate_pool)
    )
    candidates = list(result.scalars().all())
    if not candidates:
        raise NotFoundError(f"No {output_rarity} items available for trade-up", rarity=output_rarity)
    picked = rng.choice(candidates)

    inputs = [_snapshot(item) for item in items]
    now = datetime.now(timezone.utc)

    try:
        deleted = await db.execute(
            delete(InventoryItem)
            .where(
                InventoryItem.id.in_(item_ids),
                InventoryItem.user_id == user_id,
                InventoryItem.equipped.is_(False),
            )
            .returning(InventoryItem.id)
            .execution_options(synchronize_session=False)
        )
        deleted_ids = list(deleted.scalars().all())
        if len(deleted_ids) != TRADE_UP_SIZE:
            await db.rollback()
            raise ValidationError(
                "Inventory changed during trade-up",
                expected=TRADE_UP_SIZE,
                deleted=len(deleted_ids),
            )
        for item in items:
            db.expunge(item)

        new_item = InventoryItem(
            user_id=user_id,
            item_id=picked.id,
            item_name=picked.name,
            rarity=picked.rarity,
            value=output_value,
            equipped=False,
            obtained_from="trade_up",
            acquired_at=now,
        )
        contract = TradeUpContract(
            user_id=user_id,
            input_items=inputs,
            input_rarity=input_rarity,
            output_rarity=output_rarity,
            output_item_id=picked.id,
            output_value=output_value,
            created_at=now,
        )
        db.add_all([new_item, contract])
        await db.flush()
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise TransientStoreError("Failed to process trade-up", user_id=user_id) from exc

    output = {
        "id": new_item.id,
        "item_id": picked.id,
        "name": picked.name,
        "type": picked.type,
        "rarity": picked.rarity,
        "image_url": picked.image_url,
        "value": output_value,
        "equipped": False,
    }
    logger.info(
        "Trade-up by user %s: 5 %s -> %s (%s, value %d)",
        user_id, input_rarity, picked.name, output_rarity, output_value,
    )

    await _reward_trade_up(db, redis, user_id, contract.id, settings.trade_up_xp_reward)
    await _announce_trade_up(db, redis, user_id, inputs, output)

    return TradeUpResult(input_items=inputs, output_item=output, contract_id=contract.id)


async def _reward_trade_up(
    db: AsyncSession,
    redis: object,
    user_id: int,
    contract_id: int,
    xp: int,
) -> None:
    try:
        burst = RewardBurst(user_id=user_id)
        await credit_xp(db, burst, xp, "trade_up", {"contract_id": contract_id})
        await track_mission_progress(db, redis, user_id, "trade_up", 1, burst=burst)
        await sync_inventory_missions(db, redis, user_id, burst=burst)
        await commit_burst(db, redis, burst)
    except (LedgerError, SQLAlchemyError):
        await db.rollback()
        logger.warning("Failed to reward trade-up %s for user %s", contract_id, user_id, exc_info=True)


async def _announce_trade_up(
    db: AsyncSession,
    redis: object,
    user_id: int,
    inputs: list[dict[str, Any]],
    output: dict[str, Any],
) -> None:
    await notify(
        db,
        redis,
        user_id,
        "trade_up",
        "Trade-Up Complete!",
        f"You received {output['name']} ({output['rarity']})!",
        {"item_id": output["id"], "item_name": output["name"], "rarity": output["rarity"], "value": output["value"]},
    )
    for item in inputs:
        await publish(redis, Channel.INVENTORY_CHANGES, "item_removed", {"id": item["id"]}, user_id=user_id)
    await publish(redis, Channel.INVENTORY_CHANGES, "item_added", output, user_id=user_id)
