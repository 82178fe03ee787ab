"""POS checkout: price a cart, record the sale, and draw down stock.

Packaged goods are sold straight off their inventory row.  Beverages are
priced from the product's base price with size, milk and add-on
customisations, and consume their recipe ingredients (scaled by size) plus
one unit of each add-on's ingredient.  Every decrement clamps at zero.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from roastery.config import settings
from roastery.middleware.exceptions import (
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from roastery.models.catalog import ProductDefinition
from roastery.models.inventory import InventoryItem
from roastery.models.sale import PaymentMethod, ReprintLog, SaleTransaction
from roastery.models.user import User
from roastery.schemas.sale import CartLine
from roastery.services.adjustments import apply_delta
from roastery.utils.activity import log_activity
from roastery.utils.numbering import generate_invoice_number
from roastery.utils.persistence import flush_or_raise

logger = logging.getLogger("roastery.checkout")

SIZE_MULTIPLIERS = {"S": 0.75, "M": 1.0, "L": 1.5}
MILK_PRICES = {"Full Fat": 0.0, "Low Fat": 0.0, "Oat": 5.0, "Almond": 5.0}


def price_beverage(
    base_price: float,
    size: str,
    milk: str | None,
    add_ons: list[dict],
) -> float:
    """(base × size multiplier) + milk surcharge + Σ add-on prices."""
    multiplier = SIZE_MULTIPLIERS[size]
    milk_extra = MILK_PRICES.get(milk, 0.0) if milk else 0.0
    add_on_extra = sum(float(ao.get("price") or 0) for ao in add_ons)
    return round(base_price * multiplier + milk_extra + add_on_extra, 2)


async def _find_ingredient(db: AsyncSession, ingredient_id: str | None, name: str | None):
    conditions = []
    if ingredient_id:
        conditions.append(InventoryItem.id == ingredient_id)
    if name:
        conditions.append(InventoryItem.name == name)
    if not conditions:
        return None
    result = await db.execute(
        select(InventoryItem).where(or_(*conditions)).limit(1).with_for_update()
    )
    return result.scalar_one_or_none()


async def checkout(
    db: AsyncSession,
    user: User,
    *,
    lines: list[CartLine],
    payment_method: str,
    location_id: str | None = None,
    payment_breakdown: dict[str, float] | None = None,
    received_amount: float | None = None,
    card_reference: str | None = None,
) -> SaleTransaction:
    if not lines:
        raise ValidationError("Cart is empty")
    try:
        method = PaymentMethod(payment_method).value
    except ValueError:
        raise ValidationError(f"Unknown payment method: {payment_method}")
    if method == PaymentMethod.SPLIT.value and not payment_breakdown:
        raise ValidationError("Split payments need a payment breakdown")

    # ── Price every line before touching stock ───────────────
    priced: list[tuple[CartLine, InventoryItem, ProductDefinition | None, list[dict], dict]] = []
    for index, line in enumerate(lines):
        item = (
            await db.execute(
                select(InventoryItem).where(InventoryItem.id == line.item_id).with_for_update()
            )
        ).scalar_one_or_none()
        if not item:
            raise ResourceNotFoundError("Inventory item", line.item_id)

        product = None
        add_ons: list[dict] = []
        if item.item_type == "BEVERAGE":
            if line.size not in SIZE_MULTIPLIERS:
                raise ValidationError(
                    f"Line {index + 1}: size must be one of S, M, L",
                    details={"line": index},
                )
            if item.product_id:
                product = (
                    await db.execute(
                        select(ProductDefinition).where(ProductDefinition.id == item.product_id)
                    )
                ).scalar_one_or_none()
            available = {ao.get("id"): ao for ao in (product.add_ons or [])} if product else {}
            for add_on_id in line.add_on_ids:
                if add_on_id not in available:
                    raise ValidationError(
                        f"Line {index + 1}: unknown add-on {add_on_id}",
                        details={"line": index},
                    )
                add_ons.append(available[add_on_id])
            unit_price = price_beverage(item.price, line.size, line.milk, add_ons)
        else:
            unit_price = item.price

        priced.append((line, item, product, add_ons, {
            "item_id": item.id,
            "name": item.name,
            "item_type": item.item_type,
            "quantity": line.quantity,
            "size": line.size if item.item_type == "BEVERAGE" else item.size,
            "milk": line.milk if item.item_type == "BEVERAGE" else None,
            "add_ons": [{"id": ao.get("id"), "name": ao.get("name"), "price": ao.get("price")} for ao in add_ons],
            "unit_price": unit_price,
            "line_total": round(unit_price * line.quantity, 2),
        }))

    subtotal = round(sum(entry[4]["line_total"] for entry in priced), 2)
    vat = round(subtotal * settings.vat_rate, 2)
    total = round(subtotal + vat, 2)
    received = received_amount if received_amount is not None else total
    change = round(max(0.0, received - total), 2)

    sale = SaleTransaction(
        invoice_number=await generate_invoice_number(db),
        location_id=location_id,
        items=[entry[4] for entry in priced],
        subtotal=subtotal,
        vat_amount=vat,
        total=total,
        payment_method=method,
        payment_breakdown=payment_breakdown,
        card_reference=card_reference if method in (PaymentMethod.CARD.value, PaymentMethod.SPLIT.value) else None,
        received_amount=received,
        change_amount=change,
        user_id=user.id,
        cashier_name=user.full_name,
    )
    db.add(sale)

    # ── Draw down stock ──────────────────────────────────────
    for line, item, product, add_ons, _ in priced:
        if item.item_type != "BEVERAGE":
            apply_delta(item, -line.quantity)
            continue
        multiplier = SIZE_MULTIPLIERS[line.size]
        for ingredient in (product.recipe or []) if product else []:
            stock = await _find_ingredient(db, ingredient.get("ingredient_id"), ingredient.get("name"))
            if stock is None:
                logger.warning("Recipe ingredient %s not stocked; skipped", ingredient.get("name"))
                continue
            apply_delta(stock, -(float(ingredient.get("amount") or 0) * multiplier * line.quantity))
        for add_on in add_ons:
            if not add_on.get("ingredient_id"):
                continue
            stock = await _find_ingredient(db, add_on["ingredient_id"], None)
            if stock is not None:
                apply_delta(stock, -line.quantity)

    await flush_or_raise(db, "checkout")
    await log_activity(
        db, user, action="sold", entity_type="sale",
        entity_id=sale.id, entity_code=sale.invoice_number,
        location_id=location_id,
        summary=f"{sale.invoice_number}: {len(priced)} line(s), total {total:.2f} ({method})",
    )

    logger.info("Sale %s recorded: total %.2f via %s", sale.invoice_number, total, method)
    return sale


async def log_reprint(
    db: AsyncSession,
    user: User,
    *,
    sale_id: str,
    reason: str | None = None,
) -> ReprintLog:
    """Record a receipt reprint.  Managers and admins only."""
    if not user.is_privileged:
        raise AuthorizationError("Only managers and admins can reprint receipts")

    sale = (
        await db.execute(select(SaleTransaction).where(SaleTransaction.id == sale_id))
    ).scalar_one_or_none()
    if not sale:
        raise ResourceNotFoundError("Sale", sale_id)

    entry = ReprintLog(
        sale_id=sale.id,
        invoice_number=sale.invoice_number,
        reason=reason or "Customer Request",
        user_id=user.id,
        user_name=user.full_name,
    )
    db.add(entry)
    await flush_or_raise(db, "reprint")
    await log_activity(
        db, user, action="reprinted", entity_type="sale",
        entity_id=sale.id, entity_code=sale.invoice_number,
        location_id=sale.location_id,
        summary=f"Reprinted receipt {sale.invoice_number}",
    )
    logger.info("Receipt %s reprinted by %s", sale.invoice_number, user.full_name)
    return entry
