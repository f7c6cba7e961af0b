from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from sqlalchemy.orm import Session

from app.models.menu import Combo, Product, ProductVariant
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)

REWARD_TYPES = ("product", "variant", "combo")


@dataclass(frozen=True)
class VariantOption:
    id: int
    name: str
    size: str | None
    points_cost: int | None


@dataclass(frozen=True)
class ProductReward:
    id: int
    name: str
    price_cents: int
    is_redeemable: bool
    # None quando o produto tem variações ativas: o resgate é feito pela variação
    points_cost: int | None
    image_url: str | None = None
    variants: tuple[VariantOption, ...] = field(default_factory=tuple)
    kind: str = "product"


@dataclass(frozen=True)
class VariantReward:
    id: int
    name: str
    size: str | None
    price_cents: int
    is_redeemable: bool
    points_cost: int | None
    product_id: int
    product_name: str
    kind: str = "variant"


@dataclass(frozen=True)
class ComboReward:
    id: int
    name: str
    price_cents: int
    is_redeemable: bool
    points_cost: int | None
    image_url: str | None = None
    kind: str = "combo"


RewardView = Union[ProductReward, VariantReward, ComboReward]


def _active_variants(product: Product) -> list[ProductVariant]:
    return [variant for variant in product.variants if variant.is_active]


def _product_reward(product: Product) -> ProductReward:
    variants = _active_variants(product)
    if variants:
        return ProductReward(
            id=product.id,
            name=product.name,
            price_cents=int(product.price_cents or 0),
            is_redeemable=False,
            points_cost=None,
            image_url=product.image_url,
            variants=tuple(
                VariantOption(id=v.id, name=v.name, size=v.size, points_cost=v.points_cost) for v in variants
            ),
        )
    return ProductReward(
        id=product.id,
        name=product.name,
        price_cents=int(product.price_cents or 0),
        is_redeemable=bool(product.is_redeemable),
        points_cost=product.points_cost,
        image_url=product.image_url,
    )


def _variant_reward(variant: ProductVariant) -> VariantReward:
    return VariantReward(
        id=variant.id,
        name=variant.name,
        size=variant.size,
        price_cents=int(variant.price_cents or 0),
        is_redeemable=bool(variant.is_redeemable),
        points_cost=variant.points_cost,
        product_id=variant.product_id,
        product_name=variant.product.name,
    )


def _combo_reward(combo: Combo) -> ComboReward:
    return ComboReward(
        id=combo.id,
        name=combo.name,
        price_cents=int(combo.price_cents or 0),
        is_redeemable=bool(combo.is_redeemable),
        points_cost=combo.points_cost,
        image_url=combo.image_url,
    )


def resolve_reward(db: Session, reward_type: str, reward_id: int) -> RewardView:
    kind = (reward_type or "").strip().lower()
    if kind == "product":
        product = db.query(Product).filter(Product.id == reward_id, Product.is_active.is_(True)).first()
        if product is None:
            raise NotFoundError("Produto não encontrado")
        return _product_reward(product)
    if kind == "variant":
        variant = (
            db.query(ProductVariant)
            .join(Product, Product.id == ProductVariant.product_id)
            .filter(
                ProductVariant.id == reward_id,
                ProductVariant.is_active.is_(True),
                Product.is_active.is_(True),
            )
            .first()
        )
        if variant is None:
            raise NotFoundError("Variação não encontrada")
        return _variant_reward(variant)
    if kind == "combo":
        combo = db.query(Combo).filter(Combo.id == reward_id, Combo.is_active.is_(True)).first()
        if combo is None:
            raise NotFoundError("Combo não encontrado")
        return _combo_reward(combo)
    raise NotFoundError(f"Tipo de recompensa inválido: {reward_type}")


def list_rewards(db: Session, restaurant_id: int | None = None) -> list[RewardView]:
    """Catálogo de recompensas resgatáveis, do menor custo para o maior."""
    products_q = db.query(Product).filter(
        Product.is_active.is_(True),
        Product.is_redeemable.is_(True),
        Product.points_cost > 0,
    )
    variants_q = (
        db.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(
            Product.is_active.is_(True),
            ProductVariant.is_active.is_(True),
            ProductVariant.is_redeemable.is_(True),
            ProductVariant.points_cost > 0,
        )
    )
    combos_q = db.query(Combo).filter(
        Combo.is_active.is_(True),
        Combo.is_redeemable.is_(True),
        Combo.points_cost > 0,
    )
    if restaurant_id is not None:
        products_q = products_q.filter(Product.restaurant_id == restaurant_id)
        variants_q = variants_q.filter(Product.restaurant_id == restaurant_id)
        combos_q = combos_q.filter(Combo.restaurant_id == restaurant_id)

    rewards: list[RewardView] = []
    for product in products_q.all():
        if _active_variants(product):
            continue
        rewards.append(_product_reward(product))
    rewards.extend(_variant_reward(variant) for variant in variants_q.all())
    rewards.extend(_combo_reward(combo) for combo in combos_q.all())
    rewards.sort(key=lambda reward: (reward.points_cost or 0, reward.name))
    return rewards
