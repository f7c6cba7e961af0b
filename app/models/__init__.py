from app.models.customer import Customer, CustomerType
from app.models.menu import Combo, Product, ProductVariant
from app.models.promotion import Promotion, PromotionItem
from app.models.order import Order
from app.models.order_item import OrderItem
from app.models.order_status_history import OrderStatusHistory
from app.models.order_promotion import OrderPromotion
from app.models.points import PointsSettings, PointsTransaction
from app.models.outbox_event import OutboxEvent
