from tortoise import fields
from tortoise.models import Model

from app.schemas import BookingStatus, DiscountType, Region


class Booking(Model):
    id = fields.UUIDField(primary_key=True)

    customer_id = fields.UUIDField()
    service_id = fields.UUIDField()
    provider_id = fields.UUIDField(null=True)  # snapshot of the service's provider
    address_id = fields.UUIDField()
    region = fields.CharEnumField(Region)  # snapshot of the address region

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING)

    scheduled_at = fields.DatetimeField()
    created_at = fields.DatetimeField()
    started_at = fields.DatetimeField(null=True)
    completed_at = fields.DatetimeField(null=True)
    cancelled_at = fields.DatetimeField(null=True)
    cancellation_reason = fields.TextField(null=True)

    base_price = fields.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = fields.DecimalField(max_digits=10, decimal_places=2, null=True)
    vat_percentage = fields.DecimalField(max_digits=5, decimal_places=2)
    vat_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    total_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    currency = fields.CharField(max_length=3)

    # recorded at booking time so later promo edits don't rewrite history
    promo_code_id = fields.UUIDField(null=True)
    promo_code = fields.CharField(max_length=50, null=True)

    special_instructions = fields.TextField(null=True)
    version = fields.IntField(default=0)  # optimistic concurrency token
    updated_at = fields.DatetimeField(null=True)

    class Meta:  # type: ignore
        table = "bookings"
        ordering = ["-created_at"]


class BookingHistory(Model):
    id = fields.IntField(primary_key=True)
    booking_id = fields.UUIDField(db_index=True)
    status = fields.CharEnumField(BookingStatus)
    changed_by_id = fields.UUIDField(null=True)
    change_reason = fields.TextField(null=True)
    changed_at = fields.DatetimeField()

    class Meta:  # type: ignore
        table = "booking_history"
        ordering = ["changed_at", "id"]


class PromoCode(Model):
    id = fields.UUIDField(primary_key=True)
    code = fields.CharField(max_length=50, unique=True)  # normalized upper-case
    description = fields.TextField(null=True)

    discount_type = fields.CharEnumField(DiscountType)
    discount_value = fields.DecimalField(max_digits=10, decimal_places=2)
    max_discount_amount = fields.DecimalField(
        max_digits=10, decimal_places=2, null=True
    )
    min_order_amount = fields.DecimalField(max_digits=10, decimal_places=2, null=True)

    valid_from = fields.DatetimeField()
    valid_until = fields.DatetimeField()

    max_total_uses = fields.IntField(null=True)
    max_uses_per_customer = fields.IntField(null=True)
    current_total_uses = fields.IntField(default=0)

    # allow-lists; null or empty means unrestricted
    applicable_service_ids = fields.JSONField(null=True)
    applicable_category_ids = fields.JSONField(null=True)
    applicable_regions = fields.JSONField(null=True)

    is_for_first_order_only = fields.BooleanField(default=False)
    is_active = fields.BooleanField(default=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "promo_codes"
        ordering = ["-created_at"]


class PromoCodeUsage(Model):
    id = fields.IntField(primary_key=True)
    promo_code_id = fields.UUIDField(db_index=True)
    customer_id = fields.UUIDField(db_index=True)
    booking_id = fields.UUIDField()
    discount_amount = fields.DecimalField(max_digits=10, decimal_places=2)
    used_at = fields.DatetimeField()

    class Meta:  # type: ignore
        table = "promo_code_usages"
