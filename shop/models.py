from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class TimeStampedModel(models.Model):
	"""Shared timestamp fields for auditability."""

	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		abstract = True


class ProductCategory(models.TextChoices):
	FURNITURE = 'Furniture'
	LIGHTING = 'Lighting'
	HOME_DECOR = 'Home Decor'
	APPLIANCES = 'Appliances'
	ELECTRONICS = 'Electronics'
	APPAREL = 'Apparel'
	BOOKS = 'Books'
	KITCHENWARE = 'Kitchenware'


class Product(TimeStampedModel):
	name = models.CharField(max_length=255)
	description = models.TextField(blank=True)
	price = models.DecimalField(
		max_digits=10,
		decimal_places=2,
		validators=[MinValueValidator(Decimal('0.00'))],
	)
	# Only InventoryLedger writes this column.
	stock = models.PositiveIntegerField(default=0)
	category = models.CharField(max_length=32, choices=ProductCategory.choices)
	image_url = models.URLField(blank=True)
	is_active = models.BooleanField(default=True)

	class Meta:
		ordering = ['name']
		constraints = [
			models.CheckConstraint(condition=Q(stock__gte=0), name='product_stock_non_negative'),
			models.CheckConstraint(condition=Q(price__gte=0), name='product_price_non_negative'),
		]

	def __str__(self) -> str:
		return f"{self.name}"

	def declared_options(self):
		"""Map of option name to {value: available} for this product."""
		declared = {}
		for option in self.options.all():
			declared[option.name] = {v.value: v.available for v in option.values.all()}
		return declared


class ProductOption(models.Model):
	product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='options')
	name = models.CharField(max_length=64)

	class Meta:
		ordering = ['name']
		constraints = [
			models.UniqueConstraint(fields=['product', 'name'], name='unique_option_per_product'),
		]

	def __str__(self) -> str:
		return f"{self.product_id}:{self.name}"


class ProductOptionValue(models.Model):
	option = models.ForeignKey(ProductOption, on_delete=models.CASCADE, related_name='values')
	value = models.CharField(max_length=64)
	available = models.BooleanField(default=True)

	class Meta:
		ordering = ['value']
		constraints = [
			models.UniqueConstraint(fields=['option', 'value'], name='unique_value_per_option'),
		]

	def __str__(self) -> str:
		return f"{self.option.name}={self.value}"


class DiscountType(models.TextChoices):
	PERCENTAGE = 'PERCENTAGE'
	FIXED = 'FIXED'


class DiscountCode(TimeStampedModel):
	code = models.CharField(max_length=64, unique=True)
	discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
	value = models.DecimalField(
		max_digits=10,
		decimal_places=2,
		validators=[MinValueValidator(Decimal('0.00'))],
	)
	valid_from = models.DateTimeField(default=timezone.now)
	valid_until = models.DateTimeField(null=True, blank=True)
	min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
	usage_limit = models.PositiveIntegerField(null=True, blank=True)
	times_used = models.PositiveIntegerField(default=0)
	is_active = models.BooleanField(default=True)

	class Meta:
		ordering = ['code']

	def __str__(self) -> str:
		return self.code

	def save(self, *args, **kwargs):
		self.code = self.code.strip().upper()
		super().save(*args, **kwargs)


class OrderStatus(models.TextChoices):
	PENDING = 'PENDING'
	PROCESSING = 'PROCESSING'
	SHIPPED = 'SHIPPED'
	DELIVERED = 'DELIVERED'
	CANCELLED = 'CANCELLED'


class Order(TimeStampedModel):
	user = models.ForeignKey(
		settings.AUTH_USER_MODEL,
		on_delete=models.PROTECT,
		related_name='orders',
	)
	status = models.CharField(
		max_length=16,
		choices=OrderStatus.choices,
		default=OrderStatus.PENDING,
	)
	original_amount = models.DecimalField(
		max_digits=12,
		decimal_places=2,
		validators=[MinValueValidator(Decimal('0.00'))],
	)
	discount_code = models.CharField(max_length=64, null=True, blank=True)
	discount_amount = models.DecimalField(
		max_digits=12,
		decimal_places=2,
		default=Decimal('0.00'),
		validators=[MinValueValidator(Decimal('0.00'))],
	)
	total_amount = models.DecimalField(
		max_digits=12,
		decimal_places=2,
		validators=[MinValueValidator(Decimal('0.00'))],
	)
	shipping_address = models.JSONField()
	payment_method = models.CharField(max_length=64, blank=True)
	# Reports bucket on this column; it is set explicitly so seeds can backdate.
	created_at = models.DateTimeField(default=timezone.now, db_index=True)

	class Meta:
		ordering = ['-created_at']

	def __str__(self) -> str:
		return f"Order #{self.pk}"


class OrderItem(models.Model):
	order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
	product = models.ForeignKey(
		Product,
		on_delete=models.SET_NULL,
		null=True,
		related_name='order_items',
	)
	product_name = models.CharField(max_length=255)
	quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
	price_at_purchase = models.DecimalField(max_digits=10, decimal_places=2)
	selected_options = models.JSONField(default=dict, blank=True)

	class Meta:
		ordering = ['id']
		constraints = [
			models.CheckConstraint(condition=Q(quantity__gte=1), name='order_item_quantity_positive'),
		]

	def __str__(self) -> str:
		return f"{self.product_name} x {self.quantity}"

	@property
	def line_total(self) -> Decimal:
		return self.price_at_purchase * self.quantity
