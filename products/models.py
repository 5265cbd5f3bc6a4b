from django.db import models, transaction


class Website(models.Model):
	code = models.CharField(max_length=64, unique=True)
	name = models.CharField(max_length=200)
	is_active = models.BooleanField(default=True)

	class Meta:
		verbose_name = 'Website'
		verbose_name_plural = 'Websites'
		ordering = ('code',)

	def __str__(self):
		return self.name or self.code


class Product(models.Model):
	# Store scope 0 is the global (admin) scope shared by every storefront.
	GLOBAL_STORE_ID = 0

	class Status(models.TextChoices):
		ENABLED = 'enabled', 'Enabled'
		DISABLED = 'disabled', 'Disabled'

	name = models.CharField(max_length=200)
	code = models.CharField('SKU', max_length=100, unique=True)
	supplier = models.CharField(max_length=200, blank=True, null=True, db_index=True)
	last_import_date = models.DateField('Last import date', blank=True, null=True, db_index=True)
	status = models.CharField(max_length=20, choices=Status.choices, default=Status.ENABLED)
	store_id = models.PositiveIntegerField('Store scope', default=GLOBAL_STORE_ID)
	websites = models.ManyToManyField(Website, related_name='products', blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		verbose_name = 'Product'
		verbose_name_plural = 'Products'
		ordering = ('code',)

	def __str__(self):
		return f"{self.name} ({self.code})"

	@property
	def sku(self):
		return self.code

	@property
	def is_enabled(self):
		return self.status == self.Status.ENABLED

	def set_website_ids(self, website_ids):
		"""Stage a new storefront assignment, applied by the next save()."""
		self._pending_website_ids = list(website_ids)

	def save(self, *args, **kwargs):
		with transaction.atomic():
			super().save(*args, **kwargs)
			pending = getattr(self, '_pending_website_ids', None)
			if pending is not None:
				self.websites.set(pending)
				self._pending_website_ids = None
