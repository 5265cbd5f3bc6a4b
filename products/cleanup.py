from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from .models import Product

logger = logging.getLogger(__name__)

SEPARATOR = '------------------------------------------------'
DATE_FORMAT = '%Y-%m-%d'


class CleanupError(Exception):
	"""Base class for errors that stop a supplier cleanup before any mutation."""


class MissingArgument(CleanupError):
	"""Raised when the supplier name or the method is absent."""


class InvalidMethod(CleanupError):
	"""Raised when the method is not one of the known cleanup methods."""


class InvalidDate(CleanupError):
	"""Raised when the cutoff date is not a YYYY-MM-DD value."""


class QueryFailure(CleanupError):
	"""Raised when the product lookup itself fails."""


class CleanupMethod(models.TextChoices):
	DISABLE = 'disable', 'Disable'
	STOREVIEW = 'storeview', 'Remove from storefronts'
	DELETE = 'delete', 'Delete'

	@classmethod
	def parse(cls, value) -> 'CleanupMethod':
		if isinstance(value, cls):
			return value
		try:
			return cls((value or '').strip().lower())
		except ValueError:
			allowed = ', '.join(cls.values)
			raise InvalidMethod(f"Unknown method '{value}'. Use one of: {allowed}.")


class Reporter(Protocol):
	def info(self, text: str) -> None: ...

	def warning(self, text: str) -> None: ...

	def error(self, text: str) -> None: ...


class NullReporter:
	def info(self, text: str) -> None:
		pass

	def warning(self, text: str) -> None:
		pass

	def error(self, text: str) -> None:
		pass


def _cleanup_setting(key: str, default: Any) -> Any:
	return getattr(settings, 'SUPPLIER_CLEANUP', {}).get(key, default)


def parse_cutoff_date(value) -> date:
	"""Return the cutoff as a date; a missing value means today."""
	if value in (None, ''):
		return timezone.localdate()
	if isinstance(value, datetime):
		return value.date()
	if isinstance(value, date):
		return value
	try:
		return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
	except ValueError:
		raise InvalidDate(f"Invalid date '{value}'. Expected format YYYY-MM-DD.")


@dataclass(frozen=True)
class CleanupRequest:
	supplier_name: str
	method: CleanupMethod
	cutoff_date: date
	dry_run: bool = False
	stop_on_error: bool = False

	@classmethod
	def build(
		cls,
		supplier_name: Optional[str],
		method: Optional[str],
		cutoff_date=None,
		*,
		dry_run: bool = False,
		stop_on_error: Optional[bool] = None,
	) -> 'CleanupRequest':
		supplier_name = (supplier_name or '').strip()
		if not supplier_name:
			raise MissingArgument('Supplier name is required.')
		if not (method or '').strip():
			raise MissingArgument('Method name is required.')
		if stop_on_error is None:
			stop_on_error = bool(_cleanup_setting('STOP_ON_ERROR', False))
		return cls(
			supplier_name=supplier_name,
			method=CleanupMethod.parse(method),
			cutoff_date=parse_cutoff_date(cutoff_date),
			dry_run=bool(dry_run),
			stop_on_error=bool(stop_on_error),
		)


@dataclass(frozen=True)
class Filter:
	field: str
	op: str
	value: Any


def build_filters(supplier_name: str, cutoff_date: date) -> List[Filter]:
	return [
		Filter(_cleanup_setting('SUPPLIER_FIELD', 'supplier'), 'eq', supplier_name),
		Filter(_cleanup_setting('IMPORT_DATE_FIELD', 'last_import_date'), 'lt', cutoff_date),
	]


class ProductRepository:
	"""Lookup and persistence of catalog products on top of the ORM."""

	LOOKUPS = {
		'eq': 'exact',
		'lt': 'lt',
	}

	def __init__(self, queryset=None):
		self.queryset = queryset if queryset is not None else Product.objects.all()

	def find(self, filters: List[Filter]) -> List[Product]:
		lookups: Dict[str, Any] = {}
		for item in filters:
			try:
				lookup = self.LOOKUPS[item.op]
			except KeyError:
				raise ValueError(f"Unsupported filter operation '{item.op}' for field '{item.field}'.")
			lookups[f'{item.field}__{lookup}'] = item.value
		return list(self.queryset.filter(**lookups))

	def save(self, product: Product) -> None:
		with transaction.atomic():
			product.save()

	def delete(self, product: Product) -> None:
		with transaction.atomic():
			product.delete()


def find_supplier_products(repository: ProductRepository, supplier_name: str, cutoff_date: date) -> List[Product]:
	filters = build_filters(supplier_name, cutoff_date)
	try:
		products = repository.find(filters)
	except Exception as exc:
		raise QueryFailure(f'Product lookup failed: {exc}') from exc
	logger.info(
		'supplier-cleanup: %s products found (supplier=%s, imported before %s).',
		len(products),
		supplier_name,
		cutoff_date.isoformat(),
	)
	return products


@dataclass(frozen=True)
class MutationResult:
	sku: str
	ok: bool
	error: str = ''

	@classmethod
	def success(cls, sku: str) -> 'MutationResult':
		return cls(sku=sku, ok=True)

	@classmethod
	def failure(cls, sku: str, reason: str) -> 'MutationResult':
		return cls(sku=sku, ok=False, error=reason)


def _failed(product: Product, reporter: Reporter, exc: Exception, action: str) -> MutationResult:
	reporter.error(f'Error: {product.sku}: {exc}')
	logger.warning('supplier-cleanup: %s failed for %s: %s', action, product.sku, exc)
	return MutationResult.failure(product.sku, str(exc))


def disable_product(product: Product, repository: ProductRepository, reporter: Reporter, dry_run: bool) -> MutationResult:
	try:
		if not dry_run:
			product.store_id = Product.GLOBAL_STORE_ID
			product.status = Product.Status.DISABLED
			repository.save(product)
			logger.info('supplier-cleanup: disabled %s', product.sku)
		reporter.info(f'Disabled product: {product.sku}')
	except Exception as exc:
		return _failed(product, reporter, exc, 'disable')
	return MutationResult.success(product.sku)


def remove_from_storefronts(product: Product, repository: ProductRepository, reporter: Reporter, dry_run: bool) -> MutationResult:
	try:
		if not dry_run:
			product.set_website_ids([])
			repository.save(product)
			logger.info('supplier-cleanup: unassigned %s from all websites', product.sku)
		reporter.info(f'Removed product: {product.sku} from stores')
	except Exception as exc:
		return _failed(product, reporter, exc, 'storeview')
	return MutationResult.success(product.sku)


def delete_product(product: Product, repository: ProductRepository, reporter: Reporter, dry_run: bool) -> MutationResult:
	sku = product.sku
	try:
		reporter.info(f'Deleting product: {sku}')
		if not dry_run:
			repository.delete(product)
			logger.info('supplier-cleanup: deleted %s', sku)
	except Exception as exc:
		return _failed(product, reporter, exc, 'delete')
	return MutationResult.success(sku)


Routine = Callable[[Product, ProductRepository, Reporter, bool], MutationResult]

ROUTINES: Dict[CleanupMethod, Routine] = {
	CleanupMethod.DISABLE: disable_product,
	CleanupMethod.STOREVIEW: remove_from_storefronts,
	CleanupMethod.DELETE: delete_product,
}


def dispatch(method: CleanupMethod, product: Product, repository: ProductRepository, reporter: Reporter, dry_run: bool) -> MutationResult:
	try:
		routine = ROUTINES[CleanupMethod.parse(method)]
	except KeyError:
		raise InvalidMethod(f"No cleanup routine registered for '{method}'.")
	return routine(product, repository, reporter, dry_run)


@dataclass
class CleanupReport:
	request: CleanupRequest
	found: int = 0
	results: List[MutationResult] = field(default_factory=list)
	aborted: bool = False

	@property
	def processed(self) -> int:
		return len(self.results)

	@property
	def failures(self) -> List[MutationResult]:
		return [result for result in self.results if not result.ok]

	@property
	def succeeded(self) -> int:
		return self.processed - len(self.failures)

	@property
	def ok(self) -> bool:
		return not self.failures and not self.aborted


def run_cleanup(
	request: CleanupRequest,
	repository: Optional[ProductRepository] = None,
	reporter: Optional[Reporter] = None,
) -> CleanupReport:
	"""
	Locate the stale products of a supplier and apply the requested method to each.

	Products are handled one by one; a failing product is reported and counted,
	and the batch stops there only when ``request.stop_on_error`` is set.
	Lookup errors propagate as QueryFailure before anything is changed.
	"""
	repository = repository or ProductRepository()
	reporter = reporter or NullReporter()
	report = CleanupReport(request=request)

	reporter.info(f'Cleaning data for supplier: {request.supplier_name} with method: {request.method.value}')
	reporter.info(SEPARATOR)
	if request.dry_run:
		reporter.warning('This is a dry run. No changes will be made.')
		reporter.info(SEPARATOR)

	products = find_supplier_products(repository, request.supplier_name, request.cutoff_date)
	report.found = len(products)
	if not products:
		reporter.info('No products found for the given filters.')
		return report

	reporter.info(f'Found {len(products)} products to process.')
	reporter.info(SEPARATOR)

	for product in products:
		result = dispatch(request.method, product, repository, reporter, request.dry_run)
		report.results.append(result)
		if not result.ok and request.stop_on_error:
			report.aborted = True
			reporter.error(f'Stopping after failure on product: {result.sku}')
			break

	reporter.info(SEPARATOR)
	if report.failures or report.aborted:
		reporter.error(
			f'Failed to clean {len(report.failures)} of {report.found} products '
			f'for supplier: {request.supplier_name}'
		)
	else:
		reporter.info(f'Successfully cleaned data for supplier: {request.supplier_name}')

	logger.info(
		'supplier-cleanup: finished (supplier=%s, method=%s, dry_run=%s, found=%s, processed=%s, failed=%s, aborted=%s).',
		request.supplier_name,
		request.method.value,
		request.dry_run,
		report.found,
		report.processed,
		len(report.failures),
		report.aborted,
	)
	return report
