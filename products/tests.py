import io
from datetime import date, timedelta
from unittest.mock import patch

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from .cleanup import (
	CleanupMethod,
	CleanupRequest,
	Filter,
	InvalidDate,
	InvalidMethod,
	MissingArgument,
	MutationResult,
	ProductRepository,
	QueryFailure,
	build_filters,
	delete_product,
	disable_product,
	find_supplier_products,
	remove_from_storefronts,
	run_cleanup,
)
from .models import Product, Website


class RecordingReporter:
	def __init__(self):
		self.lines = []

	def info(self, text):
		self.lines.append(('info', text))

	def warning(self, text):
		self.lines.append(('warning', text))

	def error(self, text):
		self.lines.append(('error', text))

	def texts(self, level=None):
		return [text for lvl, text in self.lines if level is None or lvl == level]


class FailingRepository(ProductRepository):
	def save(self, product):
		raise DatabaseError('disk full')

	def delete(self, product):
		raise DatabaseError('locked')


def make_product(code, supplier='Acme', days_old=30, **extra):
	last_import = None
	if days_old is not None:
		last_import = timezone.localdate() - timedelta(days=days_old)
	return Product.objects.create(
		name=f'Product {code}',
		code=code,
		supplier=supplier,
		last_import_date=last_import,
		**extra,
	)


class ProductModelTest(TestCase):
	def test_defaults(self):
		product = Product.objects.create(name='Cable', code='CAB-1')
		self.assertEqual(product.status, Product.Status.ENABLED)
		self.assertEqual(product.store_id, Product.GLOBAL_STORE_ID)
		self.assertTrue(product.is_enabled)
		self.assertEqual(product.sku, 'CAB-1')
		self.assertEqual(str(product), 'Cable (CAB-1)')

	def test_staged_websites_applied_on_save(self):
		main = Website.objects.create(code='main', name='Main store')
		outlet = Website.objects.create(code='outlet', name='Outlet')
		product = make_product('W-1')
		product.websites.set([main, outlet])

		product.set_website_ids([outlet.pk])
		self.assertEqual(product.websites.count(), 2)
		product.save()
		self.assertEqual(list(product.websites.all()), [outlet])

	def test_save_without_staging_keeps_websites(self):
		main = Website.objects.create(code='main', name='Main store')
		product = make_product('W-2')
		product.websites.add(main)
		product.name = 'Renamed'
		product.save()
		self.assertEqual(list(product.websites.all()), [main])


class CleanupRequestTest(TestCase):
	def test_supplier_name_required(self):
		for value in (None, '', '   '):
			with self.assertRaisesMessage(MissingArgument, 'Supplier name is required.'):
				CleanupRequest.build(value, 'disable')

	def test_method_required(self):
		for value in (None, ''):
			with self.assertRaisesMessage(MissingArgument, 'Method name is required.'):
				CleanupRequest.build('Acme', value)

	def test_unknown_method_rejected(self):
		with self.assertRaises(InvalidMethod) as ctx:
			CleanupRequest.build('Acme', 'archive')
		self.assertIn('disable, storeview, delete', str(ctx.exception))

	def test_method_is_case_insensitive(self):
		request = CleanupRequest.build('Acme', ' StoreView ')
		self.assertIs(request.method, CleanupMethod.STOREVIEW)

	def test_date_defaults_to_today(self):
		request = CleanupRequest.build('Acme', 'delete')
		self.assertEqual(request.cutoff_date, timezone.localdate())
		self.assertFalse(request.dry_run)

	def test_date_is_parsed(self):
		request = CleanupRequest.build('Acme', 'delete', '2024-02-29', dry_run=True)
		self.assertEqual(request.cutoff_date, date(2024, 2, 29))
		self.assertTrue(request.dry_run)

	def test_invalid_date_rejected(self):
		for value in ('29/02/2024', '2024-02-30', 'yesterday'):
			with self.assertRaises(InvalidDate):
				CleanupRequest.build('Acme', 'delete', value)

	@override_settings(SUPPLIER_CLEANUP={'STOP_ON_ERROR': True})
	def test_stop_on_error_defaults_from_settings(self):
		self.assertTrue(CleanupRequest.build('Acme', 'disable').stop_on_error)
		self.assertFalse(CleanupRequest.build('Acme', 'disable', stop_on_error=False).stop_on_error)


class ProductLocatorTest(TestCase):
	def test_build_filters(self):
		cutoff = date(2024, 1, 31)
		self.assertEqual(build_filters('Acme', cutoff), [
			Filter('supplier', 'eq', 'Acme'),
			Filter('last_import_date', 'lt', cutoff),
		])

	@override_settings(SUPPLIER_CLEANUP={'SUPPLIER_FIELD': 'leverancier', 'IMPORT_DATE_FIELD': 'imported_on'})
	def test_filter_fields_are_configurable(self):
		filters = build_filters('Acme', date(2024, 1, 31))
		self.assertEqual([f.field for f in filters], ['leverancier', 'imported_on'])

	def test_matches_supplier_and_strictly_older_imports(self):
		stale = make_product('A-1', days_old=10)
		make_product('A-2', days_old=0)
		make_product('A-3', days_old=None)
		make_product('B-1', supplier='Other', days_old=10)
		make_product('A-4', supplier='acme', days_old=10)

		products = find_supplier_products(ProductRepository(), 'Acme', timezone.localdate())
		self.assertEqual(products, [stale])

	def test_unknown_operation_is_a_query_failure(self):
		with self.assertRaises(ValueError):
			ProductRepository().find([Filter('supplier', 'like', 'Acme')])

		with patch('products.cleanup.build_filters', return_value=[Filter('supplier', 'like', 'Acme')]):
			with self.assertRaises(QueryFailure):
				find_supplier_products(ProductRepository(), 'Acme', timezone.localdate())

	def test_lookup_errors_become_query_failure(self):
		with patch.object(ProductRepository, 'find', side_effect=DatabaseError('connection lost')):
			with self.assertRaisesMessage(QueryFailure, 'connection lost'):
				find_supplier_products(ProductRepository(), 'Acme', timezone.localdate())


class MutationRoutineTest(TestCase):
	def setUp(self):
		self.reporter = RecordingReporter()
		self.repository = ProductRepository()

	def test_disable(self):
		product = make_product('D-1', store_id=3)
		result = disable_product(product, self.repository, self.reporter, False)
		self.assertEqual(result, MutationResult.success('D-1'))
		product.refresh_from_db()
		self.assertEqual(product.status, Product.Status.DISABLED)
		self.assertEqual(product.store_id, 0)
		self.assertEqual(self.reporter.texts(), ['Disabled product: D-1'])

	def test_remove_from_storefronts(self):
		product = make_product('S-1')
		product.websites.add(Website.objects.create(code='main', name='Main'))
		result = remove_from_storefronts(product, self.repository, self.reporter, False)
		self.assertTrue(result.ok)
		self.assertFalse(Product.objects.get(pk=product.pk).websites.exists())
		self.assertEqual(self.reporter.texts(), ['Removed product: S-1 from stores'])

	def test_delete(self):
		product = make_product('X-1')
		result = delete_product(product, self.repository, self.reporter, False)
		self.assertTrue(result.ok)
		self.assertFalse(Product.objects.filter(code='X-1').exists())
		self.assertEqual(self.reporter.texts(), ['Deleting product: X-1'])

	def test_dry_run_leaves_product_untouched(self):
		product = make_product('N-1', store_id=2)
		product.websites.add(Website.objects.create(code='main', name='Main'))
		for routine in (disable_product, remove_from_storefronts, delete_product):
			self.assertTrue(routine(product, self.repository, self.reporter, True).ok)

		product = Product.objects.get(code='N-1')
		self.assertEqual(product.status, Product.Status.ENABLED)
		self.assertEqual(product.store_id, 2)
		self.assertEqual(product.websites.count(), 1)
		self.assertEqual(len(self.reporter.texts()), 3)

	def test_persistence_errors_become_failed_results(self):
		product = make_product('F-1')
		repository = FailingRepository()

		result = disable_product(product, repository, self.reporter, False)
		self.assertFalse(result.ok)
		self.assertEqual(result.error, 'disk full')

		result = delete_product(product, repository, self.reporter, False)
		self.assertEqual(result, MutationResult.failure('F-1', 'locked'))
		self.assertEqual(self.reporter.texts('error'), ['Error: F-1: disk full', 'Error: F-1: locked'])
		self.assertTrue(Product.objects.filter(code='F-1').exists())


class RunCleanupTest(TestCase):
	def test_report_counts(self):
		make_product('A-1')
		make_product('A-2')
		reporter = RecordingReporter()
		request = CleanupRequest.build('Acme', 'disable')

		report = run_cleanup(request, reporter=reporter)
		self.assertEqual(report.found, 2)
		self.assertEqual(report.processed, 2)
		self.assertEqual(report.succeeded, 2)
		self.assertTrue(report.ok)
		self.assertEqual(reporter.texts()[-1], 'Successfully cleaned data for supplier: Acme')

	def test_continues_after_failure_by_default(self):
		make_product('A-1')
		make_product('A-2')
		reporter = RecordingReporter()
		report = run_cleanup(CleanupRequest.build('Acme', 'delete'), FailingRepository(), reporter)
		self.assertEqual(report.processed, 2)
		self.assertEqual(len(report.failures), 2)
		self.assertFalse(report.aborted)
		self.assertFalse(report.ok)
		self.assertEqual(reporter.texts()[-1], 'Failed to clean 2 of 2 products for supplier: Acme')

	def test_stop_on_error_aborts_batch(self):
		make_product('A-1')
		make_product('A-2')
		reporter = RecordingReporter()
		request = CleanupRequest.build('Acme', 'disable', stop_on_error=True)
		report = run_cleanup(request, FailingRepository(), reporter)
		self.assertEqual(report.processed, 1)
		self.assertTrue(report.aborted)
		self.assertIn('Stopping after failure on product: A-1', reporter.texts('error'))

	def test_dry_run_banner(self):
		reporter = RecordingReporter()
		run_cleanup(CleanupRequest.build('Acme', 'disable', dry_run=True), reporter=reporter)
		self.assertEqual(reporter.texts('warning'), ['This is a dry run. No changes will be made.'])


class CleanSupplierCommandTest(TestCase):
	def call(self, *args, **options):
		stdout = io.StringIO()
		stderr = io.StringIO()
		call_command('clean_supplier', *args, stdout=stdout, stderr=stderr, no_color=True, **options)
		return stdout.getvalue(), stderr.getvalue()

	def test_missing_arguments_fail_without_querying(self):
		with patch.object(ProductRepository, 'find') as find:
			with self.assertRaisesMessage(CommandError, 'Supplier name is required.'):
				self.call()
			with self.assertRaisesMessage(CommandError, 'Supplier name is required.'):
				self.call('', 'disable')
			with self.assertRaisesMessage(CommandError, 'Method name is required.'):
				self.call('Acme')
			with self.assertRaisesMessage(CommandError, 'Unknown method'):
				self.call('Acme', 'archive')
			with self.assertRaisesMessage(CommandError, 'Invalid date'):
				self.call('Acme', 'disable', '31-01-2024')
		find.assert_not_called()

	def test_no_products_found(self):
		make_product('A-1', days_old=0)
		with patch.object(ProductRepository, 'save') as save, patch.object(ProductRepository, 'delete') as delete:
			stdout, stderr = self.call('Acme', 'delete')
		self.assertIn('No products found for the given filters.', stdout)
		self.assertNotIn('Deleting product', stdout)
		self.assertEqual(stderr, '')
		save.assert_not_called()
		delete.assert_not_called()

	def test_disable_in_query_order(self):
		make_product('A-2', store_id=4)
		make_product('A-1', store_id=1)
		fresh = make_product('A-3', days_old=0)
		other = make_product('B-1', supplier='Other')

		stdout, _ = self.call('Acme', 'disable')

		self.assertIn('Cleaning data for supplier: Acme with method: disable', stdout)
		self.assertIn('Found 2 products to process.', stdout)
		lines = [line for line in stdout.splitlines() if line.startswith('Disabled product')]
		self.assertEqual(lines, ['Disabled product: A-1', 'Disabled product: A-2'])
		for code in ('A-1', 'A-2'):
			product = Product.objects.get(code=code)
			self.assertEqual(product.status, Product.Status.DISABLED)
			self.assertEqual(product.store_id, 0)
		for product in (fresh, other):
			product.refresh_from_db()
			self.assertEqual(product.status, Product.Status.ENABLED)

	def test_disable_twice_is_idempotent(self):
		make_product('A-1')
		self.call('Acme', 'disable')
		stdout, stderr = self.call('Acme', 'disable')
		product = Product.objects.get(code='A-1')
		self.assertEqual((product.status, product.store_id), (Product.Status.DISABLED, 0))
		self.assertIn('Disabled product: A-1', stdout)
		self.assertEqual(stderr, '')

	def test_storeview_with_default_date(self):
		main = Website.objects.create(code='main', name='Main')
		outlet = Website.objects.create(code='outlet', name='Outlet')
		product = make_product('A-1', days_old=1)
		product.websites.set([main, outlet])
		untouched = make_product('A-2', days_old=0)
		untouched.websites.set([main])

		stdout, _ = self.call('Acme', 'storeview')

		self.assertIn('Removed product: A-1 from stores', stdout)
		self.assertFalse(Product.objects.get(code='A-1').websites.exists())
		self.assertEqual(Product.objects.get(code='A-2').websites.count(), 1)
		self.assertEqual(stdout.strip().splitlines()[-1], 'Successfully cleaned data for supplier: Acme')

	def test_explicit_cutoff_date(self):
		Product.objects.create(name='Old', code='A-1', supplier='Acme', last_import_date=date(2023, 12, 31))
		Product.objects.create(name='Edge', code='A-2', supplier='Acme', last_import_date=date(2024, 1, 1))

		self.call('Acme', 'delete', '2024-01-01')

		self.assertEqual(list(Product.objects.values_list('code', flat=True)), ['A-2'])

	def test_delete(self):
		make_product('A-1')
		make_product('A-2')
		stdout, _ = self.call('Acme', 'delete')
		self.assertEqual(stdout.count('Deleting product: '), 2)
		self.assertFalse(Product.objects.filter(supplier='Acme').exists())

	def test_dry_run_never_persists(self):
		make_product('A-1')
		make_product('A-2')
		for method, line in (
			('disable', 'Disabled product: '),
			('storeview', 'Removed product: '),
			('delete', 'Deleting product: '),
		):
			with patch.object(ProductRepository, 'save') as save, patch.object(ProductRepository, 'delete') as delete:
				stdout, _ = self.call('Acme', method, dry_run=True)
			save.assert_not_called()
			delete.assert_not_called()
			self.assertIn('This is a dry run. No changes will be made.', stdout)
			self.assertEqual(stdout.count(line), 2)
		self.assertEqual(Product.objects.filter(status=Product.Status.ENABLED).count(), 2)

	def test_item_failures_continue_and_fail_the_run(self):
		make_product('A-1')
		make_product('A-2')
		with patch.object(ProductRepository, 'save', side_effect=[DatabaseError('boom'), None]) as save:
			with self.assertRaises(CommandError) as ctx:
				self.call('Acme', 'disable')
		self.assertEqual(save.call_count, 2)
		self.assertEqual(ctx.exception.returncode, 2)
		self.assertIn('1 of 2 products could not be cleaned.', str(ctx.exception))

	def test_item_failure_output(self):
		make_product('A-1')
		make_product('A-2')
		with patch.object(ProductRepository, 'save', side_effect=[DatabaseError('boom'), None]):
			stdout, stderr = self.call('Acme', 'disable', ignore_errors=True)
		self.assertIn('Error: A-1: boom', stderr)
		self.assertIn('Failed to clean 1 of 2 products for supplier: Acme', stderr)
		self.assertIn('Disabled product: A-2', stdout)
		self.assertNotIn('Successfully cleaned', stdout)

	def test_stop_on_error(self):
		make_product('A-1')
		make_product('A-2')
		with patch.object(ProductRepository, 'delete', side_effect=DatabaseError('locked')) as delete:
			with self.assertRaises(CommandError):
				self.call('Acme', 'delete', stop_on_error=True)
		self.assertEqual(delete.call_count, 1)

	def test_query_failure_is_fatal(self):
		with patch.object(ProductRepository, 'find', side_effect=DatabaseError('connection lost')):
			with patch.object(ProductRepository, 'save') as save:
				with self.assertRaisesMessage(CommandError, 'Product lookup failed: connection lost'):
					self.call('Acme', 'disable')
		save.assert_not_called()


class ProductAdminTest(TestCase):
	def setUp(self):
		User.objects.create_superuser('admin', 'admin@example.com', 'pw123456')
		self.client.login(username='admin', password='pw123456')

	def test_disable_selected_action(self):
		product = make_product('A-1', store_id=5)
		resp = self.client.post(reverse('admin:products_product_changelist'), {
			'action': 'disable_selected',
			'_selected_action': [str(product.pk)],
		})
		self.assertEqual(resp.status_code, 302)
		product.refresh_from_db()
		self.assertEqual((product.status, product.store_id), (Product.Status.DISABLED, 0))

	def test_remove_from_storefronts_action(self):
		product = make_product('A-1')
		product.websites.add(Website.objects.create(code='main', name='Main'))
		resp = self.client.post(reverse('admin:products_product_changelist'), {
			'action': 'remove_selected_from_storefronts',
			'_selected_action': [str(product.pk)],
		}, follow=True)
		self.assertEqual(resp.status_code, 200)
		self.assertFalse(product.websites.exists())
		self.assertContains(resp, 'Removed product: A-1 from stores')
