from django.db import migrations, models


class Migration(migrations.Migration):

	initial = True

	dependencies = []

	operations = [
		migrations.CreateModel(
			name='Website',
			fields=[
				('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
				('code', models.CharField(max_length=64, unique=True)),
				('name', models.CharField(max_length=200)),
				('is_active', models.BooleanField(default=True)),
			],
			options={
				'verbose_name': 'Website',
				'verbose_name_plural': 'Websites',
				'ordering': ('code',),
			},
		),
		migrations.CreateModel(
			name='Product',
			fields=[
				('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
				('name', models.CharField(max_length=200)),
				('code', models.CharField(max_length=100, unique=True, verbose_name='SKU')),
				('supplier', models.CharField(blank=True, db_index=True, max_length=200, null=True)),
				('last_import_date', models.DateField(blank=True, db_index=True, null=True, verbose_name='Last import date')),
				('status', models.CharField(choices=[('enabled', 'Enabled'), ('disabled', 'Disabled')], default='enabled', max_length=20)),
				('store_id', models.PositiveIntegerField(default=0, verbose_name='Store scope')),
				('created_at', models.DateTimeField(auto_now_add=True)),
				('updated_at', models.DateTimeField(auto_now=True)),
				('websites', models.ManyToManyField(blank=True, related_name='products', to='products.website')),
			],
			options={
				'verbose_name': 'Product',
				'verbose_name_plural': 'Products',
				'ordering': ('code',),
			},
		),
	]
