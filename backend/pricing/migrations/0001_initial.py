import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('rides', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PricingSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('per_km_rate', models.DecimalField(decimal_places=2, default=12, max_digits=8)),
                ('minimum_fare', models.DecimalField(decimal_places=2, default=100, max_digits=8)),
                ('cancellation_fee', models.DecimalField(decimal_places=2, default=50, max_digits=8)),
                ('platform_fee_percent', models.DecimalField(decimal_places=2, default=10, max_digits=5)),
                ('driver_commission_percent', models.DecimalField(blank=True, decimal_places=2, default=90, max_digits=5, null=True)),
                ('full_day_rate', models.DecimalField(decimal_places=2, default=1500, max_digits=8)),
                ('rental_per_day_rate', models.DecimalField(decimal_places=2, default=700, max_digits=8)),
                ('date_wise_per_date_rate', models.DecimalField(decimal_places=2, default=500, max_digits=8)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name_plural': 'pricing settings',
                'db_table': 'pricing_settings',
                'ordering': ['-updated_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='VehicleService',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=30, unique=True)),
                ('name', models.CharField(max_length=60)),
                ('base_price', models.DecimalField(decimal_places=2, max_digits=8)),
                ('per_minute_rate', models.DecimalField(decimal_places=2, max_digits=6)),
                ('seats', models.PositiveIntegerField(default=4)),
                ('enabled', models.BooleanField(default=True)),
            ],
            options={
                'db_table': 'vehicle_services',
                'ordering': ['base_price'],
            },
        ),
        migrations.CreateModel(
            name='Coupon',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=30, unique=True)),
                ('coupon_type', models.CharField(choices=[('fixed', 'Fixed amount'), ('percentage', 'Percentage'), ('new_user', 'New user')], max_length=20)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('discount_value', models.DecimalField(decimal_places=2, max_digits=8)),
                ('max_discount_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=8, null=True)),
                ('min_order_amount', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('start_date', models.DateTimeField()),
                ('valid_until', models.DateTimeField()),
                ('max_usage', models.PositiveIntegerField(blank=True, null=True)),
                ('max_usage_per_user', models.PositiveIntegerField(default=1)),
                ('usage_count', models.PositiveIntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('applicable_services', models.JSONField(blank=True, default=list)),
                ('applicable_ride_types', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'coupons',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='CouponUsage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('discount_amount', models.DecimalField(decimal_places=2, max_digits=8)),
                ('original_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('final_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('used_at', models.DateTimeField(auto_now_add=True)),
                ('coupon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='usages', to='pricing.coupon')),
                ('ride', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='coupon_usages', to='rides.ride')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='coupon_usages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'coupon_usages',
                'ordering': ['-used_at'],
            },
        ),
    ]
