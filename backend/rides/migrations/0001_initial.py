import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Ride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pickup_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('pickup_address', models.TextField(blank=True, default='')),
                ('dropoff_latitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('dropoff_longitude', models.DecimalField(decimal_places=6, max_digits=9)),
                ('dropoff_address', models.TextField(blank=True, default='')),
                ('distance_in_km', models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ('service', models.CharField(max_length=30)),
                ('vehicle_type', models.CharField(blank=True, default='', max_length=20)),
                ('fare', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('fare_breakdown', models.JSONField(blank=True, default=dict)),
                ('promo_code', models.CharField(blank=True, default='', max_length=30)),
                ('discount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('payment_method', models.CharField(choices=[('CASH', 'Cash'), ('WALLET', 'Wallet'), ('RAZORPAY', 'Razorpay'), ('hybrid', 'Wallet + Razorpay')], default='CASH', max_length=10)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('refunded', 'Refunded')], default='pending', max_length=10)),
                ('wallet_amount_used', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('gateway_amount_paid', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('gateway_payment_id', models.CharField(blank=True, default='', max_length=64)),
                ('gateway_refund_id', models.CharField(blank=True, default='', max_length=64)),
                ('gateway_refund_status', models.CharField(blank=True, default='', max_length=20)),
                ('cancellation_fee', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('refund_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('status', models.CharField(choices=[('requested', 'Requested'), ('accepted', 'Accepted'), ('arrived', 'Driver Arrived'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='requested', max_length=20)),
                ('booking_type', models.CharField(choices=[('INSTANT', 'Instant'), ('FULL_DAY', 'Full Day'), ('RENTAL', 'Rental'), ('DATE_WISE', 'Date Wise')], default='INSTANT', max_length=20)),
                ('booking_meta', models.JSONField(blank=True, default=dict)),
                ('scheduled_start_time', models.DateTimeField(blank=True, null=True)),
                ('scheduled_end_time', models.DateTimeField(blank=True, null=True)),
                ('start_otp', models.CharField(editable=False, max_length=4)),
                ('stop_otp', models.CharField(editable=False, max_length=4)),
                ('estimated_duration', models.PositiveIntegerField(default=0)),
                ('actual_start_time', models.DateTimeField(blank=True, null=True)),
                ('actual_end_time', models.DateTimeField(blank=True, null=True)),
                ('actual_duration', models.PositiveIntegerField(blank=True, null=True)),
                ('ride_for', models.CharField(choices=[('SELF', 'Self'), ('OTHER', 'Someone else')], default='SELF', max_length=10)),
                ('passenger', models.JSONField(blank=True, default=dict)),
                ('share_token', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('share_token_expires_at', models.DateTimeField(blank=True, null=True)),
                ('is_shared', models.BooleanField(default=False)),
                ('cancelled_by', models.CharField(blank=True, choices=[('rider', 'Rider'), ('driver', 'Driver'), ('system', 'System')], default='', max_length=10)),
                ('cancellation_reason', models.TextField(blank=True, default='')),
                ('requested_at', models.DateTimeField(auto_now_add=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('driver_arrived_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('driver', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='driven_rides', to=settings.AUTH_USER_MODEL)),
                ('rider', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rides', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'rides',
                'ordering': ['-requested_at'],
                'indexes': [
                    models.Index(fields=['status', 'booking_type', 'scheduled_start_time'], name='ride_schedule_idx'),
                    models.Index(fields=['driver', 'status'], name='ride_driver_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['requested', 'accepted', 'arrived', 'in_progress'])), fields=('rider',), name='one_active_ride_per_rider'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideOffer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order', models.PositiveIntegerField()),
                ('distance_km', models.DecimalField(decimal_places=2, default=0, max_digits=6)),
                ('search_radius_km', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('sent', 'Sent'), ('accepted', 'Accepted'), ('expired', 'Expired')], default='sent', max_length=20)),
                ('sent_at', models.DateTimeField(auto_now_add=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('driver', models.ForeignKey(limit_choices_to={'role': 'driver'}, on_delete=django.db.models.deletion.CASCADE, to=settings.AUTH_USER_MODEL)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='offers', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_offers',
                'ordering': ['order'],
                'constraints': [
                    models.UniqueConstraint(fields=('ride', 'driver'), name='unique_ride_driver'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideReminder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('threshold_minutes', models.PositiveIntegerField()),
                ('sent_at', models.DateTimeField(auto_now_add=True)),
                ('ride', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reminders', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_reminders',
                'constraints': [
                    models.UniqueConstraint(fields=('ride', 'threshold_minutes'), name='unique_ride_reminder_threshold'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RideEarning',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('gross_fare', models.DecimalField(decimal_places=2, max_digits=10)),
                ('platform_fee', models.DecimalField(decimal_places=2, max_digits=10)),
                ('driver_earning', models.DecimalField(decimal_places=2, max_digits=10)),
                ('adjusted', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('driver', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ride_earnings', to=settings.AUTH_USER_MODEL)),
                ('ride', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='earning', to='rides.ride')),
            ],
            options={
                'db_table': 'ride_earnings',
                'ordering': ['-created_at'],
            },
        ),
    ]
