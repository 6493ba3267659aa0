# Generated manually for the initial schema

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
        ('locations', '0001_initial'),
        ('parties', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Status',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(blank=True, max_length=50, unique=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=100, unique=True)),
            ],
            options={
                'db_table': 'statuses',
                'verbose_name_plural': 'statuses',
                'ordering': ['name'],
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='Issue',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('issue_no', models.CharField(max_length=50, unique=True)),
                ('issued_to', models.CharField(blank=True, max_length=200)),
                ('remarks', models.TextField(blank=True)),
                ('is_returned', models.BooleanField(db_index=True, default=False)),
                ('issued_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('company', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='issues', to='parties.company')),
                ('contractor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='issues', to='parties.contractor')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='issues', to='catalog.item')),
                ('issued_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='issues', to=settings.AUTH_USER_MODEL)),
                ('location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='issues', to='locations.location')),
                ('machine', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='issues', to='parties.machine')),
            ],
            options={
                'db_table': 'issues',
                'ordering': ['-issued_at', '-id'],
                'indexes': [models.Index(fields=['item', 'is_returned'], name='idx_issue_item_returned')],
            },
        ),
        migrations.CreateModel(
            name='Return',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('return_code', models.CharField(max_length=50, unique=True)),
                ('condition', models.CharField(choices=[('OK', 'OK'), ('Damaged', 'Damaged'), ('Calibration Required', 'Calibration Required'), ('Missing', 'Missing')], max_length=30)),
                ('return_image', models.CharField(max_length=500)),
                ('received_by', models.CharField(blank=True, max_length=200)),
                ('remarks', models.TextField(blank=True)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('returned_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('company', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='parties.company')),
                ('contractor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='parties.contractor')),
                ('issue', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='inventory.issue')),
                ('item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='direct_returns', to='catalog.item')),
                ('location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='locations.location')),
                ('machine', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='parties.machine')),
                ('returned_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to=settings.AUTH_USER_MODEL)),
                ('status', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='returns', to='inventory.status')),
            ],
            options={
                'db_table': 'returns',
                'ordering': ['-returned_at', '-id'],
                'indexes': [models.Index(fields=['is_active', '-returned_at'], name='idx_return_active_date')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('issue__isnull', False), ('item__isnull', True)), models.Q(('issue__isnull', True), ('item__isnull', False)), _connector='OR'), name='return_exactly_one_provenance'),
                    models.UniqueConstraint(fields=('issue',), name='return_one_per_issue'),
                ],
            },
        ),
    ]
