import uuid
import django.core.serializers.json
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('role', models.CharField(choices=[('user', 'User'), ('admin', 'Admin')], default='user', max_length=20)),
                ('balance', models.DecimalField(decimal_places=2, default=0, editable=False, max_digits=12)),
                ('is_blocked', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'users',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(balance__gte=0), name='users_balance_non_negative'),
                    models.CheckConstraint(condition=models.Q(role__in=['user', 'admin']), name='users_valid_role'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Ad',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('advertiser', models.CharField(max_length=255)),
                ('target_url', models.URLField(max_length=2048)),
                ('payout_per_view', models.DecimalField(decimal_places=2, max_digits=10)),
                ('max_views', models.PositiveIntegerField(blank=True, null=True)),
                ('total_views', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=[('active', 'Active'), ('paused', 'Paused'), ('expired', 'Expired')], default='paused', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'ads',
                'indexes': [models.Index(fields=['status', 'created_at'], name='ads_status_created_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(payout_per_view__gt=0), name='ads_payout_positive'),
                    models.CheckConstraint(condition=models.Q(status__in=['active', 'paused', 'expired']), name='ads_valid_status'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LedgerEntry',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('type', models.CharField(choices=[('ad_payout', 'Ad payout'), ('withdrawal', 'Withdrawal'), ('refund', 'Refund'), ('bonus', 'Bonus'), ('adjustment', 'Adjustment')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12)),
                ('reference_type', models.CharField(choices=[('submission', 'Submission'), ('withdrawal', 'Withdrawal'), ('admin_action', 'Admin action'), ('system', 'System')], max_length=20)),
                ('reference_id', models.CharField(max_length=64)),
                ('metadata', models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='ledger_entries', to='core.user')),
            ],
            options={
                'db_table': 'wallet_ledger',
                'ordering': ['id'],
                'verbose_name_plural': 'ledger entries',
                'indexes': [
                    models.Index(fields=['user', 'id'], name='ledger_user_order_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='ledger_reference_idx'),
                    models.Index(fields=['created_at'], name='ledger_created_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount', 0), _negated=True), name='wallet_ledger_amount_not_zero'),
                    models.CheckConstraint(condition=models.Q(balance_after__gte=0), name='wallet_ledger_balance_after_non_negative'),
                    models.CheckConstraint(condition=models.Q(type__in=['ad_payout', 'withdrawal', 'refund', 'bonus', 'adjustment']), name='wallet_ledger_valid_type'),
                    models.CheckConstraint(condition=models.Q(reference_type__in=['submission', 'withdrawal', 'admin_action', 'system']), name='wallet_ledger_valid_reference_type'),
                    models.UniqueConstraint(condition=models.Q(reference_type__in=['submission', 'withdrawal']), fields=('type', 'reference_type', 'reference_id'), name='wallet_ledger_one_entry_per_workflow_ref'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Submission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('proof_url', models.URLField(max_length=2048)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('under_review', 'Under review'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('rejection_reason', models.TextField(blank=True, default='')),
                ('reviewed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('ad', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='submissions', to='core.ad')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviewed_submissions', to='core.user')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='submissions', to='core.user')),
            ],
            options={
                'db_table': 'submissions',
                'indexes': [
                    models.Index(fields=['user', 'ad', 'created_at'], name='submissions_user_ad_idx'),
                    models.Index(fields=['status', 'created_at'], name='submissions_queue_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(status__in=['pending', 'under_review', 'approved', 'rejected']), name='submissions_valid_status'),
                    models.UniqueConstraint(condition=models.Q(status__in=('pending', 'under_review')), fields=('user', 'ad'), name='submissions_one_open_per_user_ad'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Withdrawal',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('method', models.CharField(choices=[('bank_transfer', 'Bank transfer'), ('paypal', 'PayPal'), ('crypto', 'Crypto'), ('mobile_money', 'Mobile money')], max_length=20)),
                ('payment_details', models.JSONField(default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed'), ('cancelled', 'Cancelled')], default='pending', max_length=20)),
                ('transaction_hash', models.CharField(blank=True, default='', max_length=255)),
                ('failure_reason', models.TextField(blank=True, default='')),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('processed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='processed_withdrawals', to='core.user')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='withdrawals', to='core.user')),
            ],
            options={
                'db_table': 'withdrawals',
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='withdrawals_user_created_idx'),
                    models.Index(fields=['status', 'created_at'], name='withdrawals_queue_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name='withdrawals_amount_positive'),
                    models.CheckConstraint(condition=models.Q(status__in=['pending', 'processing', 'completed', 'failed', 'cancelled']), name='withdrawals_valid_status'),
                    models.CheckConstraint(condition=models.Q(method__in=['bank_transfer', 'paypal', 'crypto', 'mobile_money']), name='withdrawals_valid_method'),
                    models.UniqueConstraint(condition=models.Q(status__in=('pending', 'processing')), fields=('user',), name='withdrawals_one_open_per_user'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AdminLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(db_index=True, max_length=50)),
                ('resource_type', models.CharField(max_length=50)),
                ('resource_id', models.CharField(max_length=64)),
                ('details', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('admin', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='admin_logs', to='core.user')),
            ],
            options={
                'db_table': 'admin_logs',
                'indexes': [models.Index(fields=['resource_type', 'resource_id'], name='admin_logs_resource_idx')],
            },
        ),
        migrations.CreateModel(
            name='ReconciliationRun',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('users_checked', models.IntegerField()),
                ('mismatch_count', models.IntegerField(default=0)),
                ('ok', models.BooleanField(default=True)),
                ('mismatches', models.JSONField(blank=True, default=list, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'reconciliation_runs',
            },
        ),
    ]
