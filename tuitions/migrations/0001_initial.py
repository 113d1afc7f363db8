import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import tuitions.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this to deactivate account instead of deleting.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Enter a valid email address.', max_length=254, unique=True, verbose_name='email address')),
                ('phone_number', models.CharField(blank=True, default='', help_text='Optional. Enter phone number in international format.', max_length=20, validators=[tuitions.validators.validate_phone_number], verbose_name='phone number')),
                ('user_type', models.CharField(choices=[('student', 'Student'), ('tutor', 'Tutor')], default='student', help_text='Whether the account posts tuitions (student) or applies to them (tutor).', max_length=10, verbose_name='user type')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['user_type'], name='user_type_idx')],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Listing',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('subject', models.CharField(max_length=120, validators=[tuitions.validators.validate_not_blank], verbose_name='subject')),
                ('class_name', models.CharField(max_length=60, validators=[tuitions.validators.validate_not_blank], verbose_name='class')),
                ('medium', models.CharField(blank=True, default='', max_length=60, verbose_name='medium')),
                ('location', models.CharField(max_length=255, validators=[tuitions.validators.validate_not_blank], verbose_name='location')),
                ('schedule', models.CharField(blank=True, default='', max_length=255, verbose_name='schedule')),
                ('phone', models.CharField(blank=True, default='', max_length=20, validators=[tuitions.validators.validate_phone_number], verbose_name='contact phone')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('budget', models.DecimalField(decimal_places=2, help_text='Salary the student offers per month', max_digits=10, validators=[tuitions.validators.validate_positive_amount], verbose_name='monthly budget')),
                ('status', models.CharField(choices=[('pending', 'Pending moderation'), ('approved', 'Open for applications'), ('rejected', 'Rejected'), ('hired', 'Tutor hired')], default='pending', max_length=20, verbose_name='status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='approved at')),
                ('rejected_at', models.DateTimeField(blank=True, null=True, verbose_name='rejected at')),
                ('hired_at', models.DateTimeField(blank=True, null=True, verbose_name='hired at')),
                ('withdrawn_at', models.DateTimeField(blank=True, null=True, verbose_name='withdrawn at')),
                ('owner', models.ForeignKey(help_text='Student who posted the tuition request', on_delete=django.db.models.deletion.PROTECT, related_name='listings', to=settings.AUTH_USER_MODEL)),
                ('hired_tutor', models.ForeignKey(blank=True, help_text='Tutor bound to this listing by a confirmed payment', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='hired_listings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'listing',
                'verbose_name_plural': 'listings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['owner'], name='listing_owner_idx'),
                    models.Index(fields=['status'], name='listing_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(
                        condition=(
                            models.Q(('hired_tutor__isnull', False), ('status', 'hired'))
                            | models.Q(models.Q(('status', 'hired'), _negated=True), ('hired_tutor__isnull', True))
                        ),
                        name='listing_hired_tutor_iff_hired',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='Application',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('qualifications', models.TextField(validators=[tuitions.validators.validate_not_blank], verbose_name='qualifications')),
                ('experience', models.TextField(blank=True, default='', verbose_name='experience')),
                ('expected_salary', models.DecimalField(decimal_places=2, max_digits=10, validators=[tuitions.validators.validate_positive_amount], verbose_name='expected salary')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('withdrawn', 'Withdrawn')], default='pending', max_length=20, verbose_name='status')),
                ('applied_at', models.DateTimeField(auto_now_add=True, verbose_name='applied at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('decided_at', models.DateTimeField(blank=True, null=True, verbose_name='decided at')),
                ('listing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to='tuitions.listing')),
                ('tutor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'application',
                'verbose_name_plural': 'applications',
                'ordering': ['-applied_at'],
                'indexes': [
                    models.Index(fields=['listing', 'status'], name='application_listing_idx'),
                    models.Index(fields=['tutor'], name='application_tutor_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('status', 'withdrawn'), _negated=True),
                        fields=('listing', 'tutor'),
                        name='unique_active_application_per_tutor',
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(('status', 'approved')),
                        fields=('listing',),
                        name='single_approved_application_per_listing',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='CheckoutSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('session_id', models.CharField(max_length=255, unique=True, verbose_name='gateway session id')),
                ('quoted_amount', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='quoted amount')),
                ('currency', models.CharField(max_length=3, verbose_name='currency')),
                ('url', models.URLField(blank=True, default='', max_length=2048, verbose_name='checkout url')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('listing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='checkout_sessions', to='tuitions.listing')),
                ('application', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='checkout_sessions', to='tuitions.application')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('payee', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'checkout session',
                'verbose_name_plural': 'checkout sessions',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_ref', models.CharField(max_length=255, unique=True, verbose_name='transaction reference')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10, validators=[tuitions.validators.validate_positive_amount], verbose_name='amount')),
                ('currency', models.CharField(max_length=3, verbose_name='currency')),
                ('status', models.CharField(choices=[('completed', 'Completed')], default='completed', max_length=20, verbose_name='status')),
                ('checkout_session_id', models.CharField(blank=True, default='', max_length=255, verbose_name='gateway session id')),
                ('paid_at', models.DateTimeField(verbose_name='paid at')),
                ('listing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='tuitions.listing')),
                ('application', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='payment', to='tuitions.application')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_made', to=settings.AUTH_USER_MODEL)),
                ('payee', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'payment',
                'verbose_name_plural': 'payments',
                'ordering': ['-paid_at'],
                'indexes': [
                    models.Index(fields=['payer'], name='payment_payer_idx'),
                    models.Index(fields=['payee'], name='payment_payee_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='payment_amount_positive'),
                ],
            },
        ),
    ]
