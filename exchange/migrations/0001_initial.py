import django.contrib.auth.models
import django.contrib.auth.validators
import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


CAMPUS_CHOICES = [
    ('main', 'Main Campus'),
    ('bongabong', 'Bongabong'),
    ('victoria', 'Victoria'),
    ('pinamalayan', 'Pinamalayan'),
]


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
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, help_text='Required. Institutional email address.', max_length=254, unique=True, verbose_name='email address')),
                ('student_id', models.CharField(blank=True, default='', help_text='Student or employee ID, e.g. 2024-12345.', max_length=30, verbose_name='institutional ID')),
                ('campus', models.CharField(choices=CAMPUS_CHOICES, default='main', max_length=20, verbose_name='campus')),
                ('user_type', models.CharField(choices=[('student', 'Student'), ('faculty', 'Faculty'), ('staff', 'Staff')], default='student', max_length=10, verbose_name='user type')),
                ('is_verified', models.BooleanField(default=False, help_text='True once the latest identity verification was approved.', verbose_name='verified status')),
                ('verification_status', models.CharField(choices=[('none', 'Not Submitted'), ('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='none', max_length=10, verbose_name='verification status')),
                ('points', models.PositiveIntegerField(default=0, help_text='Reward points earned from completed exchanges.', verbose_name='points')),
                ('tier', models.CharField(choices=[('Bronze Contributor', 'Bronze Contributor'), ('Silver Contributor', 'Silver Contributor'), ('Gold Community Champion', 'Gold Community Champion')], default='Bronze Contributor', max_length=30, verbose_name='tier')),
                ('role', models.CharField(choices=[('user', 'User'), ('admin', 'Administrator')], default='user', max_length=10, verbose_name='role')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['email'], name='exchange_us_email_4d6e2b_idx'),
                    models.Index(fields=['is_verified'], name='exchange_us_is_veri_1f3a0c_idx'),
                    models.Index(fields=['points'], name='exchange_us_points_8b2c71_idx'),
                ],
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255, verbose_name='title')),
                ('description', models.TextField(verbose_name='description')),
                ('category', models.CharField(choices=[('books', 'Books'), ('electronics', 'Electronics'), ('clothing', 'Clothing'), ('supplies', 'School Supplies'), ('equipment', 'Equipment'), ('furniture', 'Furniture'), ('sports', 'Sports'), ('others', 'Others')], default='others', max_length=20, verbose_name='category')),
                ('condition', models.CharField(choices=[('like-new', 'Like New'), ('excellent', 'Excellent'), ('good', 'Good'), ('fair', 'Fair')], default='good', max_length=20, verbose_name='condition')),
                ('campus', models.CharField(choices=CAMPUS_CHOICES, default='main', max_length=20, verbose_name='campus')),
                ('meetup_location', models.CharField(default='Arawatan Corner', max_length=255, verbose_name='meetup location')),
                ('status', models.CharField(choices=[('pending_review', 'Pending Review'), ('active', 'Active'), ('reserved', 'Reserved'), ('completed', 'Completed'), ('removed', 'Removed')], default='pending_review', max_length=20, verbose_name='status')),
                ('is_screened', models.BooleanField(default=False, help_text='Set once the content screener passed the listing.', verbose_name='screened')),
                ('views_count', models.PositiveIntegerField(default=0, verbose_name='views')),
                ('posted_at', models.DateTimeField(blank=True, null=True, verbose_name='posted at')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'item',
                'verbose_name_plural': 'items',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['owner', 'created_at'], name='exchange_it_owner_i_5a9e3d_idx'),
                    models.Index(fields=['status'], name='exchange_it_status_c7d410_idx'),
                    models.Index(fields=['category'], name='exchange_it_categor_2e8f59_idx'),
                    models.Index(fields=['campus'], name='exchange_it_campus_9b1d62_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ItemImage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('image_path', models.CharField(max_length=255, verbose_name='image path')),
                ('is_primary', models.BooleanField(default=False, verbose_name='primary')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='order')),
                ('uploaded_at', models.DateTimeField(auto_now_add=True, verbose_name='uploaded at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='images', to='exchange.item')),
            ],
            options={
                'verbose_name': 'item image',
                'verbose_name_plural': 'item images',
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(max_length=50, verbose_name='type')),
                ('title', models.CharField(max_length=255, verbose_name='title')),
                ('message', models.TextField(verbose_name='message')),
                ('link', models.CharField(blank=True, default='', max_length=255, verbose_name='link')),
                ('related_id', models.PositiveBigIntegerField(blank=True, null=True, verbose_name='related id')),
                ('related_type', models.CharField(blank=True, default='', max_length=50, verbose_name='related type')),
                ('read_at', models.DateTimeField(blank=True, null=True, verbose_name='read at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('recipient', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'notification',
                'verbose_name_plural': 'notifications',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['recipient', 'read_at'], name='exchange_no_recipie_6c0b84_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('requested', 'Requested'), ('approved', 'Approved'), ('meeting', 'Meeting'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='requested', max_length=20, verbose_name='status')),
                ('meetup_location', models.CharField(default='Arawatan Corner', max_length=255, verbose_name='meetup location')),
                ('proof_photo_path', models.CharField(blank=True, default='', max_length=255, verbose_name='proof photo path')),
                ('requested_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='requested at')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='approved at')),
                ('meeting_at', models.DateTimeField(blank=True, null=True, verbose_name='meeting started at')),
                ('completed_at', models.DateTimeField(blank=True, null=True, verbose_name='completed at')),
                ('cancelled_at', models.DateTimeField(blank=True, null=True, verbose_name='cancelled at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('donor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='donor_transactions', to=settings.AUTH_USER_MODEL)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transactions', to='exchange.item')),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='receiver_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'transaction',
                'verbose_name_plural': 'transactions',
                'ordering': ['-requested_at', '-id'],
                'indexes': [
                    models.Index(fields=['item', 'status'], name='exchange_tr_item_id_3f7a25_idx'),
                    models.Index(fields=['donor'], name='exchange_tr_donor_i_a4e8c1_idx'),
                    models.Index(fields=['receiver'], name='exchange_tr_receive_0d5b97_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Verification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('id_image_path', models.CharField(max_length=255, verbose_name='ID image path')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=12, verbose_name='status')),
                ('ai_confidence', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(99.9)], verbose_name='trust score')),
                ('rejection_reason', models.CharField(blank=True, default='', max_length=500, verbose_name='rejection reason')),
                ('submitted_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='submitted at')),
                ('reviewed_at', models.DateTimeField(blank=True, null=True, verbose_name='reviewed at')),
                ('reviewed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reviewed_verifications', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='verifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'verification',
                'verbose_name_plural': 'verifications',
                'ordering': ['-submitted_at', '-id'],
                'get_latest_by': ['submitted_at', 'id'],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='exchange_ve_user_id_7e2d43_idx'),
                ],
            },
        ),
    ]
