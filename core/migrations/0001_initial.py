import core.models
import core.validators
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


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
                ('email', models.EmailField(error_messages={'unique': 'A user with that email already exists.'}, max_length=254, unique=True, verbose_name='email address')),
                ('name', models.CharField(blank=True, default='', max_length=150, verbose_name='display name')),
                ('avatar_url', models.URLField(blank=True, default='', max_length=500, verbose_name='avatar')),
                ('verification_status', models.CharField(choices=[('unverified', 'Unverified'), ('pending', 'Pending'), ('verified', 'Verified')], default='unverified', max_length=10, verbose_name='verification status')),
                ('is_verified', models.BooleanField(default=False, help_text='Set when verification_status is verified.', verbose_name='verified')),
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
                    models.Index(fields=['email'], name='user_email_idx'),
                    models.Index(fields=['verification_status'], name='user_verification_idx'),
                ],
            },
            managers=[
                ('objects', core.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Listing',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200, verbose_name='title')),
                ('description', models.TextField(verbose_name='description')),
                ('price', models.DecimalField(decimal_places=2, help_text='Rent amount (must be greater than 0)', max_digits=12, verbose_name='price')),
                ('category', models.CharField(choices=[('Flat', 'Flat'), ('House', 'House'), ('PG', 'PG'), ('Shop', 'Shop'), ('Land', 'Land')], max_length=10, verbose_name='category')),
                ('images', models.JSONField(blank=True, default=list, help_text='Ordered list of image URLs', validators=[core.validators.validate_image_references], verbose_name='images')),
                ('bedrooms', models.PositiveIntegerField(blank=True, null=True, verbose_name='bedrooms')),
                ('bathrooms', models.PositiveIntegerField(blank=True, null=True, verbose_name='bathrooms')),
                ('area', models.PositiveIntegerField(blank=True, help_text='Area in sq ft', null=True, verbose_name='area')),
                ('contact_number', models.CharField(blank=True, default='', max_length=20, validators=[core.validators.validate_contact_number], verbose_name='contact number')),
                ('address', models.CharField(blank=True, default='', max_length=255, verbose_name='address')),
                ('city', models.CharField(blank=True, default='', max_length=100, verbose_name='city')),
                ('pincode', models.CharField(blank=True, default='', max_length=20, verbose_name='postal code')),
                ('latitude', models.FloatField(validators=[core.validators.validate_latitude], verbose_name='latitude')),
                ('longitude', models.FloatField(validators=[core.validators.validate_longitude], verbose_name='longitude')),
                ('is_featured', models.BooleanField(default=False, verbose_name='featured')),
                ('featured_expiry', models.DateTimeField(blank=True, null=True, verbose_name='featured until')),
                ('is_visible', models.BooleanField(default=True, verbose_name='visible')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('owner', models.ForeignKey(help_text='User who posted this listing', on_delete=django.db.models.deletion.CASCADE, related_name='listings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'listing',
                'verbose_name_plural': 'listings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['latitude', 'longitude'], name='listing_location_idx'),
                    models.Index(fields=['owner'], name='listing_owner_idx'),
                    models.Index(fields=['price'], name='listing_price_idx'),
                    models.Index(fields=['category'], name='listing_category_idx'),
                    models.Index(fields=['is_featured'], name='listing_featured_idx'),
                ],
            },
        ),
        migrations.AddField(
            model_name='user',
            name='saved_listings',
            field=models.ManyToManyField(blank=True, related_name='saved_by', to='core.listing'),
        ),
        migrations.CreateModel(
            name='ListingFeature',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tag', models.CharField(max_length=100, verbose_name='tag')),
                ('position', models.PositiveIntegerField(default=0, verbose_name='position')),
                ('listing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='feature_tags', to='core.listing')),
            ],
            options={
                'verbose_name': 'listing feature',
                'verbose_name_plural': 'listing features',
                'ordering': ['position', 'id'],
                'indexes': [
                    models.Index(fields=['tag', 'listing'], name='listing_feature_tag_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('last_message', models.TextField(blank=True, default='', verbose_name='last message')),
                ('last_message_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='last message at')),
                ('unread_counts', models.JSONField(blank=True, default=dict, verbose_name='unread counts')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('listing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conversations', to='core.listing')),
                ('participant_high', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conversations_as_high', to=settings.AUTH_USER_MODEL)),
                ('participant_low', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='conversations_as_low', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'conversation',
                'verbose_name_plural': 'conversations',
                'ordering': ['-last_message_at'],
                'indexes': [
                    models.Index(fields=['participant_low', 'last_message_at'], name='conversation_low_recent_idx'),
                    models.Index(fields=['participant_high', 'last_message_at'], name='conversation_high_recent_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('participant_low', 'participant_high', 'listing'), name='unique_conversation_per_pair_and_listing'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('content', models.TextField(verbose_name='content')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='core.conversation')),
                ('read_by', models.ManyToManyField(blank=True, related_name='read_messages', to=settings.AUTH_USER_MODEL)),
                ('sender', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sent_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'message',
                'verbose_name_plural': 'messages',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['conversation', 'created_at'], name='message_conv_created_idx'),
                ],
            },
        ),
    ]
