import os
import sys
import django
import random
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'rent_on_map.settings')
django.setup()

from core.models import User, Listing, Conversation
from core.query import FURNISHING_TAGS

fake = Faker('en_IN')

# Rough city centres; listings are scattered within ~5 km of each
CITIES = {
    'Delhi': (28.6139, 77.2090),
    'Mumbai': (19.0760, 72.8777),
    'Bengaluru': (12.9716, 77.5946),
    'Pune': (18.5204, 73.8567),
}

EXTRA_FEATURES = ['Parking', 'Lift', 'Power Backup', 'Gym', 'Balcony', 'Pet Friendly']

PRICE_RANGES = {
    'Flat': (12000, 60000),
    'House': (25000, 150000),
    'PG': (5000, 15000),
    'Shop': (15000, 90000),
    'Land': (10000, 40000),
}


def create_users(num_users=15):
    print(f"Creating {num_users} users...")

    users = []
    for _ in range(num_users):
        user, _created = User.objects.sync_from_identity(
            email=fake.unique.email(),
            name=fake.name(),
        )
        user.verification_status = random.choice([
            User.VERIFICATION_UNVERIFIED,
            User.VERIFICATION_PENDING,
            User.VERIFICATION_VERIFIED,
        ])
        user.save(update_fields=['verification_status'])
        users.append(user)

    print(f"Created {len(users)} users.")
    return users


def create_listings(users, per_city=25):
    print("Creating listings...")
    listings = []

    for city, (lat, lng) in CITIES.items():
        for _ in range(per_city):
            category = random.choice(list(PRICE_RANGES.keys()))
            low, high = PRICE_RANGES[category]

            listing = Listing.objects.create(
                owner=random.choice(users),
                title=f"{fake.word().title()} {category} in {city}",
                description=fake.paragraph(nb_sentences=4),
                price=Decimal(random.randrange(low, high, 500)),
                category=category,
                bedrooms=random.randint(1, 4) if category in ('Flat', 'House') else None,
                bathrooms=random.randint(1, 3) if category in ('Flat', 'House') else None,
                area=random.randint(300, 2500),
                address=fake.street_address(),
                city=city,
                pincode=fake.postcode(),
                latitude=lat + random.uniform(-0.05, 0.05),
                longitude=lng + random.uniform(-0.05, 0.05),
            )

            features = [random.choice(list(FURNISHING_TAGS.values()))]
            features.append(random.choice(['Family', 'Bachelors']))
            features.extend(random.sample(EXTRA_FEATURES, random.randint(0, 3)))
            listing.set_features(features)

            # About one in ten listings is promoted, some already lapsed
            if random.random() < 0.1:
                listing.is_featured = True
                listing.featured_expiry = timezone.now() + timedelta(days=random.randint(-3, 30))
                listing.save(update_fields=['is_featured', 'featured_expiry'])

            listings.append(listing)

    print(f"Created {len(listings)} listings.")
    return listings


def create_saved_listings(users, listings):
    print("Creating saved listings...")
    count = 0
    for user in users:
        for listing in random.sample(listings, random.randint(0, 5)):
            if user.toggle_saved_listing(listing):
                count += 1
    print(f"Saved {count} listings.")


def create_conversations(users, listings, num_conversations=20):
    print("Creating conversations...")
    conversations = []

    for _ in range(num_conversations):
        listing = random.choice(listings)
        viewers = [user for user in users if user.pk != listing.owner_id]
        viewer = random.choice(viewers)

        conversation, created = Conversation.objects.start_or_get(
            viewer=viewer,
            listing=listing,
            owner=listing.owner,
        )
        if not created:
            continue

        speakers = [viewer, listing.owner]
        for turn in range(random.randint(1, 6)):
            conversation.append_message(speakers[turn % 2], fake.sentence())

        conversations.append(conversation)

    print(f"Created {len(conversations)} conversations.")
    return conversations


def main():
    print("Starting database population...")

    users = create_users(num_users=15)
    listings = create_listings(users)
    create_saved_listings(users, listings)
    create_conversations(users, listings)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
