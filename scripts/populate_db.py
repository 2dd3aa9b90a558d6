import io
import os
import random
import sys

import django
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'campus_exchange.settings')
django.setup()

from django.conf import settings
from django.core.files.base import ContentFile
from PIL import Image

from exchange.catalog import ListingCatalog
from exchange.exceptions import ExchangeError
from exchange.models import CAMPUS_CHOICES, Item, User
from exchange.transactions import TransactionEngine

fake = Faker()

ITEM_TITLES = {
    'books': ["Calculus Textbook", "Engineering Drawing Manual", "Biology Reviewer", "Novel Collection"],
    'electronics': ["Scientific Calculator", "USB Flash Drive", "Desk Lamp", "Wireless Mouse"],
    'clothing': ["PE Uniform", "Lab Gown", "Rain Jacket", "School Shoes"],
    'supplies': ["Drawing Set", "Bond Paper Ream", "Art Materials", "Notebook Bundle"],
    'equipment': ["Lab Goggles", "Dissecting Kit", "T-Square", "Multimeter"],
    'furniture': ["Study Chair", "Folding Table", "Bookshelf", "Electric Fan"],
    'sports': ["Volleyball", "Badminton Racket", "Yoga Mat", "Basketball"],
    'others': ["Umbrella", "Water Jug", "Extension Cord", "Dorm Organizer"],
}

MEETUP_LOCATIONS = [settings.DEFAULT_MEETUP_LOCATION, "Library Entrance", "Main Gate", "Canteen"]


def sample_image(name):
    """A small solid-colour PNG, enough for a listing photo."""
    buffer = io.BytesIO()
    color = tuple(random.randint(0, 255) for _ in range(3))
    Image.new('RGB', (400, 400), color).save(buffer, format='PNG')
    return ContentFile(buffer.getvalue(), name=name)


def institutional_email(first_name, last_name):
    local = f"{first_name}.{last_name}.{fake.unique.random_int(100, 9999)}".lower().replace(' ', '')
    return f"{local}{settings.INSTITUTION_EMAIL_DOMAIN}"


def create_users(num_members=20, num_unverified=5):
    print(f"Creating {num_members} verified members and {num_unverified} unverified users...")

    members = []
    for index in range(num_members + num_unverified):
        first_name = fake.first_name()
        last_name = fake.last_name()
        email = institutional_email(first_name, last_name)
        verified = index < num_members
        user = User.objects.create_user(
            username=email,
            email=email,
            password='password123',
            first_name=first_name,
            last_name=last_name,
            student_id=f"{random.randint(2019, 2025)}-{random.randint(10000, 99999)}",
            campus=random.choice(CAMPUS_CHOICES)[0],
            user_type=random.choices(['student', 'faculty', 'staff'], weights=[8, 1, 1])[0],
            is_verified=verified,
            verification_status='approved' if verified else 'none',
        )
        if verified:
            members.append(user)

    admin_email = f"admin{settings.INSTITUTION_EMAIL_DOMAIN}"
    if not User.objects.filter(email=admin_email).exists():
        User.objects.create_user(
            username=admin_email,
            email=admin_email,
            password='password123',
            first_name='Campus',
            last_name='Admin',
            role='admin',
            is_staff=True,
            is_verified=True,
            verification_status='approved',
        )

    print(f"Created {len(members)} verified members.")
    return members


def create_items(members):
    print("Creating item listings...")
    catalog = ListingCatalog()
    items = []

    for member in members:
        # Each member lists 0-3 items, inside the monthly quota
        for _ in range(random.randint(0, 3)):
            category = random.choice(list(ITEM_TITLES))
            fields = {
                'title': random.choice(ITEM_TITLES[category]),
                'description': fake.paragraph(),
                'category': category,
                'condition': random.choice(Item.CONDITION_CHOICES)[0],
                'campus': member.campus,
                'meetup_location': random.choice(MEETUP_LOCATIONS),
            }
            images = [sample_image(f"{category}_{n}.png") for n in range(random.randint(1, 3))]
            items.append(catalog.create(member, fields, images))

    print(f"Created {len(items)} items.")
    return items


def create_transactions(members, items):
    print("Creating transactions...")
    engine = TransactionEngine()
    created = 0

    for item in random.sample(items, len(items) // 2):
        candidates = [m for m in members if m.pk != item.owner_id]
        if not candidates:
            continue

        receiver = random.choice(candidates)
        try:
            txn = engine.request(item, receiver)
            outcome = random.choice(['requested', 'approved', 'meeting', 'completed', 'cancelled'])

            if outcome in ('approved', 'meeting', 'completed'):
                txn = engine.approve(txn, item.owner)
            if outcome in ('meeting', 'completed'):
                txn = engine.start_meeting(txn, receiver)
            if outcome == 'completed':
                txn = engine.complete(txn, item.owner)
            if outcome == 'cancelled':
                txn = engine.cancel(txn, receiver)
        except ExchangeError as e:
            print(f"  Skipped item {item.pk}: {e}")
            continue

        created += 1

    print(f"Created {created} transactions.")


def main():
    print("Starting database population...")

    members = create_users(num_members=20, num_unverified=5)
    items = create_items(members)
    create_transactions(members, items)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
