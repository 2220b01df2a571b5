"""
Synthetic Data Generator - Seed Script
Generates demo users, firms, connections, claims and an affiliate partner.
Run with: python -m data.generator.seed (from backend/)
"""
import random
from datetime import date, timedelta
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from flexia.core import hash_password
from flexia.core.permissions import Actor
from flexia.db import Base, SessionLocal, engine
from flexia.db.base import utcnow
from flexia.db.models import (
    AffiliatePartner,
    AffiliateStatus,
    Claim,
    ClaimPriority,
    ClaimStatus,
    ClaimType,
    ConnectionStatus,
    Firm,
    FirmConnection,
    User,
    UserRole,
)
from flexia.services.affiliate import generate_affiliate_code
from flexia.services.claim_lifecycle import ClaimService

# Seed for reproducibility
random.seed(42)


# Sample data
FIRST_NAMES = [
    "James", "Mary", "John", "Patricia", "Robert", "Jennifer", "Michael", "Linda",
    "William", "Elizabeth", "David", "Barbara", "Richard", "Susan", "Joseph", "Jessica",
]

LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Rodriguez", "Martinez", "Hernandez", "Lopez", "Wilson", "Anderson", "Taylor",
]

CITIES = [
    ("Houston", "TX", "77001"), ("Dallas", "TX", "75201"), ("San Antonio", "TX", "78201"),
    ("Miami", "FL", "33101"), ("Tampa", "FL", "33601"), ("New Orleans", "LA", "70112"),
    ("Oklahoma City", "OK", "73101"), ("Denver", "CO", "80201"),
]

FIRM_NAMES = [
    "Gulf Coast Claims Group", "Lone Star Adjusting", "Sunshine Catastrophe Services",
]

CLAIM_TITLES = {
    ClaimType.PROPERTY_DAMAGE: ["Hail damage to roof", "Fallen tree on garage"],
    ClaimType.WATER_DAMAGE: ["Burst pipe in kitchen", "Basement flooding"],
    ClaimType.FIRE_DAMAGE: ["Kitchen grease fire", "Electrical fire in attic"],
    ClaimType.AUTO_COLLISION: ["Rear-end collision at light", "Parking lot sideswipe"],
    ClaimType.NATURAL_DISASTER: ["Hurricane wind damage", "Tornado debris damage"],
}

DEMO_PASSWORD = "demo12345"


def _person(i: int):
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    return first, last, f"{first.lower()}.{last.lower()}{i}@flexia.demo"


def generate_users(db: Session, adjusters: int = 12) -> List[User]:
    """Generate the admin, one firm admin per firm and a pool of adjusters."""
    users = [
        User(
            email="admin@flexia.demo",
            password_hash=hash_password(DEMO_PASSWORD),
            first_name="System",
            last_name="Admin",
            role=UserRole.ADMIN,
        )
    ]

    for i in range(len(FIRM_NAMES)):
        first, last, email = _person(i)
        users.append(User(
            email=f"owner{i}@flexia.demo",
            password_hash=hash_password(DEMO_PASSWORD),
            first_name=first,
            last_name=last,
            role=UserRole.FIRM_ADMIN,
        ))

    for i in range(adjusters):
        first, last, email = _person(100 + i)
        users.append(User(
            email=email,
            password_hash=hash_password(DEMO_PASSWORD),
            first_name=first,
            last_name=last,
            role=UserRole.ADJUSTER,
            license_number=f"{random.choice(CITIES)[1]}-{random.randint(100000, 999999)}",
        ))

    db.add_all(users)
    db.commit()
    return users


def generate_firms(db: Session, users: List[User]) -> List[Firm]:
    """One firm per firm admin."""
    owners = [u for u in users if u.role == UserRole.FIRM_ADMIN]
    firms = []
    for owner, name in zip(owners, FIRM_NAMES):
        city, state, _ = random.choice(CITIES)
        firm = Firm(
            name=name,
            email=f"dispatch@{name.split()[0].lower()}.demo",
            city=city,
            state=state,
            description=f"{name} handles residential and auto claims across {state}.",
            owner_id=owner.user_id,
        )
        db.add(firm)
        firms.append(firm)
    db.commit()
    return firms


def generate_connections(db: Session, users: List[User], firms: List[Firm]) -> List[FirmConnection]:
    """Each adjuster is connected to one or two firms; a few requests stay pending."""
    adjusters = [u for u in users if u.role == UserRole.ADJUSTER]
    connections = []
    for adjuster in adjusters:
        for firm in random.sample(firms, random.randint(1, min(2, len(firms)))):
            approved = random.random() < 0.8
            connection = FirmConnection(
                adjuster_id=adjuster.user_id,
                firm_id=firm.firm_id,
                status=ConnectionStatus.APPROVED if approved else ConnectionStatus.PENDING,
                message="Licensed and available for field inspections",
                connected_at=utcnow() if approved else None,
            )
            db.add(connection)
            connections.append(connection)
    db.commit()
    return connections


def generate_claims(db: Session, firms: List[Firm], count: int = 30) -> List[Claim]:
    """Generate AVAILABLE claims posted by the demo firms."""
    claims = []
    year = utcnow().year
    for i in range(count):
        claim_type = random.choice(list(CLAIM_TITLES))
        city, state, zip_code = random.choice(CITIES)
        incident_date = date.today() - timedelta(days=random.randint(1, 60))
        estimated = Decimal(random.randint(1500, 60000))

        claim = Claim(
            claim_number=f"CLM-{year}-{i + 1:04d}",
            title=random.choice(CLAIM_TITLES[claim_type]),
            type=claim_type,
            status=ClaimStatus.AVAILABLE,
            priority=random.choice(list(ClaimPriority)),
            estimated_value=estimated,
            adjuster_fee=(estimated * Decimal("0.05")).quantize(Decimal("0.01")),
            address=f"{random.randint(100, 9999)} {random.choice(LAST_NAMES)} St",
            city=city,
            state=state,
            zip_code=zip_code,
            incident_date=incident_date,
            reported_date=utcnow(),
            deadline=incident_date + timedelta(days=random.randint(14, 45)),
            firm_id=random.choice(firms).firm_id,
        )
        db.add(claim)
        claims.append(claim)
    db.commit()
    return claims


def assign_some_claims(db: Session, claims: List[Claim], share: float = 0.3) -> int:
    """Self-assign a share of claims through the lifecycle service so fees are recorded."""
    approved = db.query(FirmConnection).filter(FirmConnection.status == ConnectionStatus.APPROVED).all()
    by_firm: dict = {}
    for connection in approved:
        by_firm.setdefault(connection.firm_id, []).append(connection.adjuster_id)

    service = ClaimService(db)
    assigned = 0
    for claim in random.sample(claims, int(len(claims) * share)):
        candidates = by_firm.get(claim.firm_id)
        if not candidates:
            continue
        adjuster_id = random.choice(candidates)
        service.assign(claim.claim_id, Actor(user_id=adjuster_id, role=UserRole.ADJUSTER))
        assigned += 1
    return assigned


def generate_affiliate(db: Session, users: List[User]) -> AffiliatePartner:
    """An ACTIVE affiliate partner owned by the first adjuster."""
    owner = next(u for u in users if u.role == UserRole.ADJUSTER)
    partner = AffiliatePartner(
        user_id=owner.user_id,
        affiliate_code=generate_affiliate_code(),
        company_name="Storm Leads Referral Network",
        status=AffiliateStatus.ACTIVE,
    )
    db.add(partner)
    db.commit()
    return partner


def run_seed(db: Session = None):
    """Run the complete seed process."""
    print("Starting database seed...")

    own_session = db is None
    if own_session:
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
    try:
        print("Generating users...")
        users = generate_users(db)
        print(f"  Created {len(users)} users")

        print("Generating firms...")
        firms = generate_firms(db, users)
        print(f"  Created {len(firms)} firms")

        print("Generating connections...")
        connections = generate_connections(db, users, firms)
        print(f"  Created {len(connections)} connections")

        print("Generating claims...")
        claims = generate_claims(db, firms)
        print(f"  Created {len(claims)} claims, assigned {assign_some_claims(db, claims)}")

        print("Generating affiliate partner...")
        partner = generate_affiliate(db, users)
        print(f"  Affiliate code {partner.affiliate_code}")

        print("\nDatabase seeded successfully!")
        print("\nDemo credentials:")
        print(f"  Admin: admin@flexia.demo / {DEMO_PASSWORD}")
        print(f"  Firm admin: owner0@flexia.demo / {DEMO_PASSWORD}")
        print(f"  Adjuster: any generated adjuster / {DEMO_PASSWORD}")

    finally:
        if own_session:
            db.close()


if __name__ == "__main__":
    run_seed()
