import logging
from decimal import Decimal

from sqlalchemy import select

from stockpro.config import settings
from stockpro.db import SessionLocal, engine
from stockpro.logging_config import configure_logging
from stockpro.models import Base, Category, Product, User, UserRole, UserStatus
from stockpro.security.passwords import hash_password

logger = logging.getLogger(__name__)

CATEGORIES = [
    'Médicaments',
    'Fournitures Médicales',
    'Équipements',
    'Consommables',
    'Vaccins',
    'Tests Diagnostiques',
    "Produits d'Hygiène",
    'Autres',
]

SAMPLE_PRODUCTS = [
    ('Paracétamol 500mg', 'Médicaments', 150, '2.50'),
    ('Amoxicilline 500mg', 'Médicaments', 80, '5.00'),
    ('Ibuprofène 200mg', 'Médicaments', 100, '3.75'),
    ("Gants d'examen latex L", 'Fournitures Médicales', 500, '1.20'),
    ('Seringues 10ml', 'Fournitures Médicales', 300, '0.50'),
    ('Aiguilles 23G', 'Fournitures Médicales', 400, '0.30'),
    ('Tensiomètre électronique', 'Équipements', 5, '45.00'),
    ('Thermomètre numérique', 'Équipements', 10, '12.00'),
    ('Alcool 70%', 'Consommables', 50, '4.50'),
    ('Coton hydrophile', 'Consommables', 100, '2.00'),
    ('Vaccin RRO', 'Vaccins', 75, '8.50'),
]

DEFAULT_ADMIN_EMAIL = 'admin@stockpro.com'
DEFAULT_ADMIN_PASSWORD = 'admin123'


def seed() -> None:
    Base.metadata.create_all(engine)
    with SessionLocal() as db:
        categories = {category.name: category for category in db.execute(select(Category)).scalars()}
        for name in CATEGORIES:
            if name not in categories:
                category = Category(name=name)
                db.add(category)
                categories[name] = category
        db.flush()

        admin = db.execute(select(User).where(User.email == DEFAULT_ADMIN_EMAIL)).scalar_one_or_none()
        if not admin:
            db.add(
                User(
                    name='Administrateur',
                    email=DEFAULT_ADMIN_EMAIL,
                    password_hash=hash_password(DEFAULT_ADMIN_PASSWORD),
                    role=UserRole.ADMIN,
                    status=UserStatus.ACTIVE,
                )
            )

        existing_names = set(db.execute(select(Product.name)).scalars())
        for name, category_name, quantity, price in SAMPLE_PRODUCTS:
            if name in existing_names:
                continue
            db.add(
                Product(
                    name=name,
                    category=category_name,
                    category_id=categories[category_name].id,
                    quantity=quantity,
                    price=Decimal(price),
                    critical_level=settings.default_critical_level,
                )
            )

        db.commit()


def main() -> None:
    configure_logging(settings.log_level)
    seed()
    logger.info('Seed data inserted/verified.')


if __name__ == '__main__':
    main()
