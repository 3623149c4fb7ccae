from __future__ import annotations

from datetime import date
from decimal import Decimal
from itertools import count

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockpro.auth import Principal
from stockpro.models import Base, Product, User, UserRole, UserStatus
from stockpro.security.tokens import principal_from_user

_emails = count(1)

TODAY = date(2026, 3, 14)


def make_engine(url: str = 'sqlite://'):
    if url == 'sqlite://':
        engine = create_engine(url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    else:
        engine = create_engine(url, connect_args={'check_same_thread': False})
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)


def add_user(db: Session, *, role: UserRole = UserRole.USER, name: str | None = None, **extra) -> User:
    n = next(_emails)
    user = User(
        name=name or f'User {n}',
        email=extra.pop('email', f'user{n}@stockpro.com'),
        password_hash=extra.pop('password_hash', 'not-a-real-hash'),
        role=role,
        status=extra.pop('status', UserStatus.ACTIVE),
        **extra,
    )
    db.add(user)
    db.flush()
    return user


def principal_for(user: User) -> Principal:
    return principal_from_user(user)


def add_product(db: Session, *, name: str = 'Paracétamol 500mg', quantity: int = 0, **extra) -> Product:
    product = Product(
        name=name,
        quantity=quantity,
        price=extra.pop('price', Decimal('2.50')),
        critical_level=extra.pop('critical_level', 10),
        **extra,
    )
    db.add(product)
    db.flush()
    return product


def reload_product(db: Session, product_id: int) -> Product:
    db.expire_all()
    return db.get(Product, product_id)


class DatabaseTestCase:
    """Mixin giving each test a fresh in-memory database and session."""

    def setUp(self) -> None:
        super().setUp()
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        self.admin = add_user(self.db, role=UserRole.ADMIN, name='Admin')
        self.user = add_user(self.db, role=UserRole.USER, name='Agent')
        self.db.commit()
        self.admin_principal = principal_for(self.admin)
        self.user_principal = principal_for(self.user)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()
        super().tearDown()
