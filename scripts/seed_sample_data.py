#!/usr/bin/env python3
"""
Fill a Balanghay database with sample data for demos and manual testing.

Everything goes through the repositories, so copies and loans stay
consistent: borrowed copies are Checked Out, returned ones are back on
their shelf (or Damaged/Lost), and some open loans are already overdue.

Usage:
    python scripts/seed_sample_data.py [--books 40] [--members 15] [--database-url URL]
"""

import argparse
import logging
import random
from datetime import date, timedelta

from faker import Faker

from balanghay.database import (
    BookRepository,
    CopyRepository,
    LoanRepository,
    MemberRepository,
    ShelfRepository,
    get_db_manager,
    migrate,
)
from balanghay.enums import ReturnConditionEnum
from balanghay.models import (
    BookCreate,
    BorrowRequest,
    CopyTemplate,
    LoanFilters,
    MemberCreate,
    ShelfCreate,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

fake = Faker()
Faker.seed(42)
random.seed(42)

SHELVES = [
    ("Filipiniana A", "FIL-A", "Filipiniana"),
    ("Fiction A", "FIC-A", "Fiction"),
    ("Science", "SCI-A", "Science"),
    ("History", "HIS-A", "History"),
    ("Children", "CHI-A", "Children"),
]

COVER_COLORS = ["#6B4226", "#1F4E79", "#7B2D26", "#2E5E4E", "#5B3A8C", "#8C6D1F"]


def generate_isbn13() -> str:
    digits = f"978{random.randint(0, 9)}{random.randint(1000, 9999)}{random.randint(1000, 9999)}"
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(digits))
    return digits + str((10 - total % 10) % 10)


def seed(session, num_books: int, num_members: int) -> None:
    shelves = [
        ShelfRepository(session).create_shelf(
            ShelfCreate(
                name=name,
                code=code,
                section=section,
                location=f"{fake.random_element(['Ground', 'Second'])} floor",
                capacity=200,
            )
        )
        for name, code, section in SHELVES
    ]

    books_repo = BookRepository(session)
    copies_repo = CopyRepository(session)
    copy_ids = []
    for _ in range(num_books):
        shelf = random.choice(shelves)
        book = books_repo.create_book(
            BookCreate(
                title=fake.catch_phrase().title(),
                author=fake.name(),
                isbn=generate_isbn13(),
                category=shelf.section,
                publisher=fake.company(),
                publish_year=random.randint(1950, date.today().year),
                description=fake.paragraph(nb_sentences=3),
                cover_color=random.choice(COVER_COLORS),
            )
        )
        copies = copies_repo.generate_copies(
            book.id,
            random.randint(1, 4),
            CopyTemplate(
                shelf_id=shelf.id,
                acquisition_date=fake.date_between(start_date="-5y", end_date="today"),
            ),
        )
        copy_ids.extend(copy.id for copy in copies)
    logger.info("Created %d books with %d copies", num_books, len(copy_ids))

    members_repo = MemberRepository(session)
    members = [
        members_repo.create_member(
            MemberCreate(
                name=fake.name(),
                email=fake.unique.email(),
                phone=fake.phone_number()[:50],
                pin=f"{random.randint(0, 999999):06d}",
            )
        )
        for _ in range(num_members)
    ]
    logger.info("Created %d members", len(members))

    loans_repo = LoanRepository(session)
    random.shuffle(copy_ids)
    available = iter(copy_ids[: len(copy_ids) // 2])
    borrowed = 0
    for member in members:
        picks = [copy_id for _, copy_id in zip(range(random.randint(1, 3)), available)]
        if not picks:
            break
        checkout = date.today() - timedelta(days=random.randint(0, 40))
        result = loans_repo.borrow_books(
            BorrowRequest(
                member_id=member.id,
                book_copy_ids=picks,
                checkout_date=checkout,
                due_date=checkout + timedelta(days=14),
            )
        )
        borrowed += len(result.loans)

        # Older borrowings have mostly come back
        if checkout < date.today() - timedelta(days=20) and random.random() < 0.6:
            for loan in result.loans:
                condition = random.choices(
                    list(ReturnConditionEnum), weights=[90, 8, 2], k=1
                )[0]
                loans_repo.return_loan(
                    loan.id,
                    condition=condition,
                    rating=random.randint(1, 5),
                    review=fake.sentence() if random.random() < 0.3 else None,
                )
    logger.info("Borrowed %d copies", borrowed)

    logger.info(
        "Seed complete: %d loans still open, %d overdue",
        len(loans_repo.list_loans(LoanFilters(active_only=True))),
        len(loans_repo.list_loans(LoanFilters(overdue_only=True))),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Fill the database with sample data")
    parser.add_argument("--books", type=int, default=40)
    parser.add_argument("--members", type=int, default=15)
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)
    try:
        migrate(db_manager)
        with db_manager.session_scope() as session:
            seed(session, args.books, args.members)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
