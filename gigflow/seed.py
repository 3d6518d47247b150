#!/usr/bin/env python3
"""
Demo Data Seeder

Creates demo users, open gigs and pending bids through the regular stores,
so every business limit (gigs per owner, bids per freelancer) still applies.
Prints a bearer token per user for trying the API.

Usage:
    python -m gigflow.seed --users 10 --gigs 12 --reset
"""

import argparse
import asyncio
import random
import sys
from typing import List, Optional

from gigflow.api.database import (
    build_async_engine,
    build_session_factory,
    drop_db,
    init_db,
)
from gigflow.api.identity import issue_token
from gigflow.api.models import Gig, User
from gigflow.config import get_config
from gigflow.marketplace.bid_store import BidStore
from gigflow.marketplace.errors import MarketplaceError
from gigflow.marketplace.gig_store import GigStore
from gigflow.marketplace.user_store import UserStore
from gigflow.utils.logger import get_logger

logger = get_logger(__name__)

USER_NAMES = [
    "John Smith", "Sarah Johnson", "Michael Chen", "Emily Davis", "David Wilson",
    "Jessica Martinez", "Robert Taylor", "Amanda Brown", "James Anderson", "Lisa Garcia",
    "William Lee", "Michelle White", "Christopher Harris", "Ashley Martin", "Daniel Thompson",
]

GIG_TEMPLATES = [
    ("Website Redesign for E-commerce Store",
     "Modern, responsive redesign of our online store with a focus on conversion."),
    ("Mobile App UI/UX Design",
     "Intuitive screens for an iOS and Android app following platform guidelines."),
    ("Logo Design and Branding Package",
     "Logo, color scheme, typography and a short brand guideline document."),
    ("WordPress Website Development",
     "Custom theme and a couple of small plugins for a services business."),
    ("SEO Optimization for Business Website",
     "Keyword research, on-page fixes and a plan for link building."),
    ("Python Script for Data Analysis",
     "Automate a weekly report from CSV exports using pandas and charts."),
    ("Landing Page Design and Development",
     "High-converting landing page with a clear call to action, mobile first."),
    ("Technical Documentation Writing",
     "Developer docs for a REST API: guides, reference and examples."),
    ("Podcast Editing and Production",
     "Edit, mix and master weekly episodes of about 45 minutes."),
    ("Shopify Store Setup",
     "Set up products, payments and shipping rules for a new Shopify store."),
]

BID_MESSAGES = [
    "I have done several similar projects and can start right away.",
    "Happy to help. I can share a portfolio of comparable work.",
    "I can deliver this within a week with two rounds of revisions.",
    "This is squarely in my skill set; let's discuss the details.",
]


async def seed(
    user_count: int, gig_count: int, reset: bool, rng: random.Random
) -> List[User]:
    """
    Populate the configured database.

    Returns:
        The created users
    """
    config = get_config()
    engine = build_async_engine(config.DATABASE_URL, config.SQLITE_BUSY_TIMEOUT)
    sessions = build_session_factory(engine)

    try:
        if reset:
            logger.info("Dropping existing tables")
            await drop_db(engine)
        await init_db(engine)

        users_store = UserStore(sessions)
        gigs_store = GigStore(sessions, config.MAX_GIGS_PER_OWNER)
        bids_store = BidStore(sessions, config.MAX_BIDS_PER_FREELANCER)

        users: List[User] = []
        for index, name in enumerate(USER_NAMES[:user_count]):
            email = f"{name.lower().replace(' ', '.')}{index}@example.com"
            existing = await users_store.find_by_email(email)
            users.append(existing or await users_store.create(name, email))

        gigs: List[Gig] = []
        for index in range(gig_count):
            owner = users[index % len(users)]
            title, description = GIG_TEMPLATES[index % len(GIG_TEMPLATES)]
            budget = float(rng.randrange(100, 5000, 50))
            try:
                gigs.append(await gigs_store.create(owner.id, title, description, budget))
            except MarketplaceError as e:
                logger.warning(f"Skipping gig for {owner.name}: {e.message}")

        placed = 0
        for user in users:
            candidates = [gig for gig in gigs if gig.owner_id != user.id]
            rng.shuffle(candidates)
            for gig in candidates[: config.MAX_BIDS_PER_FREELANCER]:
                price = round(gig.budget * rng.uniform(0.7, 1.1), 2)
                try:
                    await bids_store.create(
                        user.id, gig.id, rng.choice(BID_MESSAGES), price
                    )
                    placed += 1
                except MarketplaceError as e:
                    logger.warning(f"Skipping bid by {user.name}: {e.message}")

        logger.info(f"Seeded {len(users)} users, {len(gigs)} gigs, {placed} bids")
        return users
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the GigFlow database with demo data")
    parser.add_argument(
        "--users", type=int, default=10, help=f"Number of users (max {len(USER_NAMES)})"
    )
    parser.add_argument("--gigs", type=int, default=12, help="Number of gigs to post")
    parser.add_argument(
        "--reset", action="store_true", help="Drop all tables before seeding"
    )
    parser.add_argument("--random-seed", type=int, default=42, help="RNG seed")
    args = parser.parse_args(argv)

    if not 2 <= args.users <= len(USER_NAMES):
        parser.error(f"--users must be between 2 and {len(USER_NAMES)}")
    if args.gigs < 0:
        parser.error("--gigs must not be negative")

    users = asyncio.run(
        seed(args.users, args.gigs, args.reset, random.Random(args.random_seed))
    )

    config = get_config()
    print("\nDemo users (Authorization: Bearer <token>):")
    for user in users:
        token = issue_token(user.id, config.JWT_SECRET_KEY, config.JWT_ALGORITHM)
        print(f"  {user.name:<22} {user.email:<36} {token}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
