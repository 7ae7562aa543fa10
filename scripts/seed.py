"""Database seeder: categories, one user per role, and a handful of articles.

Articles go through ArticleLifecycle so they get sanitized content,
derived summaries and collision-free slugs exactly as API writes do.
Prints a bearer token per seeded user for trying the API by hand.
"""
import argparse
import asyncio
import logging
import random
import time
from datetime import datetime, timezone

from newsroom.config import settings
from newsroom.database import engine, session_scope, Base
from newsroom.identity import Principal, create_access_token
from newsroom.models import ArticleStatus, Role, User
from newsroom.schemas import ArticleCreate, CategoryCreate, ImageIn, UserCreate
from newsroom.services import category_service, user_service
from newsroom.services.article_service import ArticleLifecycle

CATEGORIES = ["Politics", "Technology", "Sports", "Business", "Entertainment", "Science", "Health"]

USERS = [
    ("Admin User", "admin@news.example", Role.ADMIN),
    ("John Editor", "editor@news.example", Role.EDITOR),
    ("Jane Journalist", "journalist@news.example", Role.JOURNALIST),
    ("Riley Reader", "reader@news.example", Role.READER),
]

TAGS = ["politics", "technology", "science", "innovation", "markets", "health", "sports", "culture"]

IMAGE_BASE = "https://res.cloudinary.com/demo/image/upload"


class _NoCleanup:
    def schedule(self, urls):
        pass


async def seed(num_articles: int = 20):
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    lifecycle = ArticleLifecycle.from_settings(settings, _NoCleanup())

    async with session_scope() as session:
        # The first admin cannot be granted by anyone, so it is inserted directly.
        name, email, role = USERS[0]
        root = User(name=name, email=email, role=role, created_at=datetime.now(timezone.utc))
        session.add(root)
        await session.flush()
        admin = Principal(id=root.id, role=Role.ADMIN)
        users = [await user_service.get_user(session, root.id)]
        for name, email, role in USERS[1:]:
            users.append(await user_service.create_user(
                session, UserCreate(name=name, email=email, role=role), admin
            ))
        print(f"  Created {len(users)} users")

        categories = [
            await category_service.create_category(session, CategoryCreate(name=name), admin)
            for name in CATEGORIES
        ]
        print(f"  Created {len(categories)} categories")

        authors = [
            Principal(id=u["id"], role=Role(u["role"])) for u in users if u["role"] != Role.READER.value
        ]
        for i in range(num_articles):
            category = random.choice(categories)
            topic = random.choice(TAGS)
            data = ArticleCreate(
                title=f"{category['name']} briefing #{i}: what changed in {topic}",
                content=(
                    f"<h2>{topic.title()} this week</h2>"
                    f"<p>Our desk looks at the latest developments in {topic}. "
                    f"Here is what readers need to know.</p>"
                    f'<figure><img src="{IMAGE_BASE}/v1/{topic}-{i}.jpg" alt="{topic}">'
                    f"<figcaption>Illustration</figcaption></figure>"
                ),
                category_id=category["id"],
                status=random.choice(list(ArticleStatus)),
                tags=random.sample(TAGS, k=random.randint(1, 3)),
                images=[ImageIn(url=f"{IMAGE_BASE}/v1/{topic}-main-{i}.jpg", is_main=True)],
            )
            await lifecycle.create(session, data, random.choice(authors))
        print(f"  Created {num_articles} articles")

    await engine.dispose()
    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    for user in users:
        print(f"  {user['role']:<10} {user['email']:<26} {create_access_token(user['id'])}")


def main():
    parser = argparse.ArgumentParser(description="Seed the newsroom database")
    parser.add_argument("--articles", type=int, default=20, help="Number of articles to create")
    args = parser.parse_args()
    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(seed(num_articles=args.articles))


if __name__ == "__main__":
    main()
