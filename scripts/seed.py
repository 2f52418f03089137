"""Seed a development database with users, posts and comments."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from blogdata.client import DataClient
from blogdata.config import settings
from blogdata.database import Base
from blogdata.models import User, Post, Comment

TOPICS = ["python", "fastapi", "postgresql", "redis", "docker", "testing",
          "performance", "security", "sqlalchemy", "asyncio"]


async def seed(client: DataClient, small: bool = False):
    num_users = 10 if small else 50
    num_posts = 100 if small else 2000
    max_comments_per_post = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_posts} posts, up to {max_comments_per_post} comments each")
    start = time.perf_counter()

    async with client.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    now = datetime.now(timezone.utc)
    total_comments = 0

    async with client.session() as session:
        users = [
            User(
                email=f"user_{i:04d}@example.com",
                name=f"User {i}" if i % 3 else None,
                created_at=now - timedelta(days=random.randint(30, 365)),
            )
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(users)} users")

        for i in range(num_posts):
            created = now - timedelta(days=random.randint(0, 29), minutes=random.randint(0, 1440))
            post = Post(
                title=f"Post {i}: notes on {random.choice(TOPICS)}",
                content=f"This is the full content of post {i}. " * 10,
                published=random.random() > 0.1,  # 90% published
                created_at=created,
                author_id=random.choice(users).id,
            )
            session.add(post)
            await session.flush()

            for _ in range(random.randint(0, max_comments_per_post)):
                session.add(Comment(
                    content="Great post! Very helpful.",
                    post_id=post.id,
                    author_id=random.choice(users).id,
                    created_at=created + timedelta(minutes=random.randint(1, 600)),
                ))
                total_comments += 1

        print(f"  Created {num_posts} posts")

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Posts: {num_posts}")
    print(f"  Comments: {total_comments}")


async def run(small: bool) -> None:
    client = DataClient.from_settings(settings)
    try:
        await seed(client, small=small)
    finally:
        await client.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    args = parser.parse_args()
    asyncio.run(run(small=args.small))


if __name__ == "__main__":
    main()
