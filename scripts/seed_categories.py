import asyncio
import sys

from prisma import Prisma

from services.keyword_classifier import category_names

DEFAULT_USER_ID = "22f8e821-16ea-4f98-a945-30f0e20181f5"


async def main(user_id: str):
    db = Prisma()
    await db.connect()

    existing = await db.category.find_many(where={"user_id": user_id})
    have = {c.name.lower() for c in existing}

    created = 0
    for name in category_names():
        if name.lower() in have:
            continue
        await db.category.create(data={"user_id": user_id, "name": name})
        created += 1

    await db.disconnect()
    print(f"✅ Seeded {created} categories for {user_id} ({len(have)} already present)")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_USER_ID))
