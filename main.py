import asyncio

from executors.expense import InMemoryExpenseActions
from models.category import Category
from services.category_resolver import CategoryResolver
from services.dispatcher import ConversationContext, ConversationDispatcher
from services.keyword_classifier import category_names
from services.resolution_store import InMemoryResolutionStore

USER_ID = "demo-user"

DEMO_TURNS = [
    "add $6 coffee starbucks",
    "i just spent $2100 repairing my roof",
    "yes",
    "spent $45.20 at Shell yesterday",
    "I paid $80 for a plumber",
    "how am i doing this month?",
    "change starbucks to $7",
    "set dining out budget to $300",
    "show me coffee",
]


async def main():
    categories = [Category(id=f"cat_{i}", name=name) for i, name in enumerate(category_names(), start=1)]

    store = InMemoryResolutionStore()
    resolver = CategoryResolver(store)
    actions = InMemoryExpenseActions()
    actions.register_categories(categories)
    dispatcher = ConversationDispatcher(resolver, actions)
    context = ConversationContext(user_id=USER_ID, categories=categories)

    for text in DEMO_TURNS:
        result = await dispatcher.handle(text, context)
        print(f"> {text}")
        print(f"  [{result.action.value}] {result.message if result.handled else '(not an action)'}")

    await resolver.writer.drain()

    print("\nExpenses:")
    for e in await actions.reload_expenses(USER_ID):
        print(f"  {e.spent_at:%Y-%m-%d} {e.merchant:<20} ${e.amount:>8.2f}  {e.category_name}")

    print("\nGlobal cache:")
    for key, entry in store.resolutions.items():
        print(f"  {key:<20} {entry.category_name:<22} {entry.confidence:.2f} (n={entry.resolution_count})")


if __name__ == "__main__":
    import sys
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
