import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from bookshelf_server.config import settings
from bookshelf_server.content.github_client import GitHubContentClient
from bookshelf_server.search.index import SearchIndexBuilder
from bookshelf_server.store import JsonFileStore


def report(done: int, total: int) -> None:
    print(f"\rIndexed {done}/{total} chapters", end="", flush=True)


async def main():
    print("Initializing clients...")
    client = GitHubContentClient()
    store = JsonFileStore(settings.search_index_path)
    index = SearchIndexBuilder(client, store)

    # --rebuild ignores a fresh snapshot
    if "--rebuild" not in sys.argv and index.load_cached_index():
        print(f"Cached index is fresh ({len(index.records)} chapters). Use --rebuild to force.")
        return
    index.invalidate()

    print("Fetching book list...")
    books = await client.list_books()
    print(f"Found {len(books)} books.")

    await index.build_index(books, on_progress=report)
    print()
    print(f"Done! {len(index.records)} chapters saved to {settings.search_index_path}.")

if __name__ == "__main__":
    asyncio.run(main())
