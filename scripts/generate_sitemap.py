import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from bookshelf_server.config import settings
from bookshelf_server.content.github_client import GitHubContentClient
from bookshelf_server.content.sitemap import collect_sitemap_urls, render_sitemap

DEFAULT_OUTPUT = os.path.join("public", "sitemap.xml")


async def main():
    output = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_OUTPUT

    print("Collecting pages...")
    urls = await collect_sitemap_urls(GitHubContentClient())

    os.makedirs(os.path.dirname(output) or ".", exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        f.write(render_sitemap(urls, settings.site_url))

    print(f"Sitemap written to {output} ({len(urls)} URLs).")

if __name__ == "__main__":
    asyncio.run(main())
