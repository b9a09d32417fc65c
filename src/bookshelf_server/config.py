from typing import Optional

from pydantic import AnyHttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Content repository (headless CMS)
    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    github_owner: str = "chanani"
    github_repo: str = "Books"
    github_books_path: str = "books"
    github_dev_path: str = "dev"
    github_token: Optional[SecretStr] = None

    # giscus / GitHub Discussions
    discussion_repo: str = "books-blog"
    discussion_category_id: str = "DIC_kwDORI3Ks84C15da"

    # GoatCounter
    goatcounter_base_url: AnyHttpUrl = "https://chanani.goatcounter.com"
    goatcounter_api_token: Optional[SecretStr] = None

    # Admin
    admin_password: Optional[SecretStr] = None
    admin_token_ttl_seconds: int = 12 * 60 * 60
    jwt_algo: str = "HS256"

    # Persisted client state: history lists, and the search index snapshot
    # in a file of its own
    client_state_path: str = "data/client_state.json"
    search_index_path: str = "data/search_index.json"
    search_cache_ttl_seconds: int = 24 * 60 * 60
    search_concurrency: int = 5

    http_timeout_seconds: float = 15.0
    site_url: str = "https://chanani-books.vercel.app"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
