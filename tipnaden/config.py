from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "tipnaden"

    log_level: str = "INFO"
    log_json: bool = False

    # Source site
    source_base_url: str = "https://goout.net/cs"
    scrape_cities: str = "praha,brno,ostrava"
    per_city_limit: int = 50
    manual_default_limit: int = 20

    # Browser
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    page_timeout_ms: int = 30000
    settle_delay_seconds: float = 3.0
    city_pause_seconds: float = 2.0
    browser_no_sandbox: bool = False
    debug_mode: bool = False
    debug_dir: str = "debug"

    # Daily job
    scheduler_enabled: bool = True
    schedule_hour: int = 3
    schedule_minute: int = 0
    schedule_timezone: str = "Europe/Prague"
    # How long shutdown waits for an active run to stop
    shutdown_timeout_seconds: float = 60.0

    # Shared secret for the operational endpoints; empty leaves them open
    admin_token: str = ""

    model_config = {"env_file": ".env"}

    @property
    def city_list(self) -> list[str]:
        return [c.strip().lower() for c in self.scrape_cities.split(",") if c.strip()]


settings = Settings()
