import os
from dotenv import load_dotenv


class Config:
    """Application configuration."""
    def __init__(self, load_env=True):
        if load_env:
            load_dotenv()
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///gitmanager.db")

        # GitHub OAuth app credentials
        self.github_client_id = os.getenv("GITHUB_CLIENT_ID", "")
        self.github_client_secret = os.getenv("GITHUB_CLIENT_SECRET", "")
        self.oauth_redirect_url = os.getenv("OAUTH_REDIRECT_URL", "http://localhost:8000/auth/callback")

        # Session tokens
        self.session_secret = os.getenv("SESSION_SECRET", "")
        self.session_max_age_days = int(os.getenv("SESSION_MAX_AGE_DAYS", "30"))
        self.session_refresh_hours = int(os.getenv("SESSION_REFRESH_HOURS", "24"))

        # GitHub API pacing
        self.repository_page_size = int(os.getenv("REPOSITORY_PAGE_SIZE", "100"))
        self.health_batch_size = int(os.getenv("HEALTH_BATCH_SIZE", "5"))
        self.health_batch_delay = float(os.getenv("HEALTH_BATCH_DELAY", "1.0"))
        self.analysis_delay = float(os.getenv("ANALYSIS_DELAY", "0.3"))

        self.cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_file = os.getenv("LOG_FILE") or None


def get_config(load_env=True):
    return Config(load_env=load_env)


if __name__ == '__main__':
    config = get_config()
    print(f"Database URL: {config.database_url}")
    print(f"OAuth Redirect URL: {config.oauth_redirect_url}")
    print(f"Repository Page Size: {config.repository_page_size}")
    print(f"Health Batch Size: {config.health_batch_size}")
    print(f"Health Batch Delay: {config.health_batch_delay}")
    print(f"Analysis Delay: {config.analysis_delay}")
