import os
from dotenv import load_dotenv

load_dotenv()

def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./linkedbud.db")
    app_url: str = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Personal app: posting on the member's own profile (OpenID + w_member_social)
    linkedin_client_id: str = os.getenv("LINKEDIN_CLIENT_ID", "")
    linkedin_client_secret: str = os.getenv("LINKEDIN_CLIENT_SECRET", "")
    linkedin_scopes: str = os.getenv("LINKEDIN_SCOPES", "openid profile w_member_social email")

    # Community Management app: organization pages and analytics. LinkedIn only grants
    # these products to a separate app registration.
    linkedin_community_client_id: str = os.getenv("LINKEDIN_COMMUNITY_CLIENT_ID", "")
    linkedin_community_client_secret: str = os.getenv("LINKEDIN_COMMUNITY_CLIENT_SECRET", "")
    linkedin_community_scopes: str = os.getenv(
        "LINKEDIN_COMMUNITY_SCOPES",
        "r_member_postAnalytics r_organization_followers r_organization_social rw_organization_admin "
        "r_organization_social_feed w_member_social r_member_profileAnalytics w_organization_social "
        "r_basicprofile w_organization_social_feed w_member_social_feed r_1st_connections_size",
    )
    linkedin_api_version: str = os.getenv("LINKEDIN_API_VERSION", "202509")

    fernet_key: str = os.getenv("FERNET_KEY", "")

    supabase_url: str = os.getenv("SUPABASE_URL", "").rstrip("/")
    supabase_service_role_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    supabase_jwt_secret: str = os.getenv("SUPABASE_JWT_SECRET", "")
    storage_bucket: str = os.getenv("STORAGE_BUCKET", "storage")

    cron_secret: str = os.getenv("CRON_SECRET", "")
    metrics_cron: str = os.getenv("METRICS_CRON", "0 3 * * *")
    metrics_scheduler_enabled: bool = _flag("METRICS_SCHEDULER_ENABLED")

    scrapingbee_api_key: str = os.getenv("SCRAPINGBEE_API_KEY", "")

    @property
    def linkedin_redirect_uri(self) -> str:
        return f"{self.app_url}/api/linkedin/callback"

    @property
    def linkedin_community_redirect_uri(self) -> str:
        return f"{self.app_url}/api/linkedin/organizations/callback"

settings = Settings()
