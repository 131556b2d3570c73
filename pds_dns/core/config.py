from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str
    DB_ECHO: bool = False
    API_KEY: str = "supersecret"
    RATE_LIMIT: str = "100/minute"
    TESTING: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "app.log"

    HTTP_HOST: str = "0.0.0.0"
    HTTP_PORT: int = 3003

    # Authoritative TXT responder
    DNS_ENABLED: bool = True
    DNS_HOST: str = "0.0.0.0"
    DNS_PORT: int = 53235
    DNS_DEFAULT_TTL: int = 300

    # Challenge / verification engine
    CHALLENGE_TOKEN_EXPIRY: int = 86400
    MAX_VERIFICATION_ATTEMPTS: int = 5
    VERIFY_NATIVE_VIA_PUBLIC_DNS: bool = True
    VERIFICATION_POLL_INTERVAL: int = 0

    # Outbound TXT lookups
    EXTERNAL_DNS_TIMEOUT: float = 5.0
    EXTERNAL_DNS_NAMESERVERS: List[str] = []

    # Terminal-state webhooks
    NOTIFY_SERVICE_TYPES: List[str] = ["government"]
    NOTIFY_WEBHOOK_URLS: List[str] = [
        "http://onelogin-oidc:3010/api/dns-verification/callback",
        "http://solid-pds:3000/api/dns-verification/callback",
    ]
    NOTIFY_TIMEOUT: float = 5.0
    NOTIFY_RETRIES: int = 3

    class Config:
        env_file = ".env"

settings = Settings()
