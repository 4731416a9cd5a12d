import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "device-bans")

    # Step Store: authored steps live in Redis (JSON list) or a local JSON file
    STEPS_KEY: str = os.getenv("STEPS_KEY", "flow:steps")
    STEPS_FILE: str = os.getenv("STEPS_FILE", "")

    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", "86400"))
    # Remembered email identity per device (0 = never expires)
    IDENTITY_TTL_SEC: int = int(os.getenv("IDENTITY_TTL_SEC", "0"))

    # Authentication Bridge
    AUTH_BRIDGE_URL: str = os.getenv("AUTH_BRIDGE_URL", "http://localhost:8081")
    AUTH_BRIDGE_TIMEOUT_SEC: float = float(os.getenv("AUTH_BRIDGE_TIMEOUT_SEC", "10"))

    # Device Ban Gate
    # - "rq": record the ban and hand the bridge call to a worker (retried)
    # - "direct": await the bridge call inline
    BAN_GATE_MODE: str = os.getenv("BAN_GATE_MODE", "rq").lower()
    BAN_JOB_RETRIES: int = int(os.getenv("BAN_JOB_RETRIES", "3"))
    # Seconds between retries, comma separated
    BAN_JOB_RETRY_INTERVALS: str = os.getenv("BAN_JOB_RETRY_INTERVALS", "5,15,30")

    # Login sub-flow: failures before the device is banned
    LOGIN_BAN_THRESHOLD: int = int(os.getenv("LOGIN_BAN_THRESHOLD", "2"))

    # Fallback copy when a step leaves the text empty
    DEFAULT_FAILURE_REPLY: str = os.getenv("DEFAULT_FAILURE_REPLY", "Incorrect, try again.")
    DEFAULT_WARNING_TEXT: str = os.getenv(
        "DEFAULT_WARNING_TEXT", "Careful! Repeated wrong answers will lock this device."
    )
    DEFAULT_BAN_TEXT: str = os.getenv(
        "DEFAULT_BAN_TEXT", "Too many failed attempts. This device has been blocked."
    )

    # Reveal pacing hints for the presentation layer (reading time)
    READING_DELAY_BASE_MS: int = int(os.getenv("READING_DELAY_BASE_MS", "1500"))
    READING_DELAY_PER_CHAR_MS: int = int(os.getenv("READING_DELAY_PER_CHAR_MS", "50"))
    READING_DELAY_MAX_MS: int = int(os.getenv("READING_DELAY_MAX_MS", "6000"))
    MEDIA_DELAY_MS: int = int(os.getenv("MEDIA_DELAY_MS", "3000"))

    # Upper bound on statement steps advanced inside one tick (guards authored cycles)
    MAX_AUTO_ADVANCE_CHAIN: int = int(os.getenv("MAX_AUTO_ADVANCE_CHAIN", "50"))

    # One turn at a time per session. The TTL must outlast a turn (bridge calls included);
    # a request that cannot get the lock within the wait gets a 429.
    SESSION_LOCK_TTL_MS: int = int(os.getenv("SESSION_LOCK_TTL_MS", "30000"))
    SESSION_LOCK_WAIT_MS: int = int(os.getenv("SESSION_LOCK_WAIT_MS", "10000"))

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
