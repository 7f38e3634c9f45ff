"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _parse_email_list(raw):
    """Parse a comma-separated email list into an immutable, lower-cased set."""
    if not raw:
        return frozenset()
    return frozenset(email.strip().lower() for email in raw.split(',') if email.strip())


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_NAME = os.getenv('SESSION_COOKIE_NAME', 'storefront.sid')
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Preferred URL scheme (for url_for with _external=True)
    PREFERRED_URL_SCHEME = os.getenv('PREFERRED_URL_SCHEME', 'http')

    # Admin allow-list, resolved once at startup
    ADMIN_EMAILS = _parse_email_list(os.getenv('ADMIN_EMAILS', ''))

    # Identity token verification (Firebase / Google Identity Platform ID tokens)
    IDENTITY_PROJECT_ID = os.getenv('IDENTITY_PROJECT_ID', '')
    IDENTITY_ISSUER = os.getenv(
        'IDENTITY_ISSUER',
        f"https://securetoken.google.com/{os.getenv('IDENTITY_PROJECT_ID', '')}"
    )
    IDENTITY_JWKS_URL = os.getenv(
        'IDENTITY_JWKS_URL',
        'https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com'
    )
    IDENTITY_HTTP_TIMEOUT = int(os.getenv('IDENTITY_HTTP_TIMEOUT', '10'))
    # Browser sign-in widget settings (rendered into the login pages)
    IDENTITY_WEB_API_KEY = os.getenv('IDENTITY_WEB_API_KEY', '')
    IDENTITY_AUTH_DOMAIN = os.getenv('IDENTITY_AUTH_DOMAIN', '')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'storefront')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'storefront')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'storefront')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Tenant directory / analytics
    BUSINESS_NUMBER_MAX_ATTEMPTS = int(os.getenv('BUSINESS_NUMBER_MAX_ATTEMPTS', '5'))
    ANALYTICS_MAX_RETRIES = int(os.getenv('ANALYTICS_MAX_RETRIES', '5'))
    TENANT_UPDATE_MAX_RETRIES = int(os.getenv('TENANT_UPDATE_MAX_RETRIES', '3'))
    ANALYTICS_DEFAULT_TIME_RANGE = int(os.getenv('ANALYTICS_DEFAULT_TIME_RANGE', '30'))

    # Object Storage Configuration (S3-compatible: AWS S3, MinIO, GCS interop)
    S3_ENDPOINT = os.getenv('S3_ENDPOINT', 'http://minio:9000')
    S3_ACCESS_KEY = os.getenv('S3_ACCESS_KEY', 'minioadmin')
    S3_SECRET_KEY = os.getenv('S3_SECRET_KEY', 'minioadmin')
    S3_BUCKET = os.getenv('S3_BUCKET', 'storefront')
    S3_REGION = os.getenv('S3_REGION', 'us-east-1')
    S3_PUBLIC_URL = os.getenv('S3_PUBLIC_URL', 'http://localhost:9000')

    # Upload constraints
    MAX_IMAGE_UPLOAD_SIZE = int(os.getenv('MAX_IMAGE_UPLOAD_SIZE', 5 * 1024 * 1024))  # 5MB
    MAX_DOCUMENT_UPLOAD_SIZE = int(os.getenv('MAX_DOCUMENT_UPLOAD_SIZE', 10 * 1024 * 1024))  # 10MB
    # base64 inflates payloads by 4/3, leave room for the JSON envelope
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 20 * 1024 * 1024))
    IMAGE_UPLOAD_PLACEHOLDER_FALLBACK = os.getenv('IMAGE_UPLOAD_PLACEHOLDER_FALLBACK', 'true').lower() == 'true'

    # PDF proxy
    PDF_PROXY_TIMEOUT = int(os.getenv('PDF_PROXY_TIMEOUT', '15'))

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_PROFILE_TTL = int(os.getenv('CACHE_PROFILE_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'storefront')


class TestingConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    # Fixtures keep reading rows after the request that committed them closes its session
    SQLALCHEMY_EXPIRE_ON_COMMIT = False
    CACHE_ENABLED = False
    ADMIN_EMAILS = frozenset({'admin@storefront.test'})
    IDENTITY_PROJECT_ID = 'storefront-test'
    IDENTITY_ISSUER = 'https://securetoken.google.com/storefront-test'
    S3_BUCKET = 'storefront-test'
    S3_PUBLIC_URL = 'https://storage.googleapis.com'
