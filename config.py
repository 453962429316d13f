# ==========================================================================================================
# -------------- Configuration for the postback / commission engine ----------------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def normalize_database_url(url):
    """Heroku/Render style URLs still say postgres://, SQLAlchemy wants the driver spelled out."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+pg8000://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+pg8000://", 1)
    return url


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    TESTING = False

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'affiliates.db')}"

    SQLALCHEMY_DATABASE_URI = normalize_database_url(_database_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if not SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS.update({
            "pool_size": 10,
            "max_overflow": 20,
        })

    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # 0 disables duplicate suppression; partners' retries are then recorded as-is
    POSTBACK_DEDUP_WINDOW_SECONDS = int(os.getenv("POSTBACK_DEDUP_WINDOW_SECONDS", "0"))

    AFFILIATE_LINK_PLACEHOLDER = os.getenv("AFFILIATE_LINK_PLACEHOLDER", "VALUE")

    # Number of reverse proxies in front of the app (Render/Heroku: 1); 0 when exposed directly
    TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_DIR = os.getenv("TEST_LOG_DIR", os.path.join(basedir, "logs", "test"))
    POSTBACK_DEDUP_WINDOW_SECONDS = 0
    TRUSTED_PROXY_COUNT = 1
