import os
from dotenv import load_dotenv
load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///recruiting.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # percentage = total_score / EVALUATION_MAX_TOTAL_SCORE * 100
    EVALUATION_MAX_TOTAL_SCORE = float(os.getenv("EVALUATION_MAX_TOTAL_SCORE", "10"))
    # re-run a failed summary recomputation through RQ
    SUMMARY_RETRY_ENABLED = os.getenv("SUMMARY_RETRY_ENABLED", "0").lower() in ("1", "true", "yes")
    SUMMARY_RETRY_DELAY_SEC = int(os.getenv("SUMMARY_RETRY_DELAY_SEC", "30"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SUMMARY_RETRY_ENABLED = False
    LOG_LEVEL = "DEBUG"
