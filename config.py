import os

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    # Only read DATABASE_URL from env; if missing, app factory will set a proper sqlite path
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Judging rules
    MIN_DISTINCT_JUDGES = int(os.getenv("MIN_DISTINCT_JUDGES", "3"))
    # clamp | reject | permissive
    NUMERIC_SCORE_POLICY = os.getenv("NUMERIC_SCORE_POLICY", "clamp")
    # Run the schedule sync before queue reads
    SYNC_ON_READ = os.getenv("SYNC_ON_READ", "1") == "1"

    DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Chicago")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "WARNING"
