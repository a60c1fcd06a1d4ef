# config.py
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "mysql+pymysql://root:@localhost/habitrun"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Challenge policy knobs
    DAILY_GOAL_KM = float(os.environ.get("DAILY_GOAL_KM", "3.0"))
    MIN_UPLOAD_KM = float(os.environ.get("MIN_UPLOAD_KM", "1.0"))
    MAX_PACE_MIN_PER_KM = float(os.environ.get("MAX_PACE_MIN_PER_KM", "20.0"))
    PENALTY_PER_MISSED_DAY = int(os.environ.get("PENALTY_PER_MISSED_DAY", "20000"))

    # "today" is decided in this zone, not on the server clock
    CHALLENGE_TIMEZONE = os.environ.get("CHALLENGE_TIMEZONE", "Asia/Seoul")

    # Uploaded screenshots
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads")
    )
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024

    # Image-understanding backend
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    VISION_MODEL = os.environ.get("VISION_MODEL", "gpt-4o-mini")
    VISION_MAX_IMAGE_SIDE = int(os.environ.get("VISION_MAX_IMAGE_SIDE", "1280"))

    RECENT_RECORDS_LIMIT = 8

    # Open upload dialogs hold image bytes in memory until they expire
    SUBMISSION_TTL_SECONDS = int(os.environ.get("SUBMISSION_TTL_SECONDS", "1800"))
    MAX_OPEN_SUBMISSIONS = int(os.environ.get("MAX_OPEN_SUBMISSIONS", "100"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CHALLENGE_TIMEZONE = "Asia/Seoul"
    OPENAI_API_KEY = None
