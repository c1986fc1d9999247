import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_algorithm: str
    access_token_expires_minutes: int
    refresh_token_expires_days: int

    superadmin_passcode: str
    president_passcode: str
    user_code_prefix: str
    seed_on_start: bool

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///raportal.db"),
        jwt_secret=_getenv("JWT_SECRET", "change-me"),
        jwt_algorithm=_getenv("JWT_ALGORITHM", "HS256"),
        access_token_expires_minutes=_getenv_int("ACCESS_TOKEN_EXPIRES_MINUTES", 60),
        refresh_token_expires_days=_getenv_int("REFRESH_TOKEN_EXPIRES_DAYS", 7),
        superadmin_passcode=_getenv("SUPERADMIN_PASSCODE", ""),
        president_passcode=_getenv("PRESIDENT_PASSCODE", ""),
        user_code_prefix=_getenv("USER_CODE_PREFIX", "RA/OGBC"),
        seed_on_start=_getenv("SEED_ON_START") == "1",
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_ALGORITHM": s.jwt_algorithm,
        "ACCESS_TOKEN_EXPIRES_MINUTES": s.access_token_expires_minutes,
        "REFRESH_TOKEN_EXPIRES_DAYS": s.refresh_token_expires_days,
        "SUPERADMIN_PASSCODE": s.superadmin_passcode,
        "PRESIDENT_PASSCODE": s.president_passcode,
        "USER_CODE_PREFIX": s.user_code_prefix,
        "SEED_ON_START": s.seed_on_start,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # request body cap; per-kind upload limits are enforced in app.raportal.uploads
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
