from threading import Lock

from sqlalchemy import Engine, create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from availability_backend.core import config


DATABASE_URL = config.DATABASE_URL

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_profile_schema_checked = False


def ensure_profile_schema(bind: Engine | None = None) -> None:
    global _profile_schema_checked

    if _profile_schema_checked:
        return

    with _schema_lock:
        if _profile_schema_checked:
            return

        target = bind or engine

        if 'availability_profiles' not in inspect(target).get_table_names():
            _profile_schema_checked = True
            return

        with target.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_profiles_looking ON availability_profiles(is_looking)')
            )

        _profile_schema_checked = True
