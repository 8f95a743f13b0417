from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from loguru import logger

# --- Base (single source of truth) ---
Base = declarative_base()


# --- Engine ---
def make_engine(database_url: str) -> Engine:
    options = {}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every checkout sees an empty db
        options["poolclass"] = StaticPool
    else:
        options["pool_pre_ping"] = True

    engine = create_engine(
        database_url,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False}
        if database_url.startswith("sqlite")
        else {},
        **options,
    )

    # --- SQL query logging ---
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        logger.debug(f"SQL: {statement} | params={parameters}")

    return engine


# --- Session factory ---
def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
    )


def init_db(engine: Engine) -> None:
    # Import all models so SQLAlchemy registers them
    from halfway.models.match_record import MatchRow  # noqa: F401

    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
