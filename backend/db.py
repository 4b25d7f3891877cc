# db.py
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build the engine once at process start; components receive it explicitly.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Transcription workers share the engine across threads
        connect_args["check_same_thread"] = False

    return create_engine(database_url, echo=echo, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """
    Called on app startup to create tables if they don't exist.
    """
    # Import models here so SQLModel knows about them
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
