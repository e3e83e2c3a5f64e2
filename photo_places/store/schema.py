from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    UniqueConstraint,
    create_engine,
    event,
    func,
    inspect,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

PLACES_SPATIAL_INDEX = "ix_places_geolocation_2dsphere"


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class PhotoFileRow(Base):
    """File document of a stored photo; the binary lives in photo_chunks."""

    __tablename__ = "photo_files"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    content_type: Mapped[str] = mapped_column(String, nullable=False)
    length: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)
    upload_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    # Weak reference to places.id: no foreign key, no cascade in either direction.
    place_id: Mapped[Optional[str]] = mapped_column(String, index=True)

    chunks: Mapped[list["PhotoChunkRow"]] = relationship(
        back_populates="photo", cascade="all, delete-orphan", order_by="PhotoChunkRow.n"
    )


class PhotoChunkRow(Base):
    __tablename__ = "photo_chunks"
    __table_args__ = (UniqueConstraint("files_id", "n", name="uq_photo_chunks_files_id_n"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    files_id: Mapped[str] = mapped_column(
        ForeignKey("photo_files.id", ondelete="CASCADE"), nullable=False, index=True
    )
    n: Mapped[int] = mapped_column(Integer, nullable=False)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    photo: Mapped[PhotoFileRow] = relationship(back_populates="chunks")


class PlaceRow(Base):
    __tablename__ = "places"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    formatted_address: Mapped[str] = mapped_column(String, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    components: Mapped[list["AddressComponentRow"]] = relationship(
        back_populates="place",
        cascade="all, delete-orphan",
        order_by="AddressComponentRow.position",
    )


class AddressComponentRow(Base):
    __tablename__ = "address_components"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    place_id: Mapped[str] = mapped_column(
        ForeignKey("places.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    long_name: Mapped[str] = mapped_column(String, nullable=False)
    short_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    place: Mapped[PlaceRow] = relationship(back_populates="components")


def _enable_sqlite_foreign_keys(dbapi_connection: object, _: object) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str) -> Engine:
    engine = create_engine(database_url, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(database_url: str | Engine) -> Engine:
    engine = (
        database_url if isinstance(database_url, Engine) else create_engine_from_url(database_url)
    )
    # The spatial index is not part of the metadata; its lifecycle is explicit.
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session, future=True)


def has_spatial_index(conn: Connection) -> bool:
    return any(
        ix["name"] == PLACES_SPATIAL_INDEX for ix in inspect(conn).get_indexes(PlaceRow.__tablename__)
    )


def create_spatial_index(conn: Connection) -> None:
    conn.execute(
        text(
            f"CREATE INDEX IF NOT EXISTS {PLACES_SPATIAL_INDEX} "
            f"ON {PlaceRow.__tablename__} (latitude, longitude)"
        )
    )


def drop_spatial_index(conn: Connection) -> None:
    conn.execute(text(f"DROP INDEX IF EXISTS {PLACES_SPATIAL_INDEX}"))
