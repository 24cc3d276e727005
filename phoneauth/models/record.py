from sqlalchemy import JSON, BigInteger, Column, Index, String

from phoneauth.database import Base


class RecordEntry(Base):
    __tablename__ = "records"

    pk = Column(String(255), primary_key=True)
    sk = Column(String(255), primary_key=True)
    attributes = Column(JSON, nullable=False, default=dict)
    ttl = Column(BigInteger, nullable=True)

    __table_args__ = (Index("ix_records_ttl", "ttl"),)
