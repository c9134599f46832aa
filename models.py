from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, String, DateTime, Float, BigInteger
from sqlalchemy.sql import func

Base = declarative_base()

class Credential(Base):
    __tablename__ = "credentials"
    id = Column(Integer, primary_key=True)
    identity = Column(String, unique=True, nullable=False)  # strava athlete id
    access_token = Column(String, nullable=False)
    refresh_token = Column(String, nullable=False)
    expires_at = Column(BigInteger, nullable=False)  # unix seconds
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class Activity(Base):
    __tablename__ = "activities"
    id = Column(Integer, primary_key=True)
    activity_id = Column(BigInteger, unique=True, nullable=False)
    owner_identity = Column(String, index=True, nullable=False)
    name = Column(String)
    type = Column(String)  # Run, Walk, etc
    distance = Column(Float)  # meters
    moving_time = Column(Integer)
    elapsed_time = Column(Integer)
    start_date = Column(String)  # ISO 8601 as returned by the API
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "activity_id": self.activity_id,
            "owner_identity": self.owner_identity,
            "name": self.name,
            "type": self.type,
            "distance": self.distance,
            "moving_time": self.moving_time,
            "elapsed_time": self.elapsed_time,
            "start_date": self.start_date,
        }
