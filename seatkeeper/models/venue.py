"""
Venue and Event models (read-only catalog data)
"""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from seatkeeper.models.base import BaseModel


class Venue(BaseModel):
    """
    A physical venue whose seats are described by the catalog
    """
    __tablename__ = "venues"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)

    # Relationships
    events = relationship("Event", back_populates="venue")
    seats = relationship("Seat", back_populates="venue")

    def __repr__(self):
        return f"<Venue(id={self.id}, name={self.name})>"


class Event(BaseModel):
    """
    One occurrence of a show at a venue; availability is scoped to it
    """
    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    venue_id = Column(String(64), ForeignKey("venues.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    starts_at = Column(DateTime(timezone=True))

    # Relationships
    venue = relationship("Venue", back_populates="events")

    def __repr__(self):
        return f"<Event(id={self.id}, venue_id={self.venue_id}, name={self.name})>"
