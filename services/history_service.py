"""
Raffle history service.

Builds the winner history and the event feed so the frontend can render
past rounds directly from the server.
"""
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from models import Draw, EventLog


def get_winner_history(raffle_id: int, db: Session, limit: int = 20) -> List[Dict[str, Any]]:
    """
    Return settled rounds, newest first.
    """
    draws = (
        db.query(Draw)
        .filter(Draw.raffle_id == raffle_id)
        .order_by(Draw.round_number.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "round_number": draw.round_number,
            "request_id": draw.request_id,
            "random_word": draw.random_word,
            "winner_index": draw.winner_index,
            "winner": draw.winner,
            "prize": draw.prize,
            "player_count": draw.player_count,
            "settled_at": draw.settled_at,
        }
        for draw in draws
    ]


def get_events(
    raffle_id: int,
    db: Session,
    event_type: str = None,
    limit: int = 100
) -> List[Dict[str, Any]]:
    """
    Return logged notifications in emission order, optionally filtered by type.
    """
    query = db.query(EventLog).filter(EventLog.raffle_id == raffle_id)
    if event_type:
        query = query.filter(EventLog.event_type == event_type)

    events = query.order_by(EventLog.id).limit(limit).all()

    return [
        {
            "id": event.id,
            "event_type": event.event_type,
            "data": event.data,
            "created_at": event.created_at,
        }
        for event in events
    ]
