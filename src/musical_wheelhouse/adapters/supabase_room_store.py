"""Supabase-backed room store."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from musical_wheelhouse.domain.codec import decode_session, encode_session
from musical_wheelhouse.domain.models import Session
from musical_wheelhouse.services.sync import RoomStore


@dataclass
class SupabaseRoomStore(RoomStore):
    """Stores each room as one row holding the encoded session."""

    client: Client
    table: str = "rooms"

    def get(self, key: str) -> Session | None:
        """Return the session stored for a room code, if present."""
        response = (
            self.client.table(self.table)
            .select("code, state_json")
            .eq("code", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return decode_session(response.data[0]["state_json"])

    def set(self, key: str, session: Session) -> None:
        """Replace the whole row for a room code."""
        self.client.table(self.table).upsert(
            {
                "code": key,
                "state_json": encode_session(session),
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).execute()

    def delete(self, key: str) -> None:
        self.client.table(self.table).delete().eq("code", key).execute()
