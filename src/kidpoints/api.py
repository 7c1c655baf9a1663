"""Convert Kid Points records into the JSON shapes the browser client reads."""

from __future__ import annotations

from typing import Dict

from .models import BalanceChange, Category, HistoryRow, LedgerEntry, Session, Subject


class ApiExporter:
    """Serialise domain objects using the field names of the points API."""

    def subject(self, subject: Subject) -> Dict[str, object]:
        return {
            "id": subject.id,
            "name": subject.name,
            "initials": subject.label,
            "color": subject.color,
            "balance": subject.balance,
        }

    def category(self, category: Category) -> Dict[str, object]:
        return {
            "id": category.id,
            "name": category.name,
            "color": category.color,
            "is_positive": category.is_positive,
        }

    def entry(self, entry: LedgerEntry) -> Dict[str, object]:
        return {
            "id": entry.id,
            "kid_id": entry.subject_id,
            "points": entry.delta,
            "tag": entry.category,
            "note": entry.note,
            "timestamp": entry.created_at.isoformat(),
        }

    def history_row(self, row: HistoryRow) -> Dict[str, object]:
        payload = self.entry(row.entry)
        payload.update(
            {
                "name": row.subject_name,
                "initials": row.subject_label,
                "color": row.subject_color,
            }
        )
        return payload

    def balance_change(self, change: BalanceChange) -> Dict[str, object]:
        return {
            "success": True,
            "kid": self.subject(change.subject),
            "transaction": self.entry(change.entry),
        }

    def session(self, session: Session) -> Dict[str, object]:
        return {
            "success": True,
            "sessionToken": session.token,
            "expiresAt": session.expires_at.isoformat(),
        }


__all__ = ["ApiExporter"]
