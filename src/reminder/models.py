"""
Data models for reminders.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Reminder:
    """Reminder data model."""

    id: Optional[int]
    user_id: str
    content: str
    priority: int
    created_at: datetime
    summary: str = ""

    @property
    def display_text(self) -> str:
        """Summary when one was generated, otherwise the raw content."""
        if self.summary and self.summary.strip():
            return self.summary
        return self.content

    def __str__(self) -> str:
        """String representation."""
        return f"[{self.priority}] {self.display_text} ({self.user_id})"

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'content': self.content,
            'priority': self.priority,
            'summary': self.summary,
            'created_at': self.created_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Reminder':
        """Create from dictionary."""
        return cls(
            id=data.get('id'),
            user_id=data['user_id'],
            content=data['content'],
            priority=int(data['priority']),
            created_at=datetime.fromisoformat(data['created_at']),
            summary=data.get('summary') or ""
        )
