from datetime import datetime, timezone
from models.db import db


def utcnow() -> datetime:
    # naive UTC, matching how SQLite hands datetimes back
    return datetime.now(timezone.utc).replace(tzinfo=None)


# IPv6 max length
ADDRESS_MAX_LENGTH = 45
IDENTIFIER_MAX_LENGTH = 255


class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"
    __table_args__ = (
        db.Index("idx_ip_username", "client_address", "account_identifier"),
        db.Index("idx_created_at", "occurred_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    client_address = db.Column(db.String(ADDRESS_MAX_LENGTH), nullable=False)

    # email/username when the login form carried one, otherwise tracked by address only
    account_identifier = db.Column(db.String(IDENTIFIER_MAX_LENGTH), nullable=True)

    occurred_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # advisory only, counting never reads it
    blocked = db.Column(db.Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        who = self.account_identifier or "-"
        return f"<LoginAttempt {self.client_address} {who} at {self.occurred_at}>"
