from voteroom import db


class StoredSession(db.Model):
    """Serialized ``VotingSession`` with a refreshable expiry."""
    __tablename__ = 'voting_session'
    code = db.Column(db.String(4), primary_key=True)
    payload = db.Column(db.Text, nullable=False)  # JSON-encoded VotingSession.to_dict()
    expires_at = db.Column(db.Float, nullable=False, index=True)

    def __repr__(self):
        return f"<StoredSession {self.code}>"


class IdentityBinding(db.Model):
    """Which live session a durable identity currently belongs to."""
    __tablename__ = 'identity_binding'
    identity = db.Column(db.String(64), primary_key=True)
    session_code = db.Column(db.String(4), nullable=False, index=True)
    expires_at = db.Column(db.Float, nullable=False, index=True)

    def __repr__(self):
        return f"<IdentityBinding {self.identity} -> {self.session_code}>"
