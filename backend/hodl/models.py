from hodl import db
from web3 import Web3


class Score(db.Model):
    """Best hold duration per wallet per round. Wallets are stored lowercase."""
    __tablename__ = 'score'
    round_id = db.Column(db.Integer, primary_key=True)
    wallet = db.Column(db.String(42), primary_key=True)
    best_score_ms = db.Column(db.BigInteger, nullable=False)
    # Server time (ms) at which the current best was achieved; ranking tie-break
    updated_at_ms = db.Column(db.BigInteger, nullable=False)

    __table_args__ = (
        db.Index('ix_score_round_rank', 'round_id', 'best_score_ms', 'updated_at_ms'),
    )

    def to_dict(self):
        return {
            'wallet': self.wallet,
            'bestScoreMs': int(self.best_score_ms),
        }


class AttemptSession(db.Model):
    """The single in-flight timed attempt of a wallet."""
    __tablename__ = 'attempt_session'
    wallet = db.Column(db.String(42), primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    round_id = db.Column(db.Integer, nullable=False)
    started_at_ms = db.Column(db.BigInteger, nullable=False)


class RoundClosure(db.Model):
    """Local record that a round was paid out. The row's presence is the closed flag."""
    __tablename__ = 'round_closure'
    round_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    winner = db.Column(db.String(42), nullable=False)
    # uint256 wei does not fit a BigInteger; kept as a decimal string
    final_pot_wei = db.Column(db.String(78), nullable=False)
    tx_hash = db.Column(db.String(66), nullable=True)
    closed_at_ms = db.Column(db.BigInteger, nullable=False)

    @property
    def final_pot_eth(self):
        return str(Web3.from_wei(int(self.final_pot_wei), 'ether'))

    def to_dict(self):
        return {
            'roundId': self.round_id,
            'closed': True,
            'winner': self.winner,
            'finalPotWei': self.final_pot_wei,
            'finalPotEth': self.final_pot_eth,
            'txHash': self.tx_hash,
            'closedAt': self.closed_at_ms,
        }
