import time

from sqlalchemy.dialects import postgresql, sqlite

from hodl import db


def now_ms() -> int:
    return int(time.time() * 1000)


def dialect_insert(model):
    """INSERT construct supporting ON CONFLICT for the bound database."""
    name = db.session.get_bind().dialect.name
    if name == 'postgresql':
        return postgresql.insert(model)
    if name == 'sqlite':
        return sqlite.insert(model)
    raise RuntimeError(f'upserts not supported on {name}')
