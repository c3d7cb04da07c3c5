# storage/schema.py
"""
DDL for the pool event store. Postgres uses BYTEA and NUMERIC(78, 0); SQLite keeps
wide integers as base 10 TEXT because its INTEGER type is 64 bit.
"""
from typing import Dict, List, Tuple

# table -> ordered (column, postgres type, sqlite type)
_KEY = [
    ("transaction_hash", "BYTEA NOT NULL REFERENCES transactions(transaction_hash)",
     "BLOB NOT NULL REFERENCES transactions(transaction_hash)"),
    ("log_index", "BIGINT NOT NULL", "INTEGER NOT NULL"),
    ("contract_address", "BYTEA NOT NULL", "BLOB NOT NULL"),
]
_ADDR = ("BYTEA NOT NULL", "BLOB NOT NULL")
_NUM = ("NUMERIC(78, 0) NOT NULL", "TEXT NOT NULL")

EVENT_COLUMNS: Dict[str, List[Tuple[str, str, str]]] = {
    "initialization_events": _KEY + [
        ("creator", *_ADDR),
        ("sqrt_price_x96", *_NUM),
        ("tick", *_NUM),
    ],
    "swap_events": _KEY + [
        ("sender", *_ADDR),
        ("recipient", *_ADDR),
        ("amount0", *_NUM),
        ("amount1", *_NUM),
        ("sqrt_price_x96", *_NUM),
        ("liquidity", *_NUM),
        ("tick", *_NUM),
    ],
    "mint_events": _KEY + [
        ("sender", *_ADDR),
        ("owner", *_ADDR),
        ("tick_lower", *_NUM),
        ("tick_upper", *_NUM),
        ("amount", *_NUM),
        ("amount0", *_NUM),
        ("amount1", *_NUM),
    ],
    "burn_events": _KEY + [
        ("owner", *_ADDR),
        ("tick_lower", *_NUM),
        ("tick_upper", *_NUM),
        ("amount", *_NUM),
        ("amount0", *_NUM),
        ("amount1", *_NUM),
    ],
    "collect_events": _KEY + [
        ("owner", *_ADDR),
        ("recipient", *_ADDR),
        ("tick_lower", *_NUM),
        ("tick_upper", *_NUM),
        ("amount0", *_NUM),
        ("amount1", *_NUM),
    ],
}

# columns holding exact wide integers; SQLite returns them as TEXT
NUMERIC_COLUMNS = {
    col for cols in EVENT_COLUMNS.values() for col, pg, _ in cols if pg.startswith("NUMERIC")
}

CREATE_TABLE_BLOCKS = {
    "postgres": """
CREATE TABLE IF NOT EXISTS blocks (
    block_number BIGINT PRIMARY KEY,
    block_timestamp BIGINT NOT NULL
);
""",
    "sqlite": """
CREATE TABLE IF NOT EXISTS blocks (
    block_number INTEGER PRIMARY KEY,
    block_timestamp INTEGER NOT NULL
);
""",
}

CREATE_TABLE_TXS = {
    "postgres": """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_hash BYTEA PRIMARY KEY,
    block_number BIGINT NOT NULL REFERENCES blocks(block_number),
    transaction_index BIGINT NOT NULL,
    transaction_sender BYTEA NOT NULL
);
""",
    "sqlite": """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_hash BLOB PRIMARY KEY,
    block_number INTEGER NOT NULL REFERENCES blocks(block_number),
    transaction_index INTEGER NOT NULL,
    transaction_sender BLOB NOT NULL
);
""",
}


def create_event_table(table: str, dialect: str) -> str:
    pos = 1 if dialect == "postgres" else 2
    cols = ",\n".join(f"    {c[0]} {c[pos]}" for c in EVENT_COLUMNS[table])
    return (
        f"CREATE TABLE IF NOT EXISTS {table} (\n{cols},\n"
        f"    PRIMARY KEY (transaction_hash, log_index)\n);"
    )


def create_indexes() -> List[str]:
    stmts = [
        "CREATE INDEX IF NOT EXISTS transactions_block_number_idx ON transactions(block_number);",
        "CREATE INDEX IF NOT EXISTS blocks_timestamp_idx ON blocks(block_timestamp);",
    ]
    for table, cols in EVENT_COLUMNS.items():
        names = {c[0] for c in cols}
        stmts.append(
            f"CREATE INDEX IF NOT EXISTS {table}_contract_address_idx ON {table}(contract_address);"
        )
        if "owner" in names:
            stmts.append(f"CREATE INDEX IF NOT EXISTS {table}_owner_idx ON {table}(owner);")
        stmts.append(
            f"CREATE INDEX IF NOT EXISTS {table}_contract_time_idx "
            f"ON {table}(contract_address, transaction_hash, log_index);"
        )
    return stmts


def all_ddl(dialect: str) -> List[str]:
    """Parents before children so foreign keys resolve."""
    return (
        [CREATE_TABLE_BLOCKS[dialect], CREATE_TABLE_TXS[dialect]]
        + [create_event_table(t, dialect) for t in EVENT_COLUMNS]
        + create_indexes()
    )


def event_column_names(table: str) -> List[str]:
    return [c[0] for c in EVENT_COLUMNS[table]]


EVENT_TABLES = list(EVENT_COLUMNS)
