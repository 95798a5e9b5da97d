"""Migration 001: Initial schema.

Creates the oracle's tables:
- sync_cursors: last fully ingested height per network
- proposals / votes: rows ingested from governance logs
- vote_results: per-option tally output
- power_snapshots: historical power, one row per (network, address, day)

Power values are uint256 on chain, stored as NUMERIC(78,0). Tally weights and
totals are sums of share-weighted powers and use unconstrained NUMERIC.
"""

version = "001"
description = "initial_schema"


def up(conn) -> None:
    """Create the oracle schema."""
    with conn.cursor() as cur:
        cur.execute("""
            CREATE TABLE IF NOT EXISTS sync_cursors (
                network_id BIGINT PRIMARY KEY,
                height BIGINT NOT NULL CHECK (height >= 0),
                block_time BIGINT NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS proposals (
                id BIGSERIAL PRIMARY KEY,
                network_id BIGINT NOT NULL,
                proposal_id NUMERIC(78, 0) NOT NULL,
                creator TEXT NOT NULL,
                content TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                start_time BIGINT NOT NULL,
                expiration_time BIGINT NOT NULL,
                snapshot_day DATE NOT NULL,
                developer_share INTEGER NOT NULL DEFAULT 0,
                sp_share INTEGER NOT NULL DEFAULT 0,
                client_share INTEGER NOT NULL DEFAULT 0,
                token_holder_share INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'expired', 'counted')),
                block_number BIGINT NOT NULL,
                block_time BIGINT NOT NULL,
                tx_hash TEXT NOT NULL,
                log_index INTEGER NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (network_id, proposal_id)
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_proposals_status ON proposals(network_id, status)")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS votes (
                id BIGSERIAL PRIMARY KEY,
                network_id BIGINT NOT NULL,
                proposal_id NUMERIC(78, 0) NOT NULL,
                voter TEXT NOT NULL,
                payload TEXT NOT NULL,
                tx_hash TEXT NOT NULL,
                log_index INTEGER NOT NULL,
                block_number BIGINT NOT NULL,
                block_time BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                UNIQUE (network_id, tx_hash, log_index)
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_votes_proposal ON votes(network_id, proposal_id)")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS vote_results (
                network_id BIGINT NOT NULL,
                proposal_id NUMERIC(78, 0) NOT NULL,
                option_id TEXT NOT NULL,
                weight NUMERIC NOT NULL DEFAULT 0,
                percentage NUMERIC(7, 2) NOT NULL DEFAULT 0,
                vote_count INTEGER NOT NULL DEFAULT 0,
                developer_total NUMERIC NOT NULL DEFAULT 0,
                sp_total NUMERIC NOT NULL DEFAULT 0,
                client_total NUMERIC NOT NULL DEFAULT 0,
                token_holder_total NUMERIC NOT NULL DEFAULT 0,
                computed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (network_id, proposal_id, option_id)
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS power_snapshots (
                network_id BIGINT NOT NULL,
                address TEXT NOT NULL,
                day DATE NOT NULL,
                developer_power NUMERIC(78, 0) NOT NULL,
                sp_power NUMERIC(78, 0) NOT NULL,
                client_power NUMERIC(78, 0) NOT NULL,
                token_holder_power NUMERIC(78, 0) NOT NULL,
                block_height BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                PRIMARY KEY (network_id, address, day)
            )
        """)


def down(conn) -> None:
    with conn.cursor() as cur:
        for table in ("power_snapshots", "vote_results", "votes", "proposals", "sync_cursors"):
            cur.execute(f"DROP TABLE IF EXISTS {table}")
