import os
import threading
import json
from datetime import datetime, timezone
import psycopg

# Ensure thread-safe DB access
_db_lock = threading.Lock()

# Singleton connection
_conn = None

def get_connection():
    global _conn
    if _conn is None:
        host = os.getenv("DB_HOST", "localhost")
        port = int(os.getenv("DB_PORT", "5432"))
        dbname = os.getenv("DB_NAME", "modern_art")
        user = os.getenv("DB_USER", "modern_art")
        password = os.getenv("DB_PASSWORD", "secret_password")
        _conn = psycopg.connect(
            host=host,
            port=port,
            dbname=dbname,
            user=user,
            password=password,
        )
    return _conn

def init_db():
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS players(
                player_id TEXT PRIMARY KEY,
                name TEXT,
                joined_at TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS games(
                game_id TEXT PRIMARY KEY,
                num_players INTEGER,
                starting_money INTEGER,
                seating JSONB,
                start_time TIMESTAMP WITH TIME ZONE,
                end_time TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS auctions(
                auction_id SERIAL PRIMARY KEY,
                game_id TEXT,
                round_number INTEGER,
                auction_type TEXT,
                artist TEXT,
                auctioneer TEXT,
                winner TEXT,
                price INTEGER,
                card_ids JSONB,
                timestamp TIMESTAMP WITH TIME ZONE
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS round_results(
                game_id      TEXT    NOT NULL,
                round_number INTEGER NOT NULL,
                artist       TEXT    NOT NULL,
                sold         INTEGER NOT NULL,
                rank         INTEGER NOT NULL,
                tile         INTEGER NOT NULL,
                value        INTEGER NOT NULL,
                PRIMARY KEY (game_id, round_number, artist)
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS bank_sales(
                game_id      TEXT    NOT NULL,
                round_number INTEGER NOT NULL,
                player_id    TEXT    NOT NULL,
                paintings    INTEGER NOT NULL,
                payout       INTEGER NOT NULL,
                PRIMARY KEY (game_id, round_number, player_id)
            );
        ''')
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS results(
                game_id     TEXT    NOT NULL,
                player_id   TEXT    NOT NULL,
                final_money INTEGER NOT NULL,
                paintings   INTEGER NOT NULL,
                rank        INTEGER NOT NULL,
                is_winner   BOOLEAN NOT NULL,
                PRIMARY KEY (game_id, player_id)
            );
        ''')
        conn.commit()

def log_player(player_id: str, name: str):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO players(player_id, name, joined_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (player_id) DO NOTHING''',
            (player_id, name, datetime.now(timezone.utc))
        )
        conn.commit()

def log_game_start(game_id: str, num_players: int, starting_money: int, seating: list):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO games
            (game_id, num_players, starting_money, seating, start_time)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (game_id)
            DO UPDATE
                SET start_time = EXCLUDED.start_time,
                    num_players = EXCLUDED.num_players,
                    starting_money = EXCLUDED.starting_money,
                    seating = EXCLUDED.seating
            ''',
            (game_id, num_players, starting_money, json.dumps(seating), datetime.now(timezone.utc))
        )
        conn.commit()

def log_auction(game_id: str, round_number: int, auction_type: str, outcome):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO auctions
            (game_id, round_number, auction_type, artist, auctioneer, winner, price, card_ids, timestamp)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)''',
            (game_id, round_number, auction_type, outcome.cards[0].artist,
             outcome.auctioneer_id, outcome.winner_id, outcome.price,
             json.dumps([c.card_id for c in outcome.cards]), datetime.now(timezone.utc))
        )
        conn.commit()

def log_round_end(game_id: str, round_number: int, results: list, sales: dict):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        for r in results:
            cursor.execute('''
                INSERT INTO round_results
                (game_id, round_number, artist, sold, rank, tile, value)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (game_id, round_number, artist) DO UPDATE SET
                    sold  = EXCLUDED.sold,
                    rank  = EXCLUDED.rank,
                    tile  = EXCLUDED.tile,
                    value = EXCLUDED.value
                ''',
                (game_id, round_number, r.artist, r.sold, r.rank, r.tile, r.value)
            )
        for pid, sale in sales.items():
            cursor.execute('''
                INSERT INTO bank_sales
                (game_id, round_number, player_id, paintings, payout)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (game_id, round_number, player_id) DO UPDATE SET
                    paintings = EXCLUDED.paintings,
                    payout    = EXCLUDED.payout
                ''',
                (game_id, round_number, pid, sale["paintings"], sale["payout"])
            )
        conn.commit()

def log_game_end(game_id: str, standings: list, winners: list):
    conn = get_connection()
    with _db_lock:
        cursor = conn.cursor()
        cursor.execute('''
            UPDATE games SET end_time = %s WHERE game_id = %s''',
            (datetime.now(timezone.utc), game_id)
        )
        for s in standings:
            cursor.execute('''
                INSERT INTO results
                (game_id, player_id, final_money, paintings, rank, is_winner)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (game_id, player_id) DO UPDATE SET
                    final_money = EXCLUDED.final_money,
                    paintings   = EXCLUDED.paintings,
                    rank        = EXCLUDED.rank,
                    is_winner   = EXCLUDED.is_winner
                ''',
                (game_id, s["player_id"], s["money"], s["paintings"], s["rank"],
                 s["player_id"] in winners)
            )
        conn.commit()
