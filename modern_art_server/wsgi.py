import os
from modern_art_server import db
from modern_art_server.api import app
from modern_art_server.game import Game

seed = os.getenv("GAME_SEED")

db.init_db()
app.game = Game(seed=int(seed) if seed else None)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
