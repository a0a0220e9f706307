from typing import Dict, List, Optional

from modern_art_server.game import Game
from modern_art_server.models import Card, Player, Round
from modern_art_server.rules import ARTISTS, OPEN

A, B, C, D, E = ARTISTS
SEATS = ["p0", "p1", "p2", "p3"]


def card(cid: str, artist: str = A, auction_type: str = OPEN) -> Card:
    return Card(card_id=cid, artist=artist, auction_type=auction_type)


def build_game(hands: List[List[Card]], money: int = 100,
               sold: Optional[Dict[str, int]] = None, round_number: int = 1) -> Game:
    """A game already in its auction phase, seated p0..pN, p0 to play."""
    game = Game()
    for i, hand in enumerate(hands):
        pid = f"p{i}"
        game.players[pid] = Player(player_id=pid, name=f"P{i}", money=money, hand=list(hand))
        game.seating.append(pid)
    game.state = "playing"
    game.round = Round(number=round_number, phase="auction")
    if sold:
        game.round.cards_sold_by_artist.update(sold)
    game.turn_pointer = "p0"
    return game
