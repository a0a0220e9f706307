import random
from typing import List, Optional, Tuple

from modern_art_server.models import Card
from modern_art_server.rules import (
    ARTISTS, AUCTION_DISTRIBUTION, CARDS_PER_ROUND, NUM_ROUNDS, PRINT_COUNTS,
)


def create_deck() -> List[Card]:
    """Build the full unshuffled deck from the distribution table."""
    deck: List[Card] = []
    for artist in ARTISTS:
        dist = AUCTION_DISTRIBUTION[artist]
        if sum(dist.values()) != PRINT_COUNTS[artist]:
            raise ValueError(f"Card count mismatch for {artist}: expected "
                             f"{PRINT_COUNTS[artist]}, got {sum(dist.values())}")
        for auction_type, count in dist.items():
            for _ in range(count):
                deck.append(Card(card_id=f"c{len(deck)}", artist=artist,
                                 auction_type=auction_type))
    return deck


def shuffle_deck(deck: List[Card], rng: Optional[random.Random] = None) -> List[Card]:
    shuffled = list(deck)
    (rng or random).shuffle(shuffled)
    return shuffled


def deal(deck: List[Card], player_count: int, round_number: int) -> Tuple[List[List[Card]], List[Card]]:
    """
    Deal the round's cards in blocks, one block per seat. Returns the hands
    and what is left of the deck.
    """
    if player_count not in CARDS_PER_ROUND:
        raise ValueError(f"Invalid player count: {player_count}")
    if not 1 <= round_number <= NUM_ROUNDS:
        raise ValueError(f"Invalid round: {round_number}")
    per = CARDS_PER_ROUND[player_count][round_number - 1]
    if len(deck) < per * player_count:
        raise ValueError(f"Not enough cards in deck: need {per * player_count}, have {len(deck)}")
    hands = [deck[i * per:(i + 1) * per] for i in range(player_count)]
    return hands, deck[per * player_count:]
