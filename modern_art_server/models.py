from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from modern_art_server.rules import ARTISTS, NUM_ROUNDS


@dataclass(frozen=True)
class Card:
    card_id: str
    artist: str
    auction_type: str   # one of rules.AUCTION_TYPES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Card":
        return cls(card_id=data["card_id"], artist=data["artist"],
                   auction_type=data["auction_type"])


@dataclass
class Player:
    player_id: str
    name: str
    money: int = 100
    hand: List[Card] = field(default_factory=list)
    # paintings bought this round; emptied by the bank sale
    purchases: List[Card] = field(default_factory=list)

    def find_card(self, card_id: str) -> Optional[Card]:
        return next((c for c in self.hand if c.card_id == card_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(
            player_id=data["player_id"],
            name=data["name"],
            money=data["money"],
            hand=[Card.from_dict(c) for c in data.get("hand", [])],
            purchases=[Card.from_dict(c) for c in data.get("purchases", [])],
        )


@dataclass
class AuctionOutcome:
    auctioneer_id: str
    winner_id: str
    price: int
    cards: List[Card]

    @property
    def self_bought(self) -> bool:
        return self.winner_id == self.auctioneer_id


@dataclass
class ArtistResult:
    artist: str
    sold: int
    rank: int
    tile: int
    value: int      # running total including this tile


@dataclass
class ArtistValueBoard:
    tiles: Dict[str, List[int]] = field(default_factory=lambda: {a: [] for a in ARTISTS})

    def value(self, artist: str) -> int:
        return sum(self.tiles[artist])

    def values(self) -> Dict[str, int]:
        return {a: self.value(a) for a in self.tiles}

    def append_round(self, round_tiles: Dict[str, int]) -> None:
        if set(round_tiles) != set(self.tiles):
            raise ValueError("A round must assign exactly one tile to every artist")
        for artist, tile in round_tiles.items():
            if tile < 0:
                raise ValueError(f"Negative tile for {artist}: {tile}")
            if len(self.tiles[artist]) >= NUM_ROUNDS:
                raise ValueError(f"{artist} already holds {NUM_ROUNDS} tiles")
        for artist, tile in round_tiles.items():
            self.tiles[artist].append(tile)


@dataclass
class Round:
    number: int = 1
    cards_sold_by_artist: Dict[str, int] = field(default_factory=lambda: {a: 0 for a in ARTISTS})
    phase: str = "dealing"      # dealing, auction, round_ending, selling_to_bank
    active_auction: Optional[Any] = None
    unsold_cards: List[Card] = field(default_factory=list)
    results: List[ArtistResult] = field(default_factory=list)
