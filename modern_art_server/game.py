import os
import uuid
import random
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from modern_art_server.auction import (
    Auction, auction_from_dict, create_auction,
)
from modern_art_server.deck import create_deck, deal, shuffle_deck
from modern_art_server.errors import ErrorKind, RuleViolation
from modern_art_server.models import (
    ArtistResult, ArtistValueBoard, AuctionOutcome, Card, Player, Round,
)
from modern_art_server.rules import (
    FIXED_PRICE, HIDDEN, NUM_ROUNDS, ROUND_ENDING_COUNT, clockwise_from,
)
from modern_art_server.scoring import score_round
from modern_art_server.settlement import bank_sale, final_standings, settle_auction
from modern_art_server import db

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s %(message)s'
)
logger = logging.getLogger(__name__)

NUM_PLAYERS = int(os.getenv("NUM_PLAYERS", "4"))
if NUM_PLAYERS not in (3, 4, 5):
    raise RuntimeError("NUM_PLAYERS must be 3, 4 or 5")
STARTING_MONEY = int(os.getenv("STARTING_MONEY", "100"))

Result = Tuple[Optional[dict], Optional[RuleViolation]]


class Game:
    def __init__(self, seed: Optional[int] = None) -> None:
        self.game_id = None
        self.rng = random.Random(seed)
        self.reset()
        logger.info("Initialized new Game instance.")

    def reset(self) -> None:
        self.state = "waiting"          # waiting, playing, completed
        self.players: Dict[str, Player] = {}               # pid -> Player
        self.seating: List[str] = []                       # clockwise
        self.deck: List[Card] = []
        self.round: Optional[Round] = None
        self.board = ArtistValueBoard()
        self.turn_pointer: Optional[str] = None            # whose turn to play a card
        self.last_player: Optional[str] = None             # who played the latest card
        self.winners: List[str] = []
        self.standings: List[dict] = []
        self.events: List[dict] = []
        self.game_id = uuid.uuid4().hex
        logger.info("Game state has been reset.")

    # ---- setup ----

    def add_player(self, name: str) -> str:
        pid = uuid.uuid4().hex
        self.players[pid] = Player(player_id=pid, name=name, money=STARTING_MONEY)
        self.seating.append(pid)
        logger.info(f"Player added: {name} (ID: {pid})")
        db.log_player(pid, name)
        return pid

    def can_start(self) -> bool:
        return len(self.players) == NUM_PLAYERS

    def start_game(self, deck: Optional[List[Card]] = None) -> None:
        """
        Deal round one and open play. `deck` is dealt as given; by default a
        freshly shuffled full deck is used.
        """
        if len(self.seating) not in (3, 4, 5):
            raise RuntimeError(f"Cannot start with {len(self.seating)} players")
        logger.info("Starting new game.")
        self.deck = list(deck) if deck is not None else shuffle_deck(create_deck(), self.rng)
        self.state = "playing"
        db.log_game_start(self.game_id, len(self.seating), STARTING_MONEY, self.seating)
        self._start_round(1, self.seating[0])

    def _start_round(self, number: int, first_player: str) -> None:
        self.round = Round(number=number, phase="dealing")
        hands, self.deck = deal(self.deck, len(self.seating), number)
        for pid, hand in zip(self.seating, hands):
            self.players[pid].hand.extend(hand)
        self.round.phase = "auction"
        self.events.append({"type": "round_started", "round": number})
        logger.info(f"Round {number} started; {len(self.deck)} cards left in deck.")
        self.turn_pointer = self._next_with_cards(first_player, include_self=True)
        if self.turn_pointer is None:
            self._end_round("exhausted")

    def _next_with_cards(self, pid: str, include_self: bool = False) -> Optional[str]:
        order = clockwise_from(self.seating, pid, include_self=True)
        if include_self:
            order = [pid] + order[:-1]
        return next((p for p in order if self._can_play(p)), None)

    def _can_play(self, pid: str) -> bool:
        return any(self._playable(pid, c) for c in self.players[pid].hand)

    def _playable(self, pid: str, card: Card) -> bool:
        # a fixed price needs at least 1 to back it
        return card.auction_type != FIXED_PRICE or self.players[pid].money > 0

    # ---- intent plumbing ----

    def _intent(self, pid: str, action: str, fn: Callable[[], dict]) -> Result:
        try:
            self._require_player(pid)
            result = fn()
        except RuleViolation as err:
            logger.warning(f"Rejected {action} from {pid}: {err}")
            return None, err
        return result, None

    def _require_player(self, pid: str) -> None:
        if self.state == "completed":
            raise RuleViolation(ErrorKind.GAME_ALREADY_ENDED, "The game is over")
        if self.state != "playing":
            raise RuleViolation(ErrorKind.GAME_NOT_STARTED, "The game has not started")
        if pid not in self.players:
            raise RuleViolation(ErrorKind.UNKNOWN_PLAYER, f"No player {pid}")

    def _require_auction(self) -> Auction:
        if self.round.active_auction is None:
            raise RuleViolation(ErrorKind.NO_ACTIVE_AUCTION, "No auction is running")
        return self.round.active_auction

    def _money(self, pid: str) -> int:
        return self.players[pid].money

    @staticmethod
    def _amount(value: Any, kind: ErrorKind) -> int:
        if not isinstance(value, int) or isinstance(value, bool):
            raise RuleViolation(kind, "Amount must be an integer")
        return value

    # ---- card play ----

    def play_card(self, pid: str, card_id: str) -> Result:
        return self._intent(pid, "play_card", lambda: self._play_card(pid, card_id))

    def _play_card(self, pid: str, card_id: str) -> dict:
        if self.round.active_auction is not None:
            raise RuleViolation(ErrorKind.AUCTION_ALREADY_ACTIVE, "Finish the running auction first")
        if self.round.phase != "auction":
            raise RuleViolation(ErrorKind.NOT_YOUR_TURN, "The round is over")
        if pid != self.turn_pointer:
            raise RuleViolation(ErrorKind.NOT_YOUR_TURN, f"It is {self.turn_pointer}'s turn")
        player = self.players[pid]
        card = player.find_card(card_id)
        if card is None:
            raise RuleViolation(ErrorKind.CARD_NOT_IN_HAND, f"{card_id} is not in hand")
        if not self._playable(pid, card):
            raise RuleViolation(ErrorKind.INSUFFICIENT_FUNDS, "No money to set a fixed price")

        player.hand.remove(card)
        self.last_player = pid
        self.events.append({"type": "card_played", "player_id": pid, "card": card.__dict__})
        counts = self.round.cards_sold_by_artist
        if counts[card.artist] + 1 >= ROUND_ENDING_COUNT:
            counts[card.artist] += 1
            self.round.unsold_cards.append(card)
            self.round.phase = "round_ending"
            logger.info(f"{card.artist} reached {ROUND_ENDING_COUNT} cards; round {self.round.number} ends.")
            self._end_round("fifth_card")
            return {"round_ended": True, "unsold": card.__dict__}

        self.round.active_auction = create_auction(card, pid, self.seating)
        logger.info(f"{player.name} auctions {card.card_id} ({card.artist}, {card.auction_type}).")
        return {"auction": self.round.active_auction.kind,
                "next_actors": self.round.active_auction.next_actors()}

    # ---- auction intents ----

    def submit_bid(self, pid: str, amount: int) -> Result:
        def apply():
            auction = self._require_auction()
            auction.submit_bid(pid, self._amount(amount, ErrorKind.INVALID_BID), self._money(pid))
            return self._resolve()
        return self._intent(pid, "bid", apply)

    def pass_turn(self, pid: str) -> Result:
        def apply():
            self._require_auction().pass_turn(pid)
            return self._resolve()
        return self._intent(pid, "pass", apply)

    def set_price(self, pid: str, amount: int) -> Result:
        def apply():
            auction = self._require_auction()
            auction.set_price(pid, self._amount(amount, ErrorKind.INVALID_PRICE), self._money(pid))
            return self._resolve()
        return self._intent(pid, "set_price", apply)

    def buy_at_price(self, pid: str) -> Result:
        def apply():
            self._require_auction().buy_at_price(pid, self._money(pid))
            return self._resolve()
        return self._intent(pid, "buy", apply)

    def offer_second_card(self, pid: str, card_id: Optional[str]) -> Result:
        def apply():
            auction = self._require_auction()
            auction.require_offer_turn(pid)
            card = None
            if card_id is not None:
                card = self.players[pid].find_card(card_id)
                if card is None:
                    raise RuleViolation(ErrorKind.CARD_NOT_IN_HAND, f"{card_id} is not in hand")
                if not self._playable(pid, card):
                    raise RuleViolation(ErrorKind.INSUFFICIENT_FUNDS, "No money to set a fixed price")
            sold = self.round.cards_sold_by_artist[auction.card.artist]
            auction.offer_second_card(pid, card, sold)
            if card is not None:
                self.players[pid].hand.remove(card)
                self.last_player = pid
                self.events.append({"type": "card_played", "player_id": pid, "card": card.__dict__})
                logger.info(f"{self.players[pid].name} adds {card.card_id}; "
                            f"{card.auction_type} auction for the pair.")
            return self._resolve()
        return self._intent(pid, "offer_second_card", apply)

    def accept_bid(self, pid: str) -> Result:
        def apply():
            self._require_auction().accept_bid(pid)
            return self._resolve()
        return self._intent(pid, "accept", apply)

    def outbid(self, pid: str) -> Result:
        def apply():
            self._require_auction().outbid(pid, self._money(pid))
            return self._resolve()
        return self._intent(pid, "outbid", apply)

    def take_free(self, pid: str) -> Result:
        def apply():
            self._require_auction().take_free(pid)
            return self._resolve()
        return self._intent(pid, "take_free", apply)

    def close_auction(self, pid: str) -> Result:
        def apply():
            self._require_auction().close(pid)
            return self._resolve()
        return self._intent(pid, "close", apply)

    def timeout(self, pid: str) -> Result:
        """The auctioneer forces every missing sealed bid to 0."""
        def apply():
            self._require_auction().timeout(pid)
            return self._resolve()
        return self._intent(pid, "timeout", apply)

    def next_round(self, pid: str) -> Result:
        def apply():
            if self.round.phase != "selling_to_bank":
                raise RuleViolation(ErrorKind.OUT_OF_TURN, "The current round is still running")
            first = self.seating[0]
            if self.last_player is not None:
                first = clockwise_from(self.seating, self.last_player)[0]
            self._start_round(self.round.number + 1, first)
            return {"round": self.round.number, "turn_pointer": self.turn_pointer}
        return self._intent(pid, "next_round", apply)

    # ---- resolution ----

    def _resolve(self) -> dict:
        auction = self.round.active_auction
        outcome = auction.outcome()
        if outcome is None:
            return {"next_actors": auction.next_actors()}

        settle_auction(self.players, outcome)
        self.round.active_auction = None
        artist = outcome.cards[0].artist
        self.round.cards_sold_by_artist[artist] += len(outcome.cards)
        self.events.append({"type": "auction_settled", "auction_type": auction.kind,
                            **self._outcome_dict(outcome)})
        db.log_auction(self.game_id, self.round.number, auction.kind, outcome)

        self.turn_pointer = self._next_with_cards(outcome.auctioneer_id)
        if self.turn_pointer is None:
            logger.info(f"All hands are empty; round {self.round.number} ends.")
            self.round.phase = "round_ending"
            self._end_round("exhausted")
        return {"outcome": self._outcome_dict(outcome)}

    @staticmethod
    def _outcome_dict(outcome: AuctionOutcome) -> dict:
        return {
            "auctioneer_id": outcome.auctioneer_id,
            "winner_id": outcome.winner_id,
            "price": outcome.price,
            "cards": [c.__dict__ for c in outcome.cards],
        }

    def _end_round(self, reason: str) -> None:
        self.round.phase = "selling_to_bank"
        self.turn_pointer = None
        results = score_round(self.board, self.round.cards_sold_by_artist)
        self.round.results = results
        sales = bank_sale(self.players, self.board)
        self.events.append({"type": "round_ended", "round": self.round.number, "reason": reason,
                            "results": [r.__dict__ for r in results]})
        self.events.append({"type": "bank_sale", "round": self.round.number, "sales": sales})
        logger.info(f"Round {self.round.number} scored: "
                    f"{ {r.artist: r.tile for r in results} }")
        db.log_round_end(self.game_id, self.round.number, results, sales)
        if self.round.number == NUM_ROUNDS:
            self._end_game({pid: s["paintings"] for pid, s in sales.items()})

    def _end_game(self, paintings: Dict[str, int]) -> None:
        self.standings, self.winners = final_standings(self.players, paintings)
        self.state = "completed"
        self.events.append({"type": "game_ended", "winners": list(self.winners)})
        logger.info(f"Game over. Winners: {[self.players[w].name for w in self.winners]}")
        db.log_game_end(self.game_id, self.standings, self.winners)

    # ---- read accessors ----

    @property
    def winner(self) -> Optional[Player]:
        if len(self.winners) != 1:
            return None
        return self.players[self.winners[0]]

    def turn_order_view(self) -> dict:
        auction = self.round.active_auction if self.round else None
        if auction is None:
            return {"turn_pointer": self.turn_pointer, "auction": None, "next_actors": []}
        return {
            "turn_pointer": self.turn_pointer,
            "auction": auction.kind,
            "auctioneer_id": auction.current_auctioneer_id,
            "next_actors": auction.next_actors(),
        }

    def get_state(self, req_pid: str) -> dict:
        me = self.players[req_pid]
        resp = {
            "state": self.state,
            "round": self.round.number if self.round else None,
            "phase": self.round.phase if self.round else None,
            "turn_pointer": self.turn_pointer,
            "hand": [c.__dict__ for c in me.hand],
            "hand_sizes": {pid: len(p.hand) for pid, p in self.players.items()},
            "balances": {pid: p.money for pid, p in self.players.items()},
            "purchases": {pid: [c.__dict__ for c in p.purchases] for pid, p in self.players.items()},
            "seating": list(self.seating),
            "board": {a: list(t) for a, t in self.board.tiles.items()},
            "artist_values": self.board.values(),
            "sold": dict(self.round.cards_sold_by_artist) if self.round else {},
            "auction": None,
            "turn": self.turn_order_view() if self.round else None,
            "events": list(self.events),
        }
        if self.round and self.round.active_auction is not None:
            resp["auction"] = _public_auction(self.round.active_auction.to_dict())
        if self.round and self.round.results:
            resp["results"] = [r.__dict__ for r in self.round.results]
        if self.state == "completed":
            resp["standings"] = self.standings
            resp["winners"] = self.winners
        return resp

    def get_game_status(self) -> dict:
        return {
            "state": self.state,
            "current_players": len(self.players),
            "num_players": NUM_PLAYERS,
            "round": self.round.number if self.round else None,
        }

    # ---- snapshots ----

    def snapshot(self) -> dict:
        """Every field needed to resume the game exactly where it is."""
        rnd = self.round
        return {
            "game_id": self.game_id,
            "state": self.state,
            "players": [self.players[pid].to_dict() for pid in self.seating],
            "deck": [c.__dict__ for c in self.deck],
            "board": {a: list(t) for a, t in self.board.tiles.items()},
            "turn_pointer": self.turn_pointer,
            "last_player": self.last_player,
            "winners": list(self.winners),
            "standings": list(self.standings),
            "events": list(self.events),
            "round": None if rnd is None else {
                "number": rnd.number,
                "cards_sold_by_artist": dict(rnd.cards_sold_by_artist),
                "phase": rnd.phase,
                "active_auction": rnd.active_auction.to_dict() if rnd.active_auction else None,
                "unsold_cards": [c.__dict__ for c in rnd.unsold_cards],
                "results": [r.__dict__ for r in rnd.results],
            },
        }

    @classmethod
    def restore(cls, snap: dict) -> "Game":
        game = cls()
        game.game_id = snap["game_id"]
        game.state = snap["state"]
        players = [Player.from_dict(p) for p in snap["players"]]
        game.players = {p.player_id: p for p in players}
        game.seating = [p.player_id for p in players]
        game.deck = [Card.from_dict(c) for c in snap["deck"]]
        game.board = ArtistValueBoard(tiles={a: list(t) for a, t in snap["board"].items()})
        game.turn_pointer = snap["turn_pointer"]
        game.last_player = snap["last_player"]
        game.winners = list(snap["winners"])
        game.standings = list(snap["standings"])
        game.events = list(snap["events"])
        rnd = snap["round"]
        if rnd is not None:
            game.round = Round(
                number=rnd["number"],
                cards_sold_by_artist=dict(rnd["cards_sold_by_artist"]),
                phase=rnd["phase"],
                active_auction=auction_from_dict(rnd["active_auction"]) if rnd["active_auction"] else None,
                unsold_cards=[Card.from_dict(c) for c in rnd["unsold_cards"]],
                results=[ArtistResult(**r) for r in rnd["results"]],
            )
        return game


def _public_auction(data: dict) -> dict:
    """Hide sealed bid amounts; show only who has bid."""
    if data["kind"] == HIDDEN:
        data = dict(data)
        data["submitted"] = sorted(data.pop("sealed_bids"))
    elif data.get("resolved_auction"):
        data = dict(data)
        data["resolved_auction"] = _public_auction(data["resolved_auction"])
    return data
