"""
Auction state machines, one per auction type printed on the cards.

A machine only validates intents and records decisions; it never touches a
player's money or hand. Once `outcome()` returns an AuctionOutcome the
machine is terminal and the caller settles it.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, ClassVar, Dict, List, Optional, Set

from modern_art_server.errors import ErrorKind, RuleViolation
from modern_art_server.models import AuctionOutcome, Card
from modern_art_server.rules import (
    OPEN, ONE_OFFER, HIDDEN, FIXED_PRICE, DOUBLE, ROUND_ENDING_COUNT,
    clockwise_from,
)


def _out_of_turn(message: str) -> RuleViolation:
    return RuleViolation(ErrorKind.OUT_OF_TURN, message)


def _check_funds(amount: int, money: int) -> None:
    if amount > money:
        raise RuleViolation(ErrorKind.INSUFFICIENT_FUNDS,
                            f"Bid of {amount} exceeds available money {money}")


class Auction:
    """Intent surface shared by every auction type. Unsupported intents are out of turn."""
    kind: ClassVar[str] = ""
    auctioneer_id: str
    card: Card

    def submit_bid(self, pid: str, amount: int, money: int) -> None:
        raise _out_of_turn(f"{self.kind} auction does not take bids now")

    def pass_turn(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction has no pass for this player")

    def set_price(self, pid: str, amount: int, money: int) -> None:
        raise _out_of_turn(f"{self.kind} auction has no price to set")

    def buy_at_price(self, pid: str, money: int) -> None:
        raise _out_of_turn(f"{self.kind} auction has no fixed price")

    def accept_bid(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction has no bid to accept")

    def outbid(self, pid: str, money: int) -> None:
        raise _out_of_turn(f"{self.kind} auction cannot be outbid")

    def take_free(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction cannot be taken for free")

    def close(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction cannot be closed")

    def timeout(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction has no timeout")

    def require_offer_turn(self, pid: str) -> None:
        raise _out_of_turn(f"{self.kind} auction takes no second card")

    def offer_second_card(self, pid: str, card: Optional[Card], sold_count: int) -> None:
        raise _out_of_turn(f"{self.kind} auction takes no second card")

    def outcome(self) -> Optional[AuctionOutcome]:
        raise NotImplementedError

    def next_actors(self) -> List[str]:
        raise NotImplementedError

    @property
    def cards(self) -> List[Card]:
        return [self.card]

    @property
    def current_auctioneer_id(self) -> str:
        return self.auctioneer_id

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, set):
                data[key] = sorted(value)
        data["kind"] = self.kind
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Auction":
        kwargs = {k: v for k, v in data.items() if k != "kind"}
        kwargs["card"] = Card.from_dict(data["card"])
        return cls(**kwargs)


@dataclass
class OpenAuction(Auction):
    kind: ClassVar[str] = OPEN
    auctioneer_id: str
    card: Card
    current_bid: int = 0
    current_bidder_id: Optional[str] = None
    closed: bool = False

    def submit_bid(self, pid: str, amount: int, money: int) -> None:
        if self.closed:
            raise _out_of_turn("Auction is closed")
        if amount <= self.current_bid:
            raise RuleViolation(ErrorKind.INVALID_BID,
                                f"Bid must be higher than {self.current_bid}")
        _check_funds(amount, money)
        self.current_bid = amount
        self.current_bidder_id = pid

    def close(self, pid: str) -> None:
        if pid != self.auctioneer_id:
            raise _out_of_turn("Only the auctioneer can close an open auction")
        if self.closed:
            raise _out_of_turn("Auction is already closed")
        self.closed = True

    def outcome(self) -> Optional[AuctionOutcome]:
        if not self.closed:
            return None
        if self.current_bidder_id is None:
            return AuctionOutcome(self.auctioneer_id, self.auctioneer_id, 0, self.cards)
        return AuctionOutcome(self.auctioneer_id, self.current_bidder_id,
                              self.current_bid, self.cards)

    def next_actors(self) -> List[str]:
        # anyone may bid; only the auctioneer can end it
        return [] if self.closed else [self.auctioneer_id]


@dataclass
class OneOfferAuction(Auction):
    kind: ClassVar[str] = ONE_OFFER
    auctioneer_id: str
    card: Card
    turn_order: List[str] = field(default_factory=list)   # auctioneer last
    current_turn_index: int = 0
    current_bid: int = 0
    current_bidder_id: Optional[str] = None
    phase: str = "bidding"      # bidding, auctioneer_decision
    decision: Optional[str] = None  # accept, outbid, take_free

    def _require_bidder_turn(self, pid: str) -> None:
        if self.phase != "bidding":
            raise _out_of_turn("Bidding is over; the auctioneer decides")
        if self.turn_order[self.current_turn_index] != pid:
            raise _out_of_turn(f"It is {self.turn_order[self.current_turn_index]}'s turn")

    def _advance(self) -> None:
        self.current_turn_index += 1
        if self.current_turn_index == len(self.turn_order) - 1:
            self.phase = "auctioneer_decision"

    def _require_decision(self, pid: str) -> None:
        if self.phase != "auctioneer_decision" or self.decision is not None:
            raise _out_of_turn("The auctioneer is not deciding now")
        if pid != self.auctioneer_id:
            raise _out_of_turn("Only the auctioneer decides")

    def submit_bid(self, pid: str, amount: int, money: int) -> None:
        self._require_bidder_turn(pid)
        if amount <= self.current_bid:
            raise RuleViolation(ErrorKind.INVALID_BID,
                                f"Bid must be higher than {self.current_bid}")
        _check_funds(amount, money)
        self.current_bid = amount
        self.current_bidder_id = pid
        self._advance()

    def pass_turn(self, pid: str) -> None:
        self._require_bidder_turn(pid)
        self._advance()

    def accept_bid(self, pid: str) -> None:
        self._require_decision(pid)
        if self.current_bid == 0:
            raise _out_of_turn("No bid to accept; the auctioneer may only take the card free")
        self.decision = "accept"

    def outbid(self, pid: str, money: int) -> None:
        self._require_decision(pid)
        if self.current_bid == 0:
            raise _out_of_turn("No bid to outbid; the auctioneer may only take the card free")
        _check_funds(self.current_bid + 1, money)
        self.decision = "outbid"

    def take_free(self, pid: str) -> None:
        self._require_decision(pid)
        if self.current_bid > 0:
            raise _out_of_turn("A bid stands; accept it or outbid")
        self.decision = "take_free"

    def outcome(self) -> Optional[AuctionOutcome]:
        if self.decision is None:
            return None
        if self.decision == "accept":
            return AuctionOutcome(self.auctioneer_id, self.current_bidder_id,
                                  self.current_bid, self.cards)
        # outbid keeps the card without payment
        return AuctionOutcome(self.auctioneer_id, self.auctioneer_id, 0, self.cards)

    def next_actors(self) -> List[str]:
        if self.decision is not None:
            return []
        return [self.turn_order[self.current_turn_index]]


@dataclass
class HiddenAuction(Auction):
    kind: ClassVar[str] = HIDDEN
    auctioneer_id: str
    card: Card
    # auctioneer first, then clockwise; earlier seats win ties
    tie_break_order: List[str] = field(default_factory=list)
    sealed_bids: Dict[str, int] = field(default_factory=dict)
    pending: Set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.pending = set(self.pending)

    def submit_bid(self, pid: str, amount: int, money: int) -> None:
        if pid not in self.pending:
            raise _out_of_turn("Sealed bid already submitted")
        if amount < 0:
            raise RuleViolation(ErrorKind.INVALID_BID, "Sealed bid cannot be negative")
        _check_funds(amount, money)
        self.sealed_bids[pid] = amount
        self.pending.discard(pid)

    def pass_turn(self, pid: str) -> None:
        self.submit_bid(pid, 0, 0)

    def timeout(self, pid: str) -> None:
        if pid != self.auctioneer_id:
            raise _out_of_turn("Only the auctioneer can force the missing bids")
        if not self.pending:
            raise _out_of_turn("All sealed bids are in")
        for pid in self.pending:
            self.sealed_bids[pid] = 0
        self.pending.clear()

    def outcome(self) -> Optional[AuctionOutcome]:
        if self.pending:
            return None
        top = max(self.sealed_bids.values())
        if top == 0:
            return AuctionOutcome(self.auctioneer_id, self.auctioneer_id, 0, self.cards)
        winner = next(pid for pid in self.tie_break_order if self.sealed_bids[pid] == top)
        return AuctionOutcome(self.auctioneer_id, winner, top, self.cards)

    def next_actors(self) -> List[str]:
        return [pid for pid in self.tie_break_order if pid in self.pending]


@dataclass
class FixedPriceAuction(Auction):
    kind: ClassVar[str] = FIXED_PRICE
    auctioneer_id: str
    card: Card
    price: int = 0      # 0 until the auctioneer sets it
    turn_order: List[str] = field(default_factory=list)   # auctioneer excluded
    current_turn_index: int = 0
    passed_players: Set[str] = field(default_factory=set)
    sold: bool = False
    winner_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.passed_players = set(self.passed_players)

    def _require_buyer_turn(self, pid: str) -> None:
        if self.price == 0:
            raise _out_of_turn("The auctioneer has not set a price")
        if self.sold:
            raise _out_of_turn("The card is already sold")
        if self.turn_order[self.current_turn_index] != pid:
            raise _out_of_turn(f"It is {self.turn_order[self.current_turn_index]}'s turn")

    def set_price(self, pid: str, amount: int, money: int) -> None:
        if pid != self.auctioneer_id:
            raise _out_of_turn("Only the auctioneer sets the price")
        if self.price != 0:
            raise _out_of_turn("Price is already set")
        if amount <= 0 or amount > money:
            raise RuleViolation(ErrorKind.INVALID_PRICE,
                                f"Price must be between 1 and {money}")
        self.price = amount

    def buy_at_price(self, pid: str, money: int) -> None:
        self._require_buyer_turn(pid)
        _check_funds(self.price, money)
        self.sold = True
        self.winner_id = pid

    def pass_turn(self, pid: str) -> None:
        self._require_buyer_turn(pid)
        self.passed_players.add(pid)
        self.current_turn_index += 1
        if self.current_turn_index == len(self.turn_order):
            # nobody bought: the auctioneer must
            self.sold = True
            self.winner_id = self.auctioneer_id

    def outcome(self) -> Optional[AuctionOutcome]:
        if not self.sold:
            return None
        return AuctionOutcome(self.auctioneer_id, self.winner_id, self.price, self.cards)

    def next_actors(self) -> List[str]:
        if self.price == 0:
            return [self.auctioneer_id]
        if self.sold:
            return []
        return [self.turn_order[self.current_turn_index]]


@dataclass
class DoubleAuction(Auction):
    kind: ClassVar[str] = DOUBLE
    auctioneer_id: str
    card: Card
    seating: List[str] = field(default_factory=list)
    second_card_turn_order: List[str] = field(default_factory=list)
    second_card_index: int = 0
    second_card: Optional[Card] = None
    resolved_auction: Optional[Auction] = None

    @property
    def cards(self) -> List[Card]:
        if self.second_card is None:
            return [self.card]
        return [self.card, self.second_card]

    @property
    def current_auctioneer_id(self) -> str:
        if self.resolved_auction is not None:
            return self.resolved_auction.auctioneer_id
        return self.auctioneer_id

    @property
    def offering(self) -> bool:
        return self.resolved_auction is None and \
            self.second_card_index < len(self.second_card_turn_order)

    def _inner(self) -> Auction:
        if self.resolved_auction is None:
            raise _out_of_turn("Players are still offering a second card")
        return self.resolved_auction

    def require_offer_turn(self, pid: str) -> None:
        if not self.offering:
            raise _out_of_turn("Second card offers are over")
        if self.second_card_turn_order[self.second_card_index] != pid:
            raise _out_of_turn(
                f"It is {self.second_card_turn_order[self.second_card_index]}'s turn to offer")

    def offer_second_card(self, pid: str, card: Optional[Card], sold_count: int) -> None:
        self.require_offer_turn(pid)
        if card is None:
            self.second_card_index += 1
            return
        if card.artist != self.card.artist or card.auction_type == DOUBLE:
            raise RuleViolation(ErrorKind.INELIGIBLE_SECOND_CARD,
                                f"Second card must be a non-double {self.card.artist}")
        if sold_count + 2 >= ROUND_ENDING_COUNT:
            raise RuleViolation(ErrorKind.INELIGIBLE_SECOND_CARD,
                                f"Pair would bring {self.card.artist} to {ROUND_ENDING_COUNT} cards")
        self.second_card = card
        self.resolved_auction = create_auction(card, pid, self.seating)

    def pass_turn(self, pid: str) -> None:
        if self.resolved_auction is None:
            self.offer_second_card(pid, None, 0)
            return
        self.resolved_auction.pass_turn(pid)

    def submit_bid(self, pid: str, amount: int, money: int) -> None:
        self._inner().submit_bid(pid, amount, money)

    def set_price(self, pid: str, amount: int, money: int) -> None:
        self._inner().set_price(pid, amount, money)

    def buy_at_price(self, pid: str, money: int) -> None:
        self._inner().buy_at_price(pid, money)

    def accept_bid(self, pid: str) -> None:
        self._inner().accept_bid(pid)

    def outbid(self, pid: str, money: int) -> None:
        self._inner().outbid(pid, money)

    def take_free(self, pid: str) -> None:
        self._inner().take_free(pid)

    def close(self, pid: str) -> None:
        self._inner().close(pid)

    def timeout(self, pid: str) -> None:
        self._inner().timeout(pid)

    def outcome(self) -> Optional[AuctionOutcome]:
        if self.resolved_auction is None:
            if self.offering:
                return None
            return AuctionOutcome(self.auctioneer_id, self.auctioneer_id, 0, self.cards)
        inner = self.resolved_auction.outcome()
        if inner is None:
            return None
        return AuctionOutcome(inner.auctioneer_id, inner.winner_id, inner.price, self.cards)

    def next_actors(self) -> List[str]:
        if self.resolved_auction is not None:
            return self.resolved_auction.next_actors()
        if self.offering:
            return [self.second_card_turn_order[self.second_card_index]]
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "auctioneer_id": self.auctioneer_id,
            "card": asdict(self.card),
            "seating": list(self.seating),
            "second_card_turn_order": list(self.second_card_turn_order),
            "second_card_index": self.second_card_index,
            "second_card": asdict(self.second_card) if self.second_card else None,
            "resolved_auction": self.resolved_auction.to_dict() if self.resolved_auction else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DoubleAuction":
        second = data.get("second_card")
        inner = data.get("resolved_auction")
        return cls(
            auctioneer_id=data["auctioneer_id"],
            card=Card.from_dict(data["card"]),
            seating=list(data["seating"]),
            second_card_turn_order=list(data["second_card_turn_order"]),
            second_card_index=data["second_card_index"],
            second_card=Card.from_dict(second) if second else None,
            resolved_auction=auction_from_dict(inner) if inner else None,
        )


AUCTION_KINDS = {
    cls.kind: cls
    for cls in (OpenAuction, OneOfferAuction, HiddenAuction, FixedPriceAuction, DoubleAuction)
}


def create_auction(card: Card, auctioneer_id: str, seating: List[str]) -> Auction:
    """
    Build the auction machine printed on `card` with `auctioneer_id` selling.
    """
    if card.auction_type == OPEN:
        return OpenAuction(auctioneer_id, card)
    if card.auction_type == ONE_OFFER:
        return OneOfferAuction(auctioneer_id, card,
                               turn_order=clockwise_from(seating, auctioneer_id, include_self=True))
    if card.auction_type == HIDDEN:
        order = [auctioneer_id] + clockwise_from(seating, auctioneer_id)
        return HiddenAuction(auctioneer_id, card, tie_break_order=order, pending=set(order))
    if card.auction_type == FIXED_PRICE:
        return FixedPriceAuction(auctioneer_id, card,
                                 turn_order=clockwise_from(seating, auctioneer_id))
    if card.auction_type == DOUBLE:
        return DoubleAuction(auctioneer_id, card, seating=list(seating),
                             second_card_turn_order=clockwise_from(seating, auctioneer_id))
    raise ValueError(f"Unknown auction type: {card.auction_type}")


def auction_from_dict(data: Dict[str, Any]) -> Auction:
    try:
        cls = AUCTION_KINDS[data["kind"]]
    except KeyError:
        raise ValueError(f"Unknown auction kind: {data.get('kind')}")
    return cls.from_dict(data)
