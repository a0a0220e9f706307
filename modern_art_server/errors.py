from enum import Enum


class ErrorKind(str, Enum):
    NOT_YOUR_TURN = "NotYourTurn"
    OUT_OF_TURN = "OutOfTurn"
    CARD_NOT_IN_HAND = "CardNotInHand"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INVALID_BID = "InvalidBid"
    INVALID_PRICE = "InvalidPrice"
    INELIGIBLE_SECOND_CARD = "IneligibleSecondCard"
    NO_ACTIVE_AUCTION = "NoActiveAuction"
    AUCTION_ALREADY_ACTIVE = "AuctionAlreadyActive"
    GAME_ALREADY_ENDED = "GameAlreadyEnded"
    GAME_NOT_STARTED = "GameNotStarted"
    UNKNOWN_PLAYER = "UnknownPlayer"


class RuleViolation(Exception):
    """
    A rejected player intent. Raised before any state is touched, so the
    caller may simply retry with a corrected intent.
    """

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
