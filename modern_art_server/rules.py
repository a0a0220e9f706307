from typing import Dict, List, Tuple

# Board order. Print counts are distinct, so ranking by (count, print_count) is total.
ARTISTS = [
    "Manuel Carvalho",
    "Sigrid Thaler",
    "Daniel Melim",
    "Ramon Martins",
    "Rafael Silveira",
]
PRINT_COUNTS: Dict[str, int] = {
    "Manuel Carvalho": 12,
    "Sigrid Thaler": 13,
    "Daniel Melim": 14,
    "Ramon Martins": 15,
    "Rafael Silveira": 16,
}

OPEN = "open"
ONE_OFFER = "one_offer"
HIDDEN = "hidden"
FIXED_PRICE = "fixed_price"
DOUBLE = "double"
AUCTION_TYPES = [OPEN, ONE_OFFER, HIDDEN, FIXED_PRICE, DOUBLE]

# auction type -> copies, per artist; each row sums to PRINT_COUNTS[artist]
AUCTION_DISTRIBUTION: Dict[str, Dict[str, int]] = {
    "Manuel Carvalho": {DOUBLE: 2, OPEN: 3, ONE_OFFER: 3, HIDDEN: 2, FIXED_PRICE: 2},
    "Sigrid Thaler":   {DOUBLE: 2, OPEN: 3, ONE_OFFER: 3, HIDDEN: 3, FIXED_PRICE: 2},
    "Daniel Melim":    {DOUBLE: 2, OPEN: 3, ONE_OFFER: 4, HIDDEN: 3, FIXED_PRICE: 2},
    "Ramon Martins":   {DOUBLE: 2, OPEN: 4, ONE_OFFER: 4, HIDDEN: 3, FIXED_PRICE: 2},
    "Rafael Silveira": {DOUBLE: 2, OPEN: 4, ONE_OFFER: 4, HIDDEN: 3, FIXED_PRICE: 3},
}

# player count -> cards dealt to each player at the start of rounds 1..4
CARDS_PER_ROUND: Dict[int, Tuple[int, int, int, int]] = {
    3: (10, 6, 6, 0),
    4: (9, 4, 4, 0),
    5: (8, 3, 3, 0),
}

NUM_ROUNDS = 4
ROUND_ENDING_COUNT = 5
TILE_VALUES = (30, 20, 10)


def clockwise_from(seating: List[str], pid: str, include_self: bool = False) -> List[str]:
    """
    Return the seats after `pid` going clockwise (left), optionally ending with `pid`.
    """
    idx = seating.index(pid)
    n = len(seating)
    order = [seating[(idx + i) % n] for i in range(1, n)]
    if include_self:
        order.append(pid)
    return order
