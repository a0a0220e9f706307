import logging
from typing import Dict, List, Tuple

from modern_art_server.models import ArtistValueBoard, AuctionOutcome, Player

logger = logging.getLogger(__name__)


def settle_auction(players: Dict[str, Player], outcome: AuctionOutcome) -> None:
    """
    Move money and paintings for a finished auction. A self-buy pays the
    bank, so that money leaves the game.
    """
    buyer = players[outcome.winner_id]
    auctioneer = players[outcome.auctioneer_id]
    if outcome.price < 0 or buyer.money < outcome.price:
        raise ValueError(f"{buyer.name} cannot pay {outcome.price} with {buyer.money}")
    buyer.money -= outcome.price
    if not outcome.self_bought:
        auctioneer.money += outcome.price
    buyer.purchases.extend(outcome.cards)
    logger.info(f"Settled {[c.card_id for c in outcome.cards]}: {buyer.name} pays "
                f"{outcome.price} to {'the bank' if outcome.self_bought else auctioneer.name}")


def bank_sale(players: Dict[str, Player], board: ArtistValueBoard) -> Dict[str, Dict[str, int]]:
    """
    Pay every player the current board value of each painting bought this
    round, then empty their purchases.
    """
    sales = {}
    for pid, p in players.items():
        payout = sum(board.value(c.artist) for c in p.purchases)
        sales[pid] = {"paintings": len(p.purchases), "payout": payout}
        p.money += payout
        p.purchases = []
    return sales


def final_standings(players: Dict[str, Player],
                    paintings: Dict[str, int]) -> Tuple[List[dict], List[str]]:
    """
    Rank players by money, then by paintings held at the last sale. Returns
    the standings and the (possibly joint) winner ids.
    """
    ordered = sorted(players.values(),
                     key=lambda p: (-p.money, -paintings.get(p.player_id, 0)))
    standings = []
    prev_key = None
    for pos, p in enumerate(ordered):
        key = (p.money, paintings.get(p.player_id, 0))
        rank = standings[-1]["rank"] if key == prev_key else pos + 1
        standings.append({"player_id": p.player_id, "name": p.name, "money": p.money,
                          "paintings": key[1], "rank": rank})
        prev_key = key
    winners = [s["player_id"] for s in standings if s["rank"] == 1]
    return standings, winners
