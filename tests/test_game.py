import json
import unittest

from modern_art_server.auction import (
    DoubleAuction, FixedPriceAuction, HiddenAuction, OneOfferAuction, OpenAuction,
)
from modern_art_server.errors import ErrorKind
from modern_art_server.game import Game
from modern_art_server.rules import (
    ARTISTS, DOUBLE, FIXED_PRICE, HIDDEN, ONE_OFFER, OPEN, clockwise_from,
)

from helpers import A, B, C, build_game, card


def _filler(prefix, n=1, artist=C):
    return [card(f"{prefix}{i}", artist) for i in range(n)]


def _act(game):
    """Make one legal move for whoever has to act next."""
    rnd = game.round
    if rnd.phase == "selling_to_bank":
        return game.next_round(game.seating[0])
    auction = rnd.active_auction
    if auction is None:
        pid = game.turn_pointer
        money = game.players[pid].money
        c = next(c for c in game.players[pid].hand
                 if c.auction_type != FIXED_PRICE or money > 0)
        return game.play_card(pid, c.card_id)

    if isinstance(auction, DoubleAuction):
        if auction.resolved_auction is None:
            pid = auction.next_actors()[0]
            money = game.players[pid].money
            sold = rnd.cards_sold_by_artist[auction.card.artist]
            offer = next((c for c in game.players[pid].hand
                          if c.artist == auction.card.artist and c.auction_type != DOUBLE
                          and (c.auction_type != FIXED_PRICE or money > 0)
                          and sold + 2 < 5), None)
            return game.offer_second_card(pid, offer.card_id if offer else None)
        auction = auction.resolved_auction

    seller = auction.auctioneer_id
    if isinstance(auction, OpenAuction):
        bidder = clockwise_from(game.seating, seller)[0]
        if auction.current_bid == 0 and game.players[bidder].money >= 3:
            return game.submit_bid(bidder, 3)
        return game.close_auction(seller)
    if isinstance(auction, OneOfferAuction):
        if auction.phase == "auctioneer_decision":
            if auction.current_bid:
                return game.accept_bid(seller)
            return game.take_free(seller)
        pid = auction.next_actors()[0]
        if auction.current_bid == 0 and game.players[pid].money >= 2:
            return game.submit_bid(pid, 2)
        return game.pass_turn(pid)
    if isinstance(auction, HiddenAuction):
        pid = auction.next_actors()[0]
        return game.submit_bid(pid, min(4, game.players[pid].money))
    if isinstance(auction, FixedPriceAuction):
        if auction.price == 0:
            return game.set_price(seller, min(5, game.players[seller].money))
        pid = auction.next_actors()[0]
        if game.players[pid].money >= auction.price:
            return game.buy_at_price(pid)
        return game.pass_turn(pid)
    raise AssertionError(f"Unexpected auction {auction!r}")


class TestPlayCard(unittest.TestCase):
    def test_open_auction_to_second_bidder(self):
        game = build_game([[card("c1", A, OPEN)], _filler("x"), _filler("y"), _filler("z")],
                          sold={A: 3})
        _, err = game.play_card("p0", "c1")
        self.assertIsNone(err)
        self.assertIsNone(game.submit_bid("p1", 40)[1])
        self.assertIsNone(game.submit_bid("p2", 55)[1])
        result, err = game.close_auction("p0")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p2")
        self.assertEqual(result["outcome"]["price"], 55)
        self.assertEqual(game.round.cards_sold_by_artist[A], 4)
        self.assertEqual(game.players["p2"].money, 45)
        self.assertEqual(game.players["p0"].money, 155)
        self.assertEqual([c.card_id for c in game.players["p2"].purchases], ["c1"])
        self.assertIsNone(game.round.active_auction)
        self.assertEqual(game.turn_pointer, "p1")

    def test_one_offer_all_pass_takes_free(self):
        game = build_game([[card("c1", A, ONE_OFFER)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        for pid in ("p1", "p2", "p3"):
            self.assertIsNone(game.pass_turn(pid)[1])
        _, err = game.accept_bid("p0")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        result, err = game.take_free("p0")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p0")
        self.assertEqual(result["outcome"]["price"], 0)
        self.assertEqual(game.players["p0"].money, 100)
        self.assertEqual(game.round.cards_sold_by_artist[A], 1)

    def test_one_offer_outbid_keeps_card_for_nothing(self):
        game = build_game([[card("c1", A, ONE_OFFER)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        game.submit_bid("p1", 30)
        game.pass_turn("p2")
        game.pass_turn("p3")
        result, err = game.outbid("p0")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p0")
        self.assertEqual(game.players["p0"].money, 100)
        self.assertEqual(game.players["p1"].money, 100)

    def test_hidden_tie_goes_to_nearest_clockwise(self):
        game = build_game([[card("c1", A, HIDDEN)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        game.submit_bid("p1", 15)
        game.submit_bid("p3", 20)
        game.submit_bid("p2", 20)
        state = game.get_state("p1")
        self.assertEqual(state["auction"]["submitted"], ["p1", "p2", "p3"])
        self.assertNotIn("sealed_bids", state["auction"])
        result, err = game.submit_bid("p0", 0)
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p2")
        self.assertEqual(result["outcome"]["price"], 20)
        self.assertEqual(game.players["p0"].money, 120)

    def test_hidden_timeout_fills_zero_bids(self):
        game = build_game([[card("c1", A, HIDDEN)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        game.submit_bid("p3", 10)
        result, err = game.timeout("p0")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p3")

    def test_hidden_timeout_only_from_auctioneer(self):
        game = build_game([[card("c1", A, HIDDEN)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        game.submit_bid("p1", 10)
        before = game.snapshot()
        for pid in ("p1", "p2"):
            _, err = game.timeout(pid)
            self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        self.assertEqual(game.snapshot(), before)
        self.assertEqual(game.round.active_auction.pending, {"p0", "p2", "p3"})

    def test_fixed_price_falls_back_to_auctioneer(self):
        game = build_game([[card("c1", A, FIXED_PRICE)], _filler("x"), _filler("y"), _filler("z")])
        game.play_card("p0", "c1")
        _, err = game.set_price("p0", 101)
        self.assertEqual(err.kind, ErrorKind.INVALID_PRICE)
        self.assertIsNone(game.set_price("p0", 25)[1])
        game.pass_turn("p1")
        game.pass_turn("p2")
        result, err = game.pass_turn("p3")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p0")
        self.assertEqual(game.players["p0"].money, 75)

    def test_broke_player_cannot_play_fixed_price(self):
        game = build_game([[card("c1", A, FIXED_PRICE), card("c2", A, OPEN)],
                           _filler("x"), _filler("y"), _filler("z")])
        game.players["p0"].money = 0
        _, err = game.play_card("p0", "c1")
        self.assertEqual(err.kind, ErrorKind.INSUFFICIENT_FUNDS)
        self.assertEqual(len(game.players["p0"].hand), 2)
        self.assertIsNone(game.play_card("p0", "c2")[1])

    def test_turn_skips_players_who_cannot_play(self):
        game = build_game([[card("c1", A, OPEN)], [], [card("f1", B, FIXED_PRICE)], _filler("z")])
        game.players["p2"].money = 0
        game.play_card("p0", "c1")
        game.close_auction("p0")
        self.assertEqual(game.turn_pointer, "p3")


class TestRoundEnding(unittest.TestCase):
    def test_fifth_card_is_not_auctioned(self):
        game = build_game([[card("c1", A, OPEN)], _filler("x"), _filler("y"), _filler("z")],
                          sold={A: 4, B: 2})
        game.players["p1"].purchases = [card("b1", A)]
        result, err = game.play_card("p0", "c1")
        self.assertIsNone(err)
        self.assertTrue(result["round_ended"])
        self.assertIsNone(game.round.active_auction)
        self.assertEqual(game.round.cards_sold_by_artist[A], 5)
        self.assertEqual([c.card_id for c in game.round.unsold_cards], ["c1"])
        self.assertEqual(game.round.phase, "selling_to_bank")
        self.assertEqual(game.board.tiles[A], [30])
        self.assertEqual(game.board.tiles[B], [20])
        self.assertEqual(game.players["p1"].money, 130)
        self.assertEqual(game.players["p1"].purchases, [])
        self.assertEqual(game.events[-2]["reason"], "fifth_card")

    def test_fifth_double_card_ends_round(self):
        game = build_game([[card("d1", A, DOUBLE)], [card("s1", A)], _filler("y"), _filler("z")],
                          sold={A: 4})
        result, _ = game.play_card("p0", "d1")
        self.assertTrue(result["round_ended"])
        self.assertEqual(len(game.players["p1"].hand), 1)

    def test_no_plays_after_round_ends(self):
        game = build_game([[card("c1", A), card("c2", B)], _filler("x"), _filler("y"), _filler("z")],
                          sold={A: 4})
        game.play_card("p0", "c1")
        sold = dict(game.round.cards_sold_by_artist)
        _, err = game.play_card("p1", "x0")
        self.assertEqual(err.kind, ErrorKind.NOT_YOUR_TURN)
        _, err = game.submit_bid("p1", 5)
        self.assertEqual(err.kind, ErrorKind.NO_ACTIVE_AUCTION)
        self.assertEqual(game.round.cards_sold_by_artist, sold)

    def test_exhaustion_scores_with_zero_counts(self):
        game = build_game([[card("c1", A, OPEN)], [card("c2", B, HIDDEN)], [], []])
        game.play_card("p0", "c1")
        game.close_auction("p0")
        self.assertEqual(game.turn_pointer, "p1")
        game.play_card("p1", "c2")
        result, err = game.timeout("p1")
        self.assertIsNone(err)
        self.assertEqual(game.round.phase, "selling_to_bank")
        self.assertEqual(game.round.unsold_cards, [])
        tiles = {a: t[0] for a, t in game.board.tiles.items()}
        self.assertEqual(tiles, {a: 0 for a in ARTISTS} | {A: 30, B: 20})
        self.assertEqual(game.players["p0"].money, 130)
        self.assertEqual(game.players["p1"].money, 120)
        ended = next(e for e in game.events if e["type"] == "round_ended")
        self.assertEqual(ended["reason"], "exhausted")

    def test_next_round_starts_left_of_last_player(self):
        game = build_game([[card("c1", A)], [card("c2", A)], _filler("y"), _filler("z")],
                          sold={A: 4})
        _, err = game.next_round("p0")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        game.play_card("p0", "c1")
        game.deck = [card(f"n{i}", B) for i in range(16)]
        result, err = game.next_round("p3")
        self.assertIsNone(err)
        self.assertEqual(result["round"], 2)
        self.assertEqual(game.turn_pointer, "p1")
        self.assertEqual(len(game.players["p1"].hand), 5)
        self.assertEqual(game.round.cards_sold_by_artist[A], 0)


class TestDouble(unittest.TestCase):
    def _game(self, sold=None):
        return build_game([
            [card("d1", A, DOUBLE), card("x0", C)],
            [card("s0", B)],
            [card("s1", A, FIXED_PRICE), card("y0", C)],
            [card("s2", A, OPEN)],
        ], sold=sold)

    def test_pair_sold_by_new_auctioneer(self):
        game = self._game()
        game.play_card("p0", "d1")
        self.assertIsNone(game.offer_second_card("p1", None)[1])
        result, err = game.offer_second_card("p2", "s1")
        self.assertIsNone(err)
        self.assertEqual(result["next_actors"], ["p2"])
        self.assertNotIn("s1", [c.card_id for c in game.players["p2"].hand])
        game.set_price("p2", 20)
        result, err = game.buy_at_price("p3")
        self.assertIsNone(err)
        self.assertEqual(result["outcome"]["auctioneer_id"], "p2")
        self.assertEqual([c.card_id for c in game.players["p3"].purchases], ["d1", "s1"])
        self.assertEqual(game.players["p3"].money, 80)
        self.assertEqual(game.players["p2"].money, 120)
        self.assertEqual(game.players["p0"].money, 100)
        self.assertEqual(game.round.cards_sold_by_artist[A], 2)
        self.assertEqual(game.turn_pointer, "p3")

    def test_nobody_offers(self):
        game = self._game()
        game.play_card("p0", "d1")
        for pid in ("p1", "p2", "p3"):
            result, err = game.offer_second_card(pid, None)
            self.assertIsNone(err)
        self.assertEqual(result["outcome"]["winner_id"], "p0")
        self.assertEqual(game.round.cards_sold_by_artist[A], 1)

    def test_offer_checks(self):
        game = self._game(sold={A: 3})
        game.play_card("p0", "d1")
        _, err = game.offer_second_card("p2", "s1")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        _, err = game.offer_second_card("p1", "s0")
        self.assertEqual(err.kind, ErrorKind.INELIGIBLE_SECOND_CARD)
        _, err = game.offer_second_card("p1", "s2")
        self.assertEqual(err.kind, ErrorKind.CARD_NOT_IN_HAND)
        game.offer_second_card("p1", None)
        _, err = game.offer_second_card("p2", "s1")
        self.assertEqual(err.kind, ErrorKind.INELIGIBLE_SECOND_CARD)
        self.assertEqual(len(game.players["p2"].hand), 2)

    def test_out_of_turn_offer_checked_before_hand(self):
        game = self._game()
        game.play_card("p0", "d1")
        _, err = game.offer_second_card("p2", "s2")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        game.players["p2"].money = 0
        _, err = game.offer_second_card("p2", "s1")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)
        self.assertEqual(game.round.active_auction.second_card_index, 0)

    def test_offer_outside_double_is_out_of_turn(self):
        game = self._game()
        game.play_card("p0", "x0")
        _, err = game.offer_second_card("p1", "s0")
        self.assertEqual(err.kind, ErrorKind.OUT_OF_TURN)


class TestRejections(unittest.TestCase):
    def setUp(self):
        self.game = build_game([[card("c1", A), card("c2", B)], _filler("x"), _filler("y"), _filler("z")])

    def test_not_your_turn(self):
        _, err = self.game.play_card("p1", "x0")
        self.assertEqual(err.kind, ErrorKind.NOT_YOUR_TURN)
        self.assertEqual(len(self.game.players["p1"].hand), 1)

    def test_card_not_in_hand(self):
        _, err = self.game.play_card("p0", "x0")
        self.assertEqual(err.kind, ErrorKind.CARD_NOT_IN_HAND)

    def test_auction_already_active(self):
        self.game.play_card("p0", "c1")
        _, err = self.game.play_card("p0", "c2")
        self.assertEqual(err.kind, ErrorKind.AUCTION_ALREADY_ACTIVE)
        self.assertEqual(len(self.game.players["p0"].hand), 1)

    def test_no_active_auction(self):
        _, err = self.game.close_auction("p0")
        self.assertEqual(err.kind, ErrorKind.NO_ACTIVE_AUCTION)

    def test_rejected_bid_changes_nothing(self):
        self.game.play_card("p0", "c1")
        self.game.submit_bid("p1", 10)
        before = self.game.snapshot()
        for amount, kind in ((10, ErrorKind.INVALID_BID), (101, ErrorKind.INSUFFICIENT_FUNDS),
                             ("12", ErrorKind.INVALID_BID)):
            _, err = self.game.submit_bid("p2", amount)
            self.assertEqual(err.kind, kind)
        self.assertEqual(self.game.snapshot(), before)

    def test_settled_auction_cannot_settle_again(self):
        self.game.play_card("p0", "c1")
        self.game.submit_bid("p1", 10)
        self.game.close_auction("p0")
        money = {pid: p.money for pid, p in self.game.players.items()}
        _, err = self.game.close_auction("p0")
        self.assertEqual(err.kind, ErrorKind.NO_ACTIVE_AUCTION)
        self.assertEqual({pid: p.money for pid, p in self.game.players.items()}, money)

    def test_unknown_player_and_lifecycle(self):
        _, err = self.game.play_card("nobody", "c1")
        self.assertEqual(err.kind, ErrorKind.UNKNOWN_PLAYER)
        fresh = Game()
        _, err = fresh.play_card("p0", "c1")
        self.assertEqual(err.kind, ErrorKind.GAME_NOT_STARTED)
        self.game.state = "completed"
        _, err = self.game.play_card("p0", "c1")
        self.assertEqual(err.kind, ErrorKind.GAME_ALREADY_ENDED)


class TestFullGame(unittest.TestCase):
    def _start(self, num_players, seed=7):
        game = Game(seed=seed)
        for i in range(num_players):
            game.add_player(f"Player{i}")
        game.start_game()
        return game

    def _play_out(self, game, limit=3000):
        counts = dict(game.round.cards_sold_by_artist)
        number = game.round.number
        for _ in range(limit):
            if game.state != "playing":
                return
            _, err = _act(game)
            self.assertIsNone(err)
            if game.round.number != number:
                number = game.round.number
                counts = {a: 0 for a in ARTISTS}
            for artist, n in game.round.cards_sold_by_artist.items():
                self.assertGreaterEqual(n, counts[artist])
            counts = dict(game.round.cards_sold_by_artist)
            self.assertTrue(all(p.money >= 0 for p in game.players.values()))
        self.fail("Game did not finish")

    def test_games_run_to_completion(self):
        for num_players in (3, 4, 5):
            game = self._start(num_players)
            start_total = sum(p.money for p in game.players.values())
            self._play_out(game)
            self.assertEqual(game.state, "completed")
            self.assertEqual(game.round.number, 4)
            self.assertTrue(all(len(t) == 4 for t in game.board.tiles.values()))
            self.assertTrue(game.winners)
            if len(game.winners) == 1:
                self.assertEqual(game.winner.player_id, game.winners[0])
            else:
                self.assertIsNone(game.winner)
            self.assertEqual(len(game.standings), num_players)

            # money only leaves through self-buys and enters through bank sales
            sinks = sum(e["price"] for e in game.events
                        if e["type"] == "auction_settled" and e["winner_id"] == e["auctioneer_id"])
            sources = sum(s["payout"] for e in game.events if e["type"] == "bank_sale"
                          for s in e["sales"].values())
            end_total = sum(p.money for p in game.players.values())
            self.assertEqual(end_total, start_total - sinks + sources)

            _, err = game.next_round(game.seating[0])
            self.assertEqual(err.kind, ErrorKind.GAME_ALREADY_ENDED)

    def test_snapshot_restore_resumes_identically(self):
        game = self._start(4, seed=11)
        for _ in range(40):
            _act(game)
        snap = json.loads(json.dumps(game.snapshot()))
        restored = Game.restore(snap)
        self.assertEqual(restored.snapshot(), snap)
        self._play_out(game)
        self._play_out(restored)
        self.assertEqual(restored.snapshot(), game.snapshot())
        self.assertEqual(restored.winners, game.winners)

    def test_start_requires_full_table(self):
        game = Game()
        game.add_player("Solo")
        with self.assertRaises(RuntimeError):
            game.start_game()
        self.assertEqual(game.state, "waiting")


if __name__ == "__main__":
    unittest.main()
