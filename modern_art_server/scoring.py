from typing import Dict, List

from modern_art_server.models import ArtistResult, ArtistValueBoard
from modern_art_server.rules import ARTISTS, PRINT_COUNTS, TILE_VALUES


def rank_artists(sold_by_artist: Dict[str, int]) -> List[str]:
    """
    Order artists by cards sold this round, most first. Equal counts go to
    the artist with fewer prints.
    """
    return sorted(ARTISTS, key=lambda a: (-sold_by_artist.get(a, 0), PRINT_COUNTS[a]))


def round_tiles(sold_by_artist: Dict[str, int]) -> Dict[str, int]:
    tiles = {a: 0 for a in ARTISTS}
    for rank, artist in enumerate(rank_artists(sold_by_artist)):
        # an artist nobody played earns nothing, whatever its rank
        if rank < len(TILE_VALUES) and sold_by_artist.get(artist, 0) > 0:
            tiles[artist] = TILE_VALUES[rank]
    return tiles


def score_round(board: ArtistValueBoard, sold_by_artist: Dict[str, int]) -> List[ArtistResult]:
    """Append this round's tiles to the board and report the ranking."""
    tiles = round_tiles(sold_by_artist)
    board.append_round(tiles)
    return [
        ArtistResult(
            artist=artist,
            sold=sold_by_artist.get(artist, 0),
            rank=rank + 1,
            tile=tiles[artist],
            value=board.value(artist),
        )
        for rank, artist in enumerate(rank_artists(sold_by_artist))
    ]
