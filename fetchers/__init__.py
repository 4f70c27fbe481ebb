# fetchers/__init__.py
from . import tcgplayer

FETCHERS = {
    "tcgplayer": tcgplayer.TcgplayerContentSupplier,
}
