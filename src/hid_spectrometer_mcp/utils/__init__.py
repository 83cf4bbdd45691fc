"""Small helpers: integer combination and hex dumps."""

from .conversion import combine_big_endian, hexify
