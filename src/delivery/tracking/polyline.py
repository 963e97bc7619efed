# polyline.py
# Decoder for the encoded polyline format returned by the alternate routing endpoint.

from typing import List, Tuple

from .models import Coord


def decode_polyline(encoded: str, precision: int = 5) -> List[Coord]:
    """
    Decode an encoded polyline into coordinates.

    Args:
        encoded:   Polyline string.
        precision: Decimal places used by the encoder (5 for ORS/Google, 6 for OSRM polyline6).

    Returns:
        List of Coord in path order.

    Raises:
        ValueError: If the string ends in the middle of a value.
    """
    coords: List[Coord] = []
    factor = 10 ** -precision
    index = 0
    lat = 0
    lon = 0

    while index < len(encoded):
        d_lat, index = _decode_value(encoded, index)
        d_lon, index = _decode_value(encoded, index)
        lat += d_lat
        lon += d_lon
        coords.append(Coord(round(lat * factor, precision), round(lon * factor, precision)))

    return coords


def _decode_value(encoded: str, index: int) -> Tuple[int, int]:
    result = 0
    shift = 0

    while True:
        if index >= len(encoded):
            raise ValueError("Invalid polyline: buffer exhausted.")
        b = ord(encoded[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break

    delta = ~(result >> 1) if (result & 1) else (result >> 1)
    return delta, index
