"""Tests for coordinate helpers."""

import unittest

from trailsync.location.geo import (
    Coordinate,
    bearing,
    distance_between,
    format_distance,
    is_valid_coordinate,
    is_within_radius,
    parse_coordinate_string,
    validate_group_name,
)

ISTANBUL = Coordinate(41.0082, 28.9784)
ANKARA = Coordinate(39.9334, 32.8597)


class GeoTestCase(unittest.TestCase):
    def test_valid_coordinate_bounds(self):
        self.assertTrue(is_valid_coordinate(90, 180))
        self.assertTrue(is_valid_coordinate(-90, -180))
        self.assertTrue(is_valid_coordinate(0.0, 0.0))
        self.assertFalse(is_valid_coordinate(90.0001, 0))
        self.assertFalse(is_valid_coordinate(0, -180.5))

    def test_distance_between_cities(self):
        """Istanbul to Ankara is roughly 350 km as the crow flies."""
        distance = distance_between(ISTANBUL, ANKARA)
        self.assertAlmostEqual(distance / 1000, 350, delta=5)
        self.assertAlmostEqual(distance_between(ANKARA, ISTANBUL), distance)

    def test_distance_to_self_is_zero(self):
        self.assertEqual(distance_between(ISTANBUL, ISTANBUL), 0.0)

    def test_bearing(self):
        north = bearing(Coordinate(0, 0), Coordinate(1, 0))
        east = bearing(Coordinate(0, 0), Coordinate(0, 1))
        west = bearing(Coordinate(0, 0), Coordinate(0, -1))
        self.assertAlmostEqual(north, 0.0)
        self.assertAlmostEqual(east, 90.0)
        self.assertAlmostEqual(west, 270.0)

    def test_is_within_radius(self):
        nearby = Coordinate(ISTANBUL.latitude + 0.0005, ISTANBUL.longitude)
        self.assertTrue(is_within_radius(nearby, ISTANBUL, 100))
        self.assertFalse(is_within_radius(ANKARA, ISTANBUL, 100_000))

    def test_format_distance(self):
        self.assertEqual(format_distance(850.4), "850m")
        self.assertEqual(format_distance(2500), "2.5km")

    def test_parse_coordinate_string(self):
        self.assertEqual(parse_coordinate_string("41.0082, 28.9784"), ISTANBUL)
        self.assertEqual(
            parse_coordinate_string("-33.9,18.4"), Coordinate(-33.9, 18.4)
        )
        self.assertIsNone(parse_coordinate_string("north, south"))
        self.assertIsNone(parse_coordinate_string("95.0, 10.0"))
        self.assertIsNone(parse_coordinate_string("41.0"))

    def test_validate_group_name(self):
        self.assertTrue(validate_group_name("Ridge Hike"))
        self.assertTrue(validate_group_name("Lycian-Way 2024"))
        self.assertFalse(validate_group_name("A"))
        self.assertFalse(validate_group_name("x" * 31))
        self.assertFalse(validate_group_name("drop_table"))
        self.assertFalse(validate_group_name("hike!"))


if __name__ == "__main__":
    unittest.main()
