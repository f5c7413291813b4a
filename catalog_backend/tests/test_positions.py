import unittest
from datetime import datetime, timedelta

from catalog_backend import positions


def apply(rows, changes):
    return sorted(
        ((changes.get(row_id, pos), row_id) for row_id, pos in rows)
    )


class PositionTests(unittest.TestCase):
    def setUp(self):
        self.rows = [("a", 1), ("b", 2), ("c", 3), ("d", 4), ("e", 5)]

    def test_next_position_starts_at_one(self):
        self.assertEqual(positions.next_position([]), 1)
        self.assertEqual(positions.next_position([1, 2, 7]), 8)

    def test_move_down_shifts_rows_in_between_up(self):
        changes = positions.move(self.rows, "b", 4)
        self.assertEqual(changes, {"c": 2, "d": 3, "b": 4})
        self.assertEqual(
            [row_id for _, row_id in apply(self.rows, changes)],
            ["a", "c", "d", "b", "e"],
        )

    def test_move_up_shifts_rows_in_between_down(self):
        changes = positions.move(self.rows, "e", 2)
        self.assertEqual(changes, {"e": 2, "b": 3, "c": 4, "d": 5})

    def test_move_keeps_positions_contiguous(self):
        for target in range(-2, 9):
            changes = positions.move(self.rows, "c", target)
            final = [pos for pos, _ in apply(self.rows, changes)]
            self.assertEqual(final, [1, 2, 3, 4, 5])

    def test_move_clamps_out_of_range_target(self):
        self.assertEqual(positions.move(self.rows, "a", 99)["a"], 5)
        self.assertEqual(positions.move(self.rows, "e", 0)["e"], 1)

    def test_move_to_same_position_changes_nothing(self):
        self.assertEqual(positions.move(self.rows, "c", 3), {})

    def test_move_unknown_row(self):
        with self.assertRaises(KeyError):
            positions.move(self.rows, "zzz", 1)

    def test_shift_after_delete_closes_gap(self):
        remaining = [("a", 1), ("b", 2), ("d", 4), ("e", 5)]
        self.assertEqual(
            positions.shift_after_delete(remaining, 3), {"d": 3, "e": 4}
        )

    def test_assign_missing_appends_unpositioned_in_creation_order(self):
        now = datetime(2024, 1, 1)
        rows = [
            ("late", 0, now + timedelta(minutes=5)),
            ("second", 4, now + timedelta(minutes=1)),
            ("early", 0, now + timedelta(minutes=2)),
            ("first", 1, now),
        ]
        self.assertEqual(
            positions.assign_missing(rows),
            [("first", 1), ("second", 2), ("early", 3), ("late", 4)],
        )


if __name__ == "__main__":
    unittest.main()
