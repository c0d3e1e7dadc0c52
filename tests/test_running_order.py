"""
Running-order tests.

Covers append/remove renumbering, drag-to-position, Fisher-Yates randomize and the
cross-size "now running" queue of a round.
"""
import random
import unittest

from pawsspeed.core import running_order as ro


def _c(cid, size="M", order=1, round_id="r1", total=None, eliminated=False):
    return {
        "id": cid,
        "round_id": round_id,
        "size": size,
        "run_order": order,
        "total_fault": total,
        "eliminated": eliminated,
    }


def _orders(competitors, round_id="r1", size="M"):
    return {c["id"]: c["run_order"] for c in competitors if ro.in_group(c, round_id, size)}


class GroupOrderTest(unittest.TestCase):
    def setUp(self):
        self.competitors = [
            _c("a", order=1),
            _c("b", order=2),
            _c("c", order=3),
            _c("d", order=4),
            _c("x", size="L", order=1),
        ]

    def test_next_run_order(self):
        self.assertEqual(ro.next_run_order(self.competitors, "r1", "M"), 5)
        self.assertEqual(ro.next_run_order(self.competitors, "r1", "S"), 1)

    def test_remove_renumbers_without_gaps(self):
        remaining = [c for c in self.competitors if c["id"] != "b"]
        result = ro.compact_group(remaining, "r1", "M")
        self.assertEqual(_orders(result), {"a": 1, "c": 2, "d": 3})
        self.assertEqual(_orders(result, size="L"), {"x": 1})

    def test_apply_group_order_rejects_mismatched_ids(self):
        self.assertIsNone(ro.apply_group_order(self.competitors, "r1", "M", ["a", "b", "c"]))
        self.assertIsNone(ro.apply_group_order(self.competitors, "r1", "M", ["a", "b", "c", "c"]))
        self.assertIsNone(ro.apply_group_order(self.competitors, "r1", "M", ["a", "b", "c", "x"]))

    def test_apply_group_order(self):
        result = ro.apply_group_order(self.competitors, "r1", "M", ["d", "a", "c", "b"])
        self.assertEqual(_orders(result), {"d": 1, "a": 2, "c": 3, "b": 4})

    def test_move_before_target(self):
        result = ro.move_before(self.competitors, "d", "b")
        self.assertEqual(_orders(result), {"a": 1, "d": 2, "b": 3, "c": 4})

    def test_move_down_lands_at_target_position(self):
        result = ro.move_before(self.competitors, "a", "c")
        self.assertEqual(_orders(result), {"b": 1, "c": 2, "a": 3, "d": 4})

    def test_move_across_sizes_is_rejected(self):
        self.assertIsNone(ro.move_before(self.competitors, "a", "x"))

    def test_randomize_is_a_permutation(self):
        result = ro.randomize_group(self.competitors, "r1", "M", random.Random(7))
        self.assertEqual(sorted(_orders(result).values()), [1, 2, 3, 4])
        self.assertEqual(_orders(result, size="L"), {"x": 1})

    def test_randomize_is_reproducible_with_a_seed(self):
        first = ro.randomize_group(self.competitors, "r1", "M", random.Random(42))
        second = ro.randomize_group(self.competitors, "r1", "M", random.Random(42))
        self.assertEqual(first, second)

    def test_randomize_needs_two_members(self):
        self.assertIsNone(ro.randomize_group(self.competitors, "r1", "L", random.Random(1)))

    def test_contiguity_after_mixed_operations(self):
        rng = random.Random(3)
        comps = list(self.competitors)
        comps.append(_c("e", order=ro.next_run_order(comps, "r1", "M")))
        comps = ro.move_before(comps, "e", "a")
        comps = ro.compact_group([c for c in comps if c["id"] != "c"], "r1", "M")
        comps = ro.randomize_group(comps, "r1", "M", rng)
        comps.append(_c("f", order=ro.next_run_order(comps, "r1", "M")))
        comps = ro.move_before(comps, "a", "f")
        self.assertEqual(sorted(_orders(comps).values()), [1, 2, 3, 4, 5])


class RunQueueTest(unittest.TestCase):
    def setUp(self):
        self.competitors = [
            _c("l1", size="L", order=1),
            _c("s2", size="S", order=2),
            _c("s1", size="S", order=1, total=0),
            _c("m1", size="M", order=1, eliminated=True),
            _c("m2", size="M", order=2),
            _c("i1", size="I", order=1),
            _c("other", size="S", order=1, round_id="r2"),
        ]

    def test_queue_spans_sizes_small_to_large(self):
        queue = ro.run_queue(self.competitors, "r1")
        self.assertEqual([c["id"] for c in queue], ["s2", "m2", "i1", "l1"])

    def test_now_running_and_up_next(self):
        self.assertEqual(ro.now_running(self.competitors, "r1")["id"], "s2")
        self.assertEqual([c["id"] for c in ro.up_next(self.competitors, "r1")], ["m2", "i1", "l1"])

    def test_empty_round(self):
        self.assertIsNone(ro.now_running(self.competitors, "missing"))
        self.assertEqual(ro.up_next(self.competitors, "missing"), [])


if __name__ == "__main__":
    unittest.main()
