import unittest

from pawsspeed.core.ranking import podium, rank_competitors, ranked_only


def _entry(cid, total=None, time=None, eliminated=False):
    return {
        "id": cid,
        "round_id": "agility-1",
        "size": "L",
        "total_fault": total,
        "time_sec": time,
        "eliminated": eliminated,
    }


class RankCompetitorsTest(unittest.TestCase):
    def test_clear_rounds_before_faulted_regardless_of_time(self):
        ranked = rank_competitors(
            [_entry("slow", 0, 30.0), _entry("fast", 0, 28.5), _entry("faulted", 5, 20.0)]
        )
        self.assertEqual([c["id"] for c in ranked], ["fast", "slow", "faulted"])
        self.assertEqual([c["rank"] for c in ranked], [1, 2, 3])

    def test_faulted_ties_broken_by_time(self):
        ranked = rank_competitors(
            [_entry("a", 5, 33.0), _entry("b", 3, 40.0), _entry("c", 5, 31.0)]
        )
        self.assertEqual([c["id"] for c in ranked], ["b", "c", "a"])

    def test_eliminated_then_pending_keep_input_order(self):
        ranked = rank_competitors(
            [
                _entry("p1"),
                _entry("e1", eliminated=True),
                _entry("ok", 0, 35.0),
                _entry("p2"),
                _entry("e2", 4, 30.0, eliminated=True),
            ]
        )
        self.assertEqual([c["id"] for c in ranked], ["ok", "e1", "e2", "p1", "p2"])
        self.assertEqual([c["rank"] for c in ranked], [1, None, None, None, None])

    def test_does_not_mutate_input(self):
        group = [_entry("a", 0, 30.0)]
        rank_competitors(group)
        self.assertNotIn("rank", group[0])

    def test_partition_order_holds_for_mixed_groups(self):
        group = [
            _entry(f"c{i}", total, time, elim)
            for i, (total, time, elim) in enumerate(
                [
                    (0, 41.2, False),
                    (None, None, False),
                    (10, 30.0, False),
                    (None, None, True),
                    (0, 29.9, False),
                    (5, 50.5, False),
                    (5, 44.0, False),
                    (None, None, False),
                ]
            )
        ]

        def bucket(c):
            if c["eliminated"]:
                return 2
            if c["total_fault"] is None:
                return 3
            return 0 if c["total_fault"] == 0 else 1

        buckets = [bucket(c) for c in rank_competitors(group)]
        self.assertEqual(buckets, sorted(buckets))


class PodiumTest(unittest.TestCase):
    def test_top_three_ranked(self):
        ranked = rank_competitors(
            [_entry("a", 0, 30.0), _entry("b", 0, 31.0), _entry("c", 5, 30.0), _entry("d", 8, 20.0)]
        )
        self.assertEqual([c["id"] for c in podium(ranked)], ["a", "b", "c"])

    def test_needs_three_ranked_entries(self):
        ranked = rank_competitors(
            [_entry("a", 0, 30.0), _entry("b", 0, 31.0), _entry("e", eliminated=True), _entry("p")]
        )
        self.assertEqual(len(ranked_only(ranked)), 2)
        self.assertEqual(podium(ranked), [])


if __name__ == "__main__":
    unittest.main()
