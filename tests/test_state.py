"""
Competition store tests.

Purpose:
- Every mutation goes through a named action and either commits or is rejected as a no-op
- Listeners see exactly the keys an action changed
- Persistence round-trips the durable subset and resets on an incompatible schema
- The current round is reconciled on load
"""
import itertools
import random
import unittest

from pawsspeed.core.constants import dog_emoji
from pawsspeed.core.state import (
    SCHEMA_VERSION,
    CompetitionStore,
    default_state,
    derive_dog_id,
)


def _store():
    counter = itertools.count(1)
    return CompetitionStore(rng=random.Random(5), id_factory=lambda: f"id{next(counter)}")


def _add(store, dog, size="M", round_id="agility-a1", human="Ana"):
    result = store.add_competitor(dog, human, size, breed="Border Collie", round_id=round_id)
    assert result.ok, result.reason
    return result.data["competitor"]["id"]


class BaseStoreTest(unittest.TestCase):
    def setUp(self):
        self.store = _store()
        self.events = []
        self.store.subscribe(lambda s, changed: self.events.append(changed))


class DefaultsTest(BaseStoreTest):
    def test_default_rounds_and_course_times(self):
        rounds = self.store.rounds
        self.assertEqual(len(rounds), 7)
        self.assertEqual(rounds[0]["name"], "Novice 1")
        self.assertEqual(rounds[0]["abbreviation"], "N1")
        self.assertEqual(self.store.course_time_for("jumping-open-1"), {"sct": 40, "mct": 56})
        self.assertEqual(self.store.current_round_id, "novice-1")
        self.assertFalse(self.store.host_unlocked)

    def test_unknown_round_has_no_course_time(self):
        self.assertEqual(self.store.course_time_for("nope"), {"sct": 0, "mct": 0})

    def test_get_state_is_a_copy(self):
        state = self.store.get_state()
        state["rounds"].clear()
        self.assertEqual(len(self.store.rounds), 7)


class RoundActionsTest(BaseStoreTest):
    def test_add_round(self):
        result = self.store.add_round("Grand Final", "GRANDF")
        self.assertTrue(result.ok)
        rnd = result.data["round"]
        self.assertEqual(rnd["id"], "round-id1")
        self.assertEqual(rnd["abbreviation"], "GRAN")
        self.assertEqual(self.store.course_time_for(rnd["id"]), {"sct": 40, "mct": 56})
        self.assertEqual(self.store.rounds[-1]["name"], "Grand Final")
        self.assertEqual(self.events[-1], frozenset({"rounds", "courseTimeConfig"}))

    def test_add_round_rejects_duplicate_and_empty_names(self):
        before = self.store.get_state()
        self.assertEqual(self.store.add_round("Novice 1").reason, "duplicate_name")
        self.assertEqual(self.store.add_round("   ").reason, "empty_name")
        self.assertEqual(self.store.get_state(), before)
        self.assertEqual(self.events, [])

    def test_rename_keeps_id_and_references(self):
        cid = _add(self.store, "Ziggy")
        result = self.store.rename_round("agility-a1", "Agility Final")
        self.assertTrue(result.ok)
        self.assertEqual(self.store.get_round("agility-a1")["name"], "Agility Final")
        self.assertEqual(self.store.get_competitor(cid)["round_id"], "agility-a1")
        self.assertEqual(self.store.course_time_for("agility-a1"), {"sct": 35, "mct": 49})

    def test_rename_to_existing_name_is_rejected(self):
        result = self.store.rename_round("agility-a1", "Novice 1")
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, "duplicate_name")
        self.assertEqual(self.store.get_round("agility-a1")["name"], "Agility A1")

    def test_rename_to_same_name_changes_nothing(self):
        result = self.store.rename_round("agility-a1", "Agility A1")
        self.assertTrue(result.ok)
        self.assertEqual(self.events, [])

    def test_delete_round_in_use_is_rejected(self):
        _add(self.store, "Ziggy")
        result = self.store.delete_round("agility-a1")
        self.assertEqual(result.reason, "round_in_use")
        self.assertIsNotNone(self.store.get_round("agility-a1"))

    def test_delete_round_moves_pointers(self):
        self.store.set_live_round("novice-1")
        self.assertTrue(self.store.delete_round("novice-1").ok)
        self.assertIsNone(self.store.get_round("novice-1"))
        self.assertNotIn("novice-1", self.store.course_time_config)
        self.assertEqual(self.store.current_round_id, "novice-2")
        self.assertEqual(self.store.live_round_id, "novice-2")

    def test_abbreviation_is_truncated(self):
        self.store.set_round_abbreviation("agility-a1", "AGILITY")
        self.assertEqual(self.store.get_round("agility-a1")["abbreviation"], "AGIL")

    def test_merge_rounds_adds_unknown_ids_only(self):
        result = self.store.merge_rounds(
            [
                {"id": "agility-a1", "name": "Renamed"},
                {"id": "round-x", "name": "Novice 1", "abbreviation": "XX"},
            ]
        )
        self.assertEqual(result.data["added"], ["round-x"])
        self.assertEqual(self.store.get_round("agility-a1")["name"], "Agility A1")
        self.assertEqual(self.store.get_round("round-x")["name"], "Novice 1 (round-x)")
        self.assertEqual(self.store.course_time_for("round-x"), {"sct": 40, "mct": 56})


class CompetitorActionsTest(BaseStoreTest):
    def test_add_assigns_next_run_order_per_group(self):
        a = _add(self.store, "Ziggy")
        b = _add(self.store, "Pip")
        c = _add(self.store, "Tank", size="L")
        self.assertEqual(self.store.get_competitor(a)["run_order"], 1)
        self.assertEqual(self.store.get_competitor(b)["run_order"], 2)
        self.assertEqual(self.store.get_competitor(c)["run_order"], 1)
        self.assertEqual(self.store.get_competitor(a)["dog_id"], derive_dog_id("Ziggy"))

    def test_add_defaults_to_current_round(self):
        self.store.set_current_round("novice-2")
        result = self.store.add_competitor("Ziggy", "Ana", "S")
        self.assertEqual(result.data["competitor"]["round_id"], "novice-2")

    def test_add_rejects_invalid_input(self):
        self.assertEqual(self.store.add_competitor("Ziggy", "Ana", "XL").reason, "invalid_competitor")
        self.assertEqual(self.store.add_competitor("", "Ana", "M").reason, "invalid_competitor")
        self.assertEqual(
            self.store.add_competitor("Ziggy", "Ana", "M", round_id="nope").reason, "round_not_found"
        )
        self.assertEqual(self.store.competitors, [])

    def test_remove_renumbers_group(self):
        ids = [_add(self.store, name) for name in ("A", "B", "C", "D")]
        self.store.remove_competitor(ids[1])
        orders = {c["dog_name"]: c["run_order"] for c in self.store.group("agility-a1", "M")}
        self.assertEqual(orders, {"A": 1, "C": 2, "D": 3})

    def test_save_score_toasts(self):
        cid = _add(self.store, "Ziggy")
        saved = self.store.save_score(cid, 0, 0, 36.2)
        self.assertEqual(saved.data["toast"], "saved")
        self.assertEqual(saved.data["competitor"]["time_fault"], 1)
        over = self.store.save_score(cid, 0, 0, 60)
        self.assertEqual(over.data["toast"], "eliminated")
        self.assertTrue(self.store.get_competitor(cid)["eliminated"])

    def test_save_score_rejects_invalid_values(self):
        cid = _add(self.store, "Ziggy")
        for fault, refusal, time in ((-1, 0, 30.0), (0, -2, 30.0), (0, 0, -1.0), (0, 0, float("nan"))):
            result = self.store.save_score(cid, fault, refusal, time)
            self.assertEqual(result.reason, "invalid_score")
        self.assertIsNone(self.store.get_competitor(cid)["time_sec"])

    def test_eliminate(self):
        cid = _add(self.store, "Ziggy")
        self.store.save_score(cid, 5, 0, 30.0)
        result = self.store.eliminate(cid)
        self.assertEqual(result.data["toast"], "eliminated")
        comp = self.store.get_competitor(cid)
        self.assertTrue(comp["eliminated"])
        self.assertIsNone(comp["fault"])

    def test_update_icon_covers_every_round(self):
        _add(self.store, "Ziggy")
        _add(self.store, "Ziggy", round_id="novice-1")
        self.assertTrue(self.store.update_icon("Ziggy", "Ana", "🐕").ok)
        self.assertEqual({c["icon"] for c in self.store.competitors}, {"🐕"})
        self.assertFalse(self.store.update_icon("Nobody", "Ana", "🐕").ok)

    def test_new_entry_gets_stable_fallback_icon(self):
        first = self.store.get_competitor(_add(self.store, "Ziggy"))
        second = self.store.get_competitor(_add(self.store, "Ziggy", round_id="novice-1"))
        self.assertEqual(first["icon"], dog_emoji("Ziggy"))
        self.assertEqual(first["icon"], second["icon"])

    def test_clear_all(self):
        _add(self.store, "Ziggy")
        self.store.clear_all()
        self.assertEqual(self.store.competitors, [])
        self.assertEqual(len(self.store.rounds), 7)


class CourseTimeTest(BaseStoreTest):
    def test_update_recomputes_scored_entries(self):
        cid = _add(self.store, "Ziggy")
        pending = _add(self.store, "Pip")
        self.store.save_score(cid, 0, 0, 45.7)
        self.assertTrue(self.store.get_competitor(cid)["eliminated"] is False)
        result = self.store.update_course_time("agility-a1", 40, 56)
        self.assertTrue(result.ok)
        self.assertEqual(self.store.get_competitor(cid)["total_fault"], 5)
        self.assertIsNone(self.store.get_competitor(pending)["total_fault"])

    def test_rescore_after_update_matches_recompute(self):
        cid = _add(self.store, "Ziggy")
        self.store.save_score(cid, 5, 1, 47.3)
        self.store.update_course_time("agility-a1", 42, 60)
        recomputed = self.store.get_competitor(cid)
        self.store.save_score(cid, 5, 1, 47.3)
        self.assertEqual(self.store.get_competitor(cid), recomputed)

    def test_policy_rejections(self):
        self.assertEqual(self.store.update_course_time("agility-a1", 50, 40).reason, "invalid_course_time")
        self.assertEqual(self.store.update_course_time("agility-a1", -1, 40).reason, "invalid_course_time")
        self.assertEqual(self.store.update_course_time("nope", 40, 56).reason, "round_not_found")
        self.assertEqual(self.store.course_time_for("agility-a1"), {"sct": 35, "mct": 49})

    def test_zero_mct_means_no_maximum(self):
        cid = _add(self.store, "Ziggy")
        self.assertTrue(self.store.update_course_time("agility-a1", 40, 0).ok)
        self.store.save_score(cid, 0, 0, 300.0)
        self.assertFalse(self.store.get_competitor(cid)["eliminated"])


class RunningOrderActionsTest(BaseStoreTest):
    def setUp(self):
        super().setUp()
        self.ids = [_add(self.store, name) for name in ("A", "B", "C")]
        self.large = _add(self.store, "Big", size="L")

    def test_reorder_group(self):
        result = self.store.reorder_group("agility-a1", "M", list(reversed(self.ids)))
        self.assertTrue(result.ok)
        self.assertEqual([c["dog_name"] for c in self.store.group("agility-a1", "M")], ["C", "B", "A"])

    def test_reorder_with_wrong_ids_is_rejected(self):
        before = self.store.competitors
        self.assertEqual(self.store.reorder_group("agility-a1", "M", self.ids[:2]).reason, "ids_mismatch")
        self.assertEqual(self.store.competitors, before)

    def test_move_across_sizes_is_noop(self):
        before = self.store.competitors
        result = self.store.move_competitor(self.ids[0], self.large)
        self.assertFalse(result.ok)
        self.assertEqual(self.store.competitors, before)

    def test_randomize(self):
        self.assertTrue(self.store.randomize_group("agility-a1", "M").ok)
        orders = sorted(c["run_order"] for c in self.store.group("agility-a1", "M"))
        self.assertEqual(orders, [1, 2, 3])
        self.assertEqual(self.store.randomize_group("agility-a1", "L").reason, "group_too_small")


class ListenerTest(BaseStoreTest):
    def test_listener_receives_changed_keys(self):
        _add(self.store, "Ziggy")
        self.assertEqual(self.events, [frozenset({"competitors"})])

    def test_unsubscribe(self):
        seen = []
        unsubscribe = self.store.subscribe(lambda s, changed: seen.append(changed))
        unsubscribe()
        _add(self.store, "Ziggy")
        self.assertEqual(seen, [])

    def test_failing_listener_does_not_undo_the_change(self):
        def boom(store, changed):
            raise RuntimeError("disk full")

        self.store.subscribe(boom)
        cid = _add(self.store, "Ziggy")
        self.assertIsNotNone(self.store.get_competitor(cid))


class PersistenceTest(unittest.TestCase):
    def test_persisted_subset_excludes_transient_fields(self):
        store = _store()
        store.set_host_unlocked(True)
        payload = store.to_persisted()
        self.assertEqual(
            set(payload), {"rounds", "courseTimeConfig", "competitors", "liveRoundId", "schemaVersion"}
        )
        self.assertEqual(payload["schemaVersion"], SCHEMA_VERSION)

    def test_round_trip(self):
        store = _store()
        cid = _add(store, "Ziggy")
        store.save_score(cid, 0, 0, 33.0)
        store.add_round("Final")
        restored = CompetitionStore.from_persisted(store.to_persisted())
        self.assertEqual(restored.competitors, store.competitors)
        self.assertEqual(restored.rounds, store.rounds)
        self.assertEqual(restored.course_time_config, store.course_time_config)
        self.assertFalse(restored.host_unlocked)

    def test_incompatible_schema_resets(self):
        legacy = {
            "rounds": ["Agility A1"],
            "competitors": [{"id": "x", "round_id": "Agility A1"}],
            "courseTimeConfig": {"Agility A1": {"sct": 40, "mct": 56}},
        }
        restored = CompetitionStore.from_persisted(legacy)
        self.assertEqual(restored.competitors, [])
        self.assertEqual(restored.get_state()["rounds"], default_state()["rounds"])

    def test_missing_payload_starts_fresh(self):
        self.assertEqual(len(CompetitionStore.from_persisted(None).rounds), 7)

    def test_load_compacts_run_order(self):
        store = _store()
        state = store.to_persisted()
        state["competitors"] = [
            {"id": "a", "round_id": "novice-1", "size": "S", "run_order": 4},
            {"id": "b", "round_id": "novice-1", "size": "S", "run_order": 9},
        ]
        restored = CompetitionStore.from_persisted(state)
        self.assertEqual([c["run_order"] for c in restored.group("novice-1", "S")], [1, 2])


class ReconcileCurrentRoundTest(unittest.TestCase):
    def _persisted(self, live, competitors):
        state = _store().to_persisted()
        state["liveRoundId"] = live
        state["competitors"] = competitors
        return state

    def test_prefers_live_round_with_pending_entrants(self):
        restored = CompetitionStore.from_persisted(
            self._persisted(
                "agility-a2",
                [
                    {"id": "a", "round_id": "novice-2", "size": "S", "run_order": 1},
                    {"id": "b", "round_id": "agility-a2", "size": "S", "run_order": 1},
                ],
            )
        )
        self.assertEqual(restored.current_round_id, "agility-a2")

    def test_falls_back_to_first_round_with_entrants(self):
        restored = CompetitionStore.from_persisted(
            self._persisted(
                "agility-a2",
                [
                    {"id": "a", "round_id": "agility-a2", "size": "S", "run_order": 1, "total_fault": 0},
                    {"id": "b", "round_id": "jumping-open-2", "size": "S", "run_order": 1},
                    {"id": "c", "round_id": "agility-a3", "size": "S", "run_order": 1},
                ],
            )
        )
        self.assertEqual(restored.current_round_id, "jumping-open-2")

    def test_empty_competition_uses_first_round(self):
        restored = CompetitionStore.from_persisted(self._persisted("agility-a2", []))
        self.assertEqual(restored.current_round_id, "novice-1")


class ReplaceSyncedTest(unittest.TestCase):
    def test_replaces_without_merge(self):
        store = _store()
        _add(store, "Local")
        remote_rounds = [{"id": "remote-1", "name": "Remote", "abbreviation": "R", "sort_order": 0}]
        store.replace_synced(
            [{"id": "r", "round_id": "remote-1", "size": "S", "run_order": 1}],
            {"remote-1": {"sct": 30, "mct": 45}},
            remote_rounds,
        )
        self.assertEqual([c["id"] for c in store.competitors], ["r"])
        self.assertEqual(store.rounds, remote_rounds)
        self.assertEqual(store.current_round_id, "remote-1")

    def test_none_rounds_keeps_local_rounds(self):
        store = _store()
        store.replace_synced([], {})
        self.assertEqual(len(store.rounds), 7)

    def test_entries_without_id_are_dropped_and_groups_compacted(self):
        store = _store()
        store.replace_synced(
            [
                {"dog_name": "NoId"},
                {"id": "b", "round_id": "novice-1", "size": "S", "run_order": 7},
                {"id": "a", "round_id": "novice-1", "size": "S", "run_order": 3},
            ],
            {},
            [{"name": "nameless"}, {"id": "novice-1", "name": "Novice 1", "abbreviation": "N1", "sort_order": 0}],
        )
        self.assertEqual({c["id"]: c["run_order"] for c in store.competitors}, {"a": 1, "b": 2})
        self.assertEqual([r["id"] for r in store.rounds], ["novice-1"])
        self.assertFalse(store.remove_competitor("missing").ok)
        self.assertTrue(store.remove_competitor("a").ok)


if __name__ == "__main__":
    unittest.main()
