from pawsspeed.core.roster import import_roster, normalize_size, parse_roster_csv, parse_roster_rows
from pawsspeed.core.state import CompetitionStore


def test_parse_csv_with_aliases_and_quotes():
    text = '\ufeffDog Name,Breed,Height,Owner\n"Ziggy, Jr.",Kelpie,medium,Ana\nPip,,s,"Bo ""B"" Lee"\n'
    parsed = parse_roster_csv(text)
    assert [r.dog for r in parsed.valid] == ["Ziggy, Jr.", "Pip"]
    assert parsed.valid[0].size == "M"
    assert parsed.valid[1].breed == "—"
    assert parsed.valid[1].human == 'Bo "B" Lee'
    assert parsed.skipped == []


def test_rows_with_problems_are_skipped_with_reasons():
    parsed = parse_roster_rows(
        [
            ["Dog", "Size", "Handler"],
            ["", "M", "Ana"],
            ["Ziggy", "M", None],
            ["Tank", "XXL", "Bo"],
            [None, None, None],
            ["Pip", "L", "Cy"],
        ]
    )
    assert [r.dog for r in parsed.valid] == ["Pip"]
    assert [s.reason for s in parsed.skipped] == [
        "Missing dog name",
        "Missing handler name",
        'Unknown size "XXL" (use S/M/I/L)',
    ]


def test_missing_required_columns():
    parsed = parse_roster_rows([["Dog", "Breed"], ["Ziggy", "Kelpie"]])
    assert parsed.valid == []
    assert parsed.skipped[0].reason.startswith("Could not detect required columns")


def test_normalize_size():
    assert normalize_size(" Intermediate ") == "I"
    assert normalize_size("large") == "L"
    assert normalize_size("xl") is None


def test_import_appends_in_run_order():
    store = CompetitionStore()
    store.add_competitor("Existing", "Ana", "M", round_id="novice-1")
    parsed = parse_roster_csv("dog,size,handler\nZiggy,M,Bo\nPip,S,Cy\nTank,M,Di\n")
    results = import_roster(store, "novice-1", parsed)
    assert all(r.ok for r in results)
    medium = [(c["dog_name"], c["run_order"]) for c in store.group("novice-1", "M")]
    assert medium == [("Existing", 1), ("Ziggy", 2), ("Tank", 3)]


def test_import_into_unknown_round_reports_skips():
    store = CompetitionStore()
    parsed = parse_roster_csv("dog,size,handler\nZiggy,M,Bo\n")
    results = import_roster(store, "missing", parsed)
    assert not results[0].ok
    assert parsed.skipped[0].reason == "round_not_found"
    assert store.competitors == []
