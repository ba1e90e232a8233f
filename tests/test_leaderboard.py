import json
from datetime import datetime, timedelta, timezone

import pytest

import leaderboard
from leaderboard import BackendError, JsonFileStore, Leaderboard, SqlScoreStore, ValidationError


class Clock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class BrokenStore(leaderboard.ScoreStore):
    def fetch_all(self):
        raise BackendError("store is down")

    def insert(self, row):
        raise BackendError("store is down")


@pytest.fixture(params=["file", "database"])
def store(request, tmp_path):
    if request.param == "file":
        return JsonFileStore(str(tmp_path / "leaderboard.json"))
    return SqlScoreStore(f"sqlite:///{tmp_path / 'leaderboard.db'}")


@pytest.fixture()
def ranking(store):
    return Leaderboard(store, clock=Clock())


def test_empty_store_lists_nothing(ranking):
    assert ranking.list_scores() == []


def test_submit_trims_nickname_and_returns_record(ranking):
    record = ranking.submit_score("  Ada  ", 512, 30)
    assert record.nickname == "Ada"
    assert record.score == 512
    assert record.time_taken == 30
    assert record.timestamp.tzinfo is not None

    listed = ranking.list_scores()
    assert [(r.nickname, r.score, r.time_taken) for r in listed] == [("Ada", 512, 30)]
    assert listed[0].timestamp == record.timestamp


def test_ordering_score_then_time_with_missing_times_last(ranking):
    ranking.submit_score("slow", 2048, 40)
    ranking.submit_score("loser", 2048, None)
    ranking.submit_score("fast", 2048, 20)
    ranking.submit_score("low", 100, 5)
    names = [r.nickname for r in ranking.list_scores()]
    assert names == ["fast", "slow", "loser", "low"]


def test_limit(ranking):
    for score in (10, 30, 20):
        ranking.submit_score("p", score)
    assert [r.score for r in ranking.list_scores(limit=2)] == [30, 20]


@pytest.mark.parametrize("nickname, score, time_taken", [
    ("", 10, None),
    ("   ", 10, None),
    (None, 10, None),
    (42, 10, None),
    ("Ada", "10", None),
    ("Ada", None, None),
    ("Ada", True, None),
    ("Ada", -1, None),
    ("Ada", 10.5, None),
    ("Ada", 10, "fast"),
    ("Ada", 10, -3),
])
def test_invalid_submissions_rejected(ranking, nickname, score, time_taken):
    with pytest.raises(ValidationError):
        ranking.submit_score(nickname, score, time_taken)
    assert ranking.list_scores() == []


def test_integral_float_is_accepted(ranking):
    assert ranking.submit_score("Ada", 64.0, 12.0).score == 64


def test_write_failure_is_backend_error():
    with pytest.raises(BackendError):
        Leaderboard(BrokenStore()).submit_score("Ada", 10)


def test_read_failure_degrades_to_empty_list():
    assert Leaderboard(BrokenStore()).list_scores() == []


def test_corrupt_file_degrades_to_empty_list(tmp_path):
    path = tmp_path / "leaderboard.json"
    path.write_text("{not json")
    ranking = Leaderboard(JsonFileStore(str(path)))
    assert ranking.list_scores() == []
    with pytest.raises(BackendError):
        ranking.submit_score("Ada", 10)


def test_file_store_keeps_epoch_millis(tmp_path):
    path = tmp_path / "leaderboard.json"
    Leaderboard(JsonFileStore(str(path)), clock=Clock()).submit_score("Ada", 8)
    rows = json.loads(path.read_text())
    assert rows[0]["nickname"] == "Ada"
    assert rows[0]["time_taken"] is None
    assert isinstance(rows[0]["timestamp"], int)


def test_malformed_rows_are_skipped(tmp_path):
    path = tmp_path / "leaderboard.json"
    path.write_text(json.dumps([
        {"nickname": "ok", "score": 4, "time_taken": None, "timestamp": 1700000000000},
        {"nickname": "no-score"},
        {"nickname": "iso", "score": 8, "time_taken": 3, "timestamp": "2024-01-01T00:00:00Z"},
    ]))
    records = Leaderboard(JsonFileStore(str(path))).list_scores()
    assert [r.nickname for r in records] == ["iso", "ok"]


def test_mistyped_and_out_of_range_rows_are_skipped(tmp_path):
    path = tmp_path / "leaderboard.json"
    path.write_text(json.dumps([
        {"nickname": "text-score", "score": "100", "time_taken": None, "timestamp": 1700000000000},
        {"nickname": "text-time", "score": 50, "time_taken": "fast", "timestamp": 1700000000000},
        {"nickname": "far-future", "score": 60, "time_taken": None, "timestamp": 10 ** 20},
        {"nickname": 7, "score": 70, "time_taken": None, "timestamp": 1700000000000},
        {"nickname": "ok", "score": 4, "time_taken": 9, "timestamp": 1700000000000},
    ]))
    records = Leaderboard(JsonFileStore(str(path))).list_scores()
    assert [(r.nickname, r.score, r.time_taken) for r in records] == [("ok", 4, 9)]


@pytest.mark.parametrize("score, time_taken", [
    (10 ** 30, None),
    (10, 10 ** 30),
    (2 ** 63, None),
    (1e30, None),
])
def test_oversized_numbers_rejected_by_every_backend(ranking, score, time_taken):
    with pytest.raises(ValidationError):
        ranking.submit_score("Ada", score, time_taken)
    assert ranking.list_scores() == []


def test_largest_storable_score_round_trips(ranking):
    ranking.submit_score("Ada", leaderboard.MAX_STORED_INT)
    assert ranking.list_scores()[0].score == leaderboard.MAX_STORED_INT


def test_failed_file_write_leaves_no_temp_file(tmp_path, monkeypatch):
    path = tmp_path / "leaderboard.json"
    ranking = Leaderboard(JsonFileStore(str(path)), clock=Clock())

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(leaderboard.os, "replace", failing_replace)
    with pytest.raises(BackendError):
        ranking.submit_score("Ada", 10)
    assert list(tmp_path.iterdir()) == []


def test_unserialisable_row_is_backend_error(tmp_path):
    path = tmp_path / "leaderboard.json"
    store = JsonFileStore(str(path))
    row = {"nickname": object(), "score": 1, "time_taken": None,
           "timestamp": datetime(2025, 1, 1, tzinfo=timezone.utc)}
    with pytest.raises(BackendError):
        store.insert(row)
    assert list(tmp_path.iterdir()) == []


def test_normalize_timestamp_variants():
    expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert leaderboard.normalize_timestamp(1700000000000) == expected
    assert leaderboard.normalize_timestamp("2023-11-14T22:13:20+00:00") == expected
    assert leaderboard.normalize_timestamp("2023-11-14T22:13:20Z") == expected
    assert leaderboard.normalize_timestamp("2023-11-14T22:13:20") == expected
    with pytest.raises(ValueError):
        leaderboard.normalize_timestamp([])


def test_create_store_picks_backend(tmp_path):
    class FileSettings:
        LEADERBOARD_BACKEND = "file"
        LEADERBOARD_FILE = str(tmp_path / "scores.json")
        DATABASE_URL = "sqlite://"

    class DbSettings(FileSettings):
        LEADERBOARD_BACKEND = "database"

    class BadSettings(FileSettings):
        LEADERBOARD_BACKEND = "carrier-pigeon"

    assert isinstance(leaderboard.create_store(FileSettings), JsonFileStore)
    assert isinstance(leaderboard.create_store(DbSettings), SqlScoreStore)
    with pytest.raises(ValueError):
        leaderboard.create_store(BadSettings)
