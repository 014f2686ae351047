import pytest

from studyhub import errors, models, services


def _seed(session, rows):
    """Create users named by `rows` keys with (hours, points) ledgers; returns name -> id."""
    auth = services.AuthService(session)
    progress = services.ProgressService(session)
    ids = {}
    for name, (hours, points) in rows.items():
        user = auth.register(name, f"{name.lower()}@example.com", "pw")
        progress.apply_delta(user.id, hours, points)
        ids[name] = user.id
    return ids


def _names(entries):
    return [e["user"]["name"] for e in entries]


def test_points_ties_broken_by_hours(session):
    _seed(session, {"Ana": (5, 100), "Bia": (10, 100), "Caio": (50, 80)})
    entries = services.RankingService(session).compute_ranking("points")
    assert _names(entries) == ["Bia", "Ana", "Caio"]
    assert [e["rank"] for e in entries] == [1, 2, 3]


def test_hours_ties_broken_by_points(session):
    _seed(session, {"Ana": (10, 5), "Bia": (10, 90), "Caio": (2, 500)})
    entries = services.RankingService(session).compute_ranking("hours")
    assert _names(entries) == ["Bia", "Ana", "Caio"]


def test_ranking_is_a_permutation_and_stable(session):
    ids = _seed(session, {"Ana": (1, 10), "Bia": (1, 10), "Caio": (3, 10), "Duda": (0, 0)})
    svc = services.RankingService(session)
    first = svc.compute_ranking("points")
    second = svc.compute_ranking("points")
    assert sorted(e["user"]["id"] for e in first) == sorted(ids.values())
    assert [e["rank"] for e in first] == list(range(1, len(ids) + 1))
    assert [e["user"]["id"] for e in first] == [e["user"]["id"] for e in second]
    points = [(e["points"], e["hours"]) for e in first]
    assert points == sorted(points, reverse=True)


def test_single_user_is_first_and_neutral(session):
    _seed(session, {"Ana": (0, 0)})
    entries = services.RankingService(session).compute_ranking("points")
    assert len(entries) == 1
    assert entries[0]["rank"] == 1
    assert entries[0]["trend"] == "neutral"


def test_trend_follows_rank_changes(session):
    ids = _seed(session, {"Ana": (0, 20), "Bia": (0, 10)})
    svc = services.RankingService(session)
    initial = svc.compute_ranking("points")
    assert [e["trend"] for e in initial] == ["neutral", "neutral"]

    services.ProgressService(session).apply_delta(ids["Bia"], 0, 15)
    moved = {e["user"]["name"]: e for e in svc.compute_ranking("points")}
    assert moved["Bia"]["rank"] == 1 and moved["Bia"]["trend"] == "up"
    assert moved["Ana"]["rank"] == 2 and moved["Ana"]["trend"] == "down"

    # no writes in between: trends stay put
    again = {e["user"]["name"]: e["trend"] for e in svc.compute_ranking("points")}
    assert again == {"Bia": "up", "Ana": "down"}

    assert services.ProgressService(session).read(ids["Ana"]).trend == models.Trend.down


def test_trend_reflects_others_moving(session):
    ids = _seed(session, {"Ana": (0, 30), "Bia": (0, 20), "Caio": (0, 10)})
    svc = services.RankingService(session)
    svc.compute_ranking("points")
    # Caio overtakes both; Ana and Bia lose a place without changing their own score
    services.ProgressService(session).apply_delta(ids["Caio"], 0, 100)
    trends = {e["user"]["name"]: e["trend"] for e in svc.compute_ranking("points")}
    assert trends == {"Caio": "up", "Ana": "down", "Bia": "down"}


def test_metrics_keep_separate_baselines(session):
    _seed(session, {"Ana": (1, 50), "Bia": (9, 5)})
    svc = services.RankingService(session)
    svc.compute_ranking("points")
    hours = svc.compute_ranking("hours")
    assert _names(hours) == ["Bia", "Ana"]
    assert [e["trend"] for e in hours] == ["neutral", "neutral"]


def test_unknown_metric(session):
    with pytest.raises(errors.ValidationFailed):
        services.RankingService(session).compute_ranking("likes")


def test_entries_include_display_hours(session):
    _seed(session, {"Ana": (26.5, 0)})
    entry = services.RankingService(session).compute_ranking("hours")[0]
    assert entry["hours_display"] == "1d 2h 30m"


@pytest.mark.parametrize("metric", ["points", "hours"])
def test_full_tie_keeps_registration_order(session, metric):
    _seed(session, {"Ana": (1, 10), "Bia": (1, 10)})
    svc = services.RankingService(session)
    assert _names(svc.compute_ranking(metric)) == ["Ana", "Bia"]
    assert _names(svc.compute_ranking(metric)) == ["Ana", "Bia"]
