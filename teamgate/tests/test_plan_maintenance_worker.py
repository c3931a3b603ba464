import json
from datetime import datetime, timedelta, timezone

from teamgate.features.teams.service import change_plan, get_team
from teamgate.workers import plan_maintenance


def test_worker_downgrades_lapsed_teams(make_team, capsys):
    lapsed, _ = make_team("pro", name="Lapsed")
    current, _ = make_team("pro", name="Current")
    change_plan(lapsed.id, "pro", datetime(2026, 1, 1, tzinfo=timezone.utc))
    change_plan(current.id, "pro", datetime(2026, 3, 1, tzinfo=timezone.utc))

    code = plan_maintenance.main(["--now", "2026-02-01T00:00:00+00:00"])

    assert code == 0
    output = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert output["expired"]["synced"] == [lapsed.id]
    assert get_team(lapsed.id).plan_slug == "free"
    assert get_team(current.id).plan_slug == "pro"


def test_worker_syncs_requested_plan(make_team):
    team, _ = make_team("pro")
    result = plan_maintenance.run(plan_slug="pro", now=datetime.now(timezone.utc) - timedelta(days=1))
    assert result["expired"]["synced"] == []
    assert result["synced"]["plan_slug"] == "pro"
    assert team.id in result["synced"]["synced"]


def test_worker_reports_failures(make_team, monkeypatch):
    team, _ = make_team("pro")
    change_plan(team.id, "pro", datetime(2026, 1, 1, tzinfo=timezone.utc))

    def boom(session, t):
        raise RuntimeError("sync exploded")

    monkeypatch.setattr("teamgate.features.teams.service._sync_admin", boom)

    code = plan_maintenance.main(["--now", "2026-02-01T00:00:00+00:00"])

    assert code == 1
    assert get_team(team.id).plan_slug == "pro"
