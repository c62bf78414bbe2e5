from datetime import datetime, timedelta

from apiwatch.repositories.metric_repository import MetricRepository

NOW = datetime(2024, 1, 1, 12, 0, 0)


def test_window_counts(db, make_endpoint, add_metrics):
    endpoint = make_endpoint()
    add_metrics(endpoint, 3)
    add_metrics(endpoint, 2, success=False, status_code=500)
    add_metrics(endpoint, 4, at=NOW - timedelta(hours=3))

    assert MetricRepository.window_counts(db, endpoint.id, NOW - timedelta(hours=1)) == (5, 3)


def test_window_counts_empty(db, make_endpoint):
    endpoint = make_endpoint()
    assert MetricRepository.window_counts(db, endpoint.id, NOW) == (0, 0)


def test_counts_per_minute(db, make_endpoint, add_metrics):
    endpoint = make_endpoint()
    add_metrics(endpoint, 3, at=NOW - timedelta(minutes=2, seconds=-10), spacing=timedelta(seconds=5))
    add_metrics(endpoint, 1, at=NOW - timedelta(seconds=30))

    counts = MetricRepository.counts_per_minute(db, endpoint.id, NOW - timedelta(minutes=5))

    assert counts == {
        datetime(2024, 1, 1, 11, 58): 3,
        datetime(2024, 1, 1, 11, 59): 1,
    }


def test_recent_with_metadata_newest_first(db, make_endpoint, add_metrics):
    endpoint = make_endpoint()
    add_metrics(endpoint, 1, at=NOW - timedelta(minutes=10), metadata={"headers": {"a": "1"}})
    newest = add_metrics(endpoint, 1, metadata={"headers": {"b": "2"}})
    add_metrics(endpoint, 1, metadata=None)

    rows = MetricRepository.recent_with_metadata(db, endpoint.id, NOW - timedelta(hours=1), limit=10)

    assert [r.id for r in rows][0] == newest[0].id
    assert len(rows) == 2


def test_auth_failure_codes(db, make_endpoint, add_metrics):
    endpoint = make_endpoint()
    add_metrics(endpoint, 2, success=False, status_code=401)
    add_metrics(endpoint, 1, success=False, status_code=403)
    add_metrics(endpoint, 1, success=False, status_code=500)

    codes = MetricRepository.auth_failure_codes(db, endpoint.id, NOW - timedelta(hours=1))

    assert sorted(codes) == [401, 401, 403]


def test_delete_older_than(db, make_endpoint, add_metrics):
    endpoint = make_endpoint()
    add_metrics(endpoint, 2, at=NOW - timedelta(days=40))
    add_metrics(endpoint, 1)

    assert MetricRepository.delete_older_than(db, NOW - timedelta(days=30)) == 2
    assert MetricRepository.window_counts(db, endpoint.id, NOW - timedelta(days=60)) == (1, 1)
