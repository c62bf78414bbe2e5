import pytest
from datetime import datetime

from apiwatch.exceptions import ValidationError
from apiwatch.models.alert import Alert
from apiwatch.models.endpoint import Endpoint
from apiwatch.models.metric import Metric
from apiwatch.models.enums import AlertType, AlertStatus, HttpMethod


def test_endpoint_defaults_and_url(db):
    endpoint = Endpoint(path="/v1/items", base_url="https://api.example.com")
    db.add(endpoint)
    db.commit()
    db.refresh(endpoint)

    assert endpoint.id is not None
    assert endpoint.method == "GET"
    assert endpoint.is_active is True
    assert endpoint.response_time_threshold == 500
    assert endpoint.error_rate_threshold == 1.0
    assert endpoint.availability_threshold == 99.9
    assert endpoint.url == "https://api.example.com/v1/items"
    assert endpoint.created_at is not None


def test_endpoint_method_is_normalized():
    assert Endpoint(path="/v1/items", method=" post ").method == "POST"
    assert Endpoint(path="/v1/items", method=HttpMethod.DELETE).method == "DELETE"


def test_endpoint_rejects_unknown_method():
    with pytest.raises(ValidationError, match="Unsupported HTTP method"):
        Endpoint(path="/v1/items", method="FETCH")


def test_endpoint_url_without_base(db):
    assert Endpoint(path="http://localhost/health").url == "http://localhost/health"


def test_endpoint_tags_round_trip(db):
    endpoint = Endpoint(path="/v1/items")
    endpoint.tags = ["public", "billing"]
    db.add(endpoint)
    db.commit()
    db.refresh(endpoint)

    assert endpoint.tags == ["public", "billing"]
    endpoint.tags = []
    assert endpoint._tags is None


def test_metric_metadata_stores_null(db, make_endpoint):
    endpoint = make_endpoint()
    metric = Metric(endpoint_id=endpoint.id, timestamp=datetime(2024, 1, 1), success=False, response_metadata=None)
    db.add(metric)
    db.commit()

    assert db.query(Metric).filter(Metric.response_metadata.isnot(None)).count() == 0


def test_alert_security_flag(make_endpoint):
    endpoint = make_endpoint()
    alert = Alert(endpoint_id=endpoint.id, type=AlertType.SENSITIVE_DATA.value, message="x",
                  status=AlertStatus.NEW.value)

    assert alert.is_security is True
    assert AlertType.RESPONSE_TIME.is_security is False
