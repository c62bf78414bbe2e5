"""
Unit tests for AlertService.

Covers alert dedup windows, incident dedup and linking, and the alert and
incident status transitions including the resolve cascade.
"""
import pytest
import uuid
from datetime import timedelta

from apiwatch.exceptions import InvalidStatusTransition, NotFoundError, ValidationError
from apiwatch.models.alert import Alert
from apiwatch.models.incident import Incident
from apiwatch.models.enums import AlertStatus, AlertType, IncidentStatus, Severity
from apiwatch.schemas import AlertData, EndpointSnapshot, IncidentData
from apiwatch.services.alert_service import AlertService, parse_status


@pytest.fixture
def endpoint(make_endpoint):
    return make_endpoint("/api/orders")


@pytest.fixture
def service(db, clock):
    return AlertService(db, clock=clock)


def _alert(endpoint, alert_type=AlertType.RESPONSE_TIME, **kwargs):
    kwargs.setdefault("message", "Response time (620ms) exceeds threshold (500ms)")
    return AlertData(endpoint_id=endpoint.id, type=alert_type, **kwargs)


def _incident(endpoint, **kwargs):
    kwargs.setdefault("title", f"High Error Rate for {endpoint.path}")
    kwargs.setdefault("message", "Error rate of 50.00% exceeds twice the threshold of 1%")
    kwargs.setdefault("severity", Severity.HIGH)
    kwargs.setdefault("alert_type", AlertType.ERROR_RATE)
    return IncidentData(endpoint_id=endpoint.id, **kwargs)


class TestCreateAlert:
    def test_creates_new_alert(self, db, service, endpoint, clock):
        alert = service.create_alert(_alert(endpoint, value=620, threshold=500))

        assert alert.status == AlertStatus.NEW.value
        assert alert.type == AlertType.RESPONSE_TIME.value
        assert alert.value == 620
        assert alert.created_at == clock.now()
        assert db.query(Alert).count() == 1

    def test_duplicate_inside_window_returns_existing(self, db, service, endpoint, clock):
        first = service.create_alert(_alert(endpoint))
        clock.advance(59 * 60)
        second = service.create_alert(_alert(endpoint, message="different text"))

        assert second.id == first.id
        assert db.query(Alert).count() == 1

    def test_new_alert_after_window_expires(self, db, service, endpoint, clock):
        first = service.create_alert(_alert(endpoint))
        clock.advance(61 * 60)
        second = service.create_alert(_alert(endpoint))

        assert second.id != first.id
        assert db.query(Alert).count() == 2

    def test_different_type_is_not_deduplicated(self, db, service, endpoint):
        service.create_alert(_alert(endpoint, AlertType.RESPONSE_TIME))
        service.create_alert(_alert(endpoint, AlertType.STATUS_CODE))

        assert db.query(Alert).count() == 2

    def test_resolved_alert_does_not_suppress(self, db, service, endpoint):
        first = service.create_alert(_alert(endpoint))
        service.update_alert_status(first.id, "RESOLVED")

        second = service.create_alert(_alert(endpoint))

        assert second.id != first.id

    def test_false_positive_keeps_suppressing(self, db, service, endpoint):
        first = service.create_alert(_alert(endpoint, AlertType.RATE_LIMIT))
        service.update_alert_status(first.id, "FALSE_POSITIVE")

        again = service.create_alert(_alert(endpoint, AlertType.RATE_LIMIT))

        assert again.id == first.id

    def test_custom_window(self, db, service, endpoint, clock):
        first = service.create_alert(_alert(endpoint, AlertType.AUTH_FAILURE), dedup_window=timedelta(hours=24))
        clock.advance(23 * 3600)
        second = service.create_alert(_alert(endpoint, AlertType.AUTH_FAILURE), dedup_window=timedelta(hours=24))

        assert second.id == first.id


class TestCreateIncident:
    def test_creates_incident_with_linked_alert(self, db, service, endpoint, clock):
        incident = service.create_incident(_incident(endpoint, alert_value=50.0, alert_threshold=1.0))

        assert incident.status == IncidentStatus.OPEN.value
        assert incident.start_time == clock.now()
        alerts = db.query(Alert).filter(Alert.incident_id == incident.id).all()
        assert len(alerts) == 1
        assert alerts[0].type == AlertType.ERROR_RATE.value
        assert alerts[0].status == AlertStatus.NEW.value

    def test_existing_open_incident_is_returned(self, db, service, endpoint):
        first = service.create_incident(_incident(endpoint))
        second = service.create_incident(_incident(endpoint, title="Low Availability for /api/orders"))

        assert second.id == first.id
        assert db.query(Incident).count() == 1

    def test_acknowledged_incident_still_blocks_new_one(self, db, service, endpoint):
        first = service.create_incident(_incident(endpoint))
        service.update_incident_status(first.id, "ACKNOWLEDGED")

        second = service.create_incident(_incident(endpoint))

        assert second.id == first.id

    def test_attaches_existing_alert_instead_of_duplicating(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint, AlertType.ERROR_RATE))

        incident = service.create_incident(_incident(endpoint))

        db.refresh(alert)
        assert alert.incident_id == incident.id
        assert db.query(Alert).filter(Alert.type == AlertType.ERROR_RATE.value).count() == 1

    def test_new_incident_after_resolution(self, db, service, endpoint):
        first = service.create_incident(_incident(endpoint))
        service.update_incident_status(first.id, "RESOLVED")

        second = service.create_incident(_incident(endpoint))

        assert second.id != first.id

    def test_create_incident_from_error(self, db, service, endpoint):
        snapshot = EndpointSnapshot.model_validate(endpoint)

        incident = service.create_incident_from_error(snapshot, "Connection error: refused")

        assert incident.title == "Error detected for /api/orders"
        assert incident.message == "Connection error: refused"
        assert incident.severity == Severity.MEDIUM.value
        linked = db.query(Alert).filter(Alert.incident_id == incident.id).one()
        assert linked.type == AlertType.STATUS_CODE.value


class TestAlertTransitions:
    def test_acknowledge_then_resolve(self, db, service, endpoint, clock):
        alert = service.create_alert(_alert(endpoint))

        acked = service.update_alert_status(alert.id, "acknowledged", actor="alice")
        assert acked.status == AlertStatus.ACKNOWLEDGED.value
        assert acked.acknowledged_by == "alice"
        assert acked.acknowledged_at == clock.now()

        resolved = service.update_alert_status(alert.id, AlertStatus.RESOLVED, actor="bob")
        assert resolved.status == AlertStatus.RESOLVED.value
        assert resolved.resolved_by == "bob"

    def test_resolve_directly_from_new_defaults_actor(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint))

        resolved = service.update_alert_status(alert.id, "RESOLVED")

        assert resolved.resolved_by == "System"

    def test_resolved_is_terminal(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint))
        service.update_alert_status(alert.id, "RESOLVED")

        with pytest.raises(InvalidStatusTransition):
            service.update_alert_status(alert.id, "ACKNOWLEDGED")

    def test_false_positive_only_for_security_alerts(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint, AlertType.RESPONSE_TIME))

        with pytest.raises(InvalidStatusTransition):
            service.update_alert_status(alert.id, "FALSE_POSITIVE")

    def test_false_positive_from_acknowledged(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint, AlertType.SENSITIVE_DATA))
        service.update_alert_status(alert.id, "ACKNOWLEDGED")

        updated = service.update_alert_status(alert.id, "FALSE_POSITIVE", actor="carol")

        assert updated.status == AlertStatus.FALSE_POSITIVE.value
        assert updated.resolved_by == "carol"

    def test_unknown_status_is_validation_error(self, db, service, endpoint):
        alert = service.create_alert(_alert(endpoint))

        with pytest.raises(ValidationError):
            service.update_alert_status(alert.id, "CLOSED")

    def test_unknown_alert_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.update_alert_status(uuid.uuid4(), "RESOLVED")


class TestIncidentTransitions:
    def test_resolve_cascades_to_linked_alerts(self, db, service, endpoint, clock):
        incident = service.create_incident(_incident(endpoint))

        resolved = service.update_incident_status(incident.id, "RESOLVED", actor="ops", resolution="Rolled back")

        assert resolved.status == IncidentStatus.RESOLVED.value
        assert resolved.resolution == "Rolled back"
        assert resolved.resolved_by == "ops"
        assert resolved.end_time == clock.now()
        for alert in db.query(Alert).filter(Alert.incident_id == incident.id):
            assert alert.status == AlertStatus.RESOLVED.value
            assert alert.resolved_by == "ops"

    def test_resolve_leaves_false_positive_alerts_alone(self, db, service, endpoint):
        incident = service.create_incident(_incident(endpoint))
        flagged = service.create_alert(_alert(endpoint, AlertType.SENSITIVE_DATA))
        flagged.incident_id = incident.id
        db.commit()
        service.update_alert_status(flagged.id, "FALSE_POSITIVE", actor="carol")

        service.update_incident_status(incident.id, "RESOLVED", actor="ops")

        db.refresh(flagged)
        assert flagged.status == AlertStatus.FALSE_POSITIVE.value
        assert flagged.resolved_by == "carol"
        statuses = {a.type: a.status for a in db.query(Alert).filter(Alert.incident_id == incident.id)}
        assert statuses[AlertType.ERROR_RATE.value] == AlertStatus.RESOLVED.value

    def test_default_resolution(self, db, service, endpoint):
        incident = service.create_incident(_incident(endpoint))

        resolved = service.update_incident_status(incident.id, "RESOLVED")

        assert resolved.resolution == "Resolved without details"
        assert resolved.resolved_by == "System"

    def test_acknowledge_keeps_alerts_open(self, db, service, endpoint):
        incident = service.create_incident(_incident(endpoint))

        service.update_incident_status(incident.id, "ACKNOWLEDGED")

        linked = db.query(Alert).filter(Alert.incident_id == incident.id).one()
        assert linked.status == AlertStatus.NEW.value

    def test_resolved_incident_cannot_reopen(self, db, service, endpoint):
        incident = service.create_incident(_incident(endpoint))
        service.update_incident_status(incident.id, "RESOLVED")

        with pytest.raises(InvalidStatusTransition):
            service.update_incident_status(incident.id, "OPEN")

    def test_unknown_incident_is_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.update_incident_status(uuid.uuid4(), "RESOLVED")


def test_parse_status_is_case_insensitive():
    assert parse_status(AlertStatus, " new ") is AlertStatus.NEW
    assert parse_status(IncidentStatus, IncidentStatus.OPEN) is IncidentStatus.OPEN
    with pytest.raises(ValidationError):
        parse_status(IncidentStatus, "FALSE_POSITIVE")
