from trackroute.exceptions import ConfigurationError, TrackerError, TrackerErrorKind, TrackRouteError


def test_base_error_formatting():
    err = TrackRouteError("something broke", code="E1", cause=RuntimeError("disk"))
    assert str(err) == "TrackRouteError(E1): something broke\nCaused by: disk"
    assert err.message == "something broke"


def test_configuration_error_details():
    err = ConfigurationError("Sample rate cannot exceed 1.0: 2", field_name="sample_rate", config_type="rule")
    assert str(err) == (
        "ConfigurationError: Sample rate cannot exceed 1.0: 2\n"
        "Configuration Type: rule\n"
        "Field: sample_rate"
    )
    assert isinstance(err, ValueError)
    assert isinstance(err, TrackRouteError)


def test_tracker_error_details():
    err = TrackerError("timeout", tracker_id="amplitude", kind=TrackerErrorKind.BATCH, event_name="purchase")
    assert str(err).splitlines() == [
        "TrackerError: timeout",
        "Tracker ID: amplitude",
        "Stage: batch",
        "Event: purchase",
    ]
    assert TrackerError("x", tracker_id="t").kind == TrackerErrorKind.SEND
