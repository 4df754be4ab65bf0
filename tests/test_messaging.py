# tests/test_messaging.py
from datetime import datetime
from types import SimpleNamespace

import pytest
from twilio.base.exceptions import TwilioRestException

from healthcomm import models
from healthcomm.exceptions import ValidationError
from healthcomm.services.messaging import (
    MessagingDispatcher,
    format_message_for_voice,
    messaging_config_from_settings,
    normalize_phone_number,
)
from healthcomm.services.template_variables import format_date, format_time, substitute_template_variables
from healthcomm.services.transport import DemoTransport, MessagingConfig, TwilioTransport, build_transport
from healthcomm.config import get_settings

from conftest import FakeTransport, make_appointment, make_patient


# --- Phone normalization ---

@pytest.mark.parametrize("raw, expected", [
    ("5551234567", "+15551234567"),
    ("(555) 123-4567", "+15551234567"),
    ("+15551234567", "+15551234567"),
    ("15551234567", "+15551234567"),
    ("+447700900123", "+447700900123"),
])
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw) == expected


@pytest.mark.parametrize("raw", ["123", "", None, "555-1234"])
def test_normalize_phone_number_rejects_short_numbers(raw):
    with pytest.raises(ValidationError) as exc_info:
        normalize_phone_number(raw)
    assert exc_info.value.message == "Invalid phone number format"
    assert exc_info.value.status_code == 400


def test_format_message_for_voice():
    text = "Visit on 6/23/2025 at 2:30 PM & bring $20 #card"
    assert format_message_for_voice(text) == "Visit on 6 23 2025 at 2 30 PM and bring dollars20 card"


# --- Template substitution ---

def _patient(**overrides):
    data = dict(first_name="Jane", last_name="Doe", phone_number="+15551234567", email="jane@example.com")
    data.update(overrides)
    return SimpleNamespace(**data)


def _appointment():
    return SimpleNamespace(
        title="Annual Checkup",
        description="Bring your insurance card",
        appointment_date=datetime(2025, 6, 23, 14, 30),
    )


def test_date_and_time_formatting():
    moment = datetime(2025, 6, 23, 14, 30)
    assert format_date(moment) == "Monday, June 23, 2025"
    assert format_time(moment) == "2:30 PM"
    assert format_time(datetime(2025, 6, 23, 0, 5)) == "12:05 AM"


def test_substitutes_patient_and_appointment_values():
    rendered = substitute_template_variables(
        "Hi {firstName} {lastName}, your {appointmentTitle} is on {appointmentDate} at {appointmentTime}.",
        patient=_patient(),
        appointment=_appointment(),
    )
    assert rendered == "Hi Jane Doe, your Annual Checkup is on Monday, June 23, 2025 at 2:30 PM."


def test_unknown_placeholders_are_left_verbatim():
    rendered = substitute_template_variables("Hi {firstName}, see you {appointmentDate}", patient=_patient())
    assert rendered == "Hi Jane, see you {appointmentDate}"


def test_placeholder_names_match_case_insensitively():
    assert substitute_template_variables("Hello {FIRSTNAME} {firstname}", patient=_patient()) == "Hello Jane Jane"


def test_substitution_precedence():
    content = "{clinicName}|{firstName}|{greeting}"
    rendered = substitute_template_variables(
        content,
        patient=_patient(),
        template_variables={"clinicName": "Template Clinic", "greeting": "Hello", "firstName": "Nobody"},
        clinic_defaults={"clinicName": "Default Clinic"},
        custom_variables={"greeting": "Good morning"},
    )
    assert rendered == "Default Clinic|Jane|Good morning"


def test_substitution_is_a_single_pass():
    rendered = substitute_template_variables("{a}", custom_variables={"a": "{firstName}"}, patient=_patient())
    assert rendered == "{firstName}"


# --- Transports ---

def test_demo_transport_success_and_failure_are_driven_by_rng():
    succeed = DemoTransport(success_rate=0.9, rng=lambda: 0.1)
    fail = DemoTransport(success_rate=0.9, rng=lambda: 0.95)

    ok = succeed.send(models.CommunicationType.SMS, "+15551234567", "hi")
    assert ok.success is True
    assert ok.message_id.startswith("demo-sms-")
    assert len(ok.message_id) == len("demo-sms-") + 9

    sms_failure = fail.send(models.CommunicationType.SMS, "+15551234567", "hi")
    call_failure = fail.send(models.CommunicationType.VOICE, "+15551234567", "hi")
    assert sms_failure.success is False
    assert sms_failure.error == "Simulated delivery failure"
    assert call_failure.error == "Simulated call failure"
    assert call_failure.message_id.startswith("demo-voice-")


class _FakeResource:
    def __init__(self, sid=None, error=None):
        self.sid = sid
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(sid=self.sid)


def _twilio(messages=None, calls=None, callback=None):
    client = SimpleNamespace(messages=messages or _FakeResource("SM123"), calls=calls or _FakeResource("CA123"))
    return TwilioTransport("AC123", "token", "+15550001111", status_callback_url=callback, client=client), client


def test_twilio_transport_sends_sms_with_callback():
    transport, client = _twilio(callback="https://portal.example.com/api/webhooks/twilio")
    result = transport.send(models.CommunicationType.SMS, "+15551234567", "Hello")
    assert result.success is True
    assert result.message_id == "SM123"
    assert client.messages.calls == [{
        "body": "Hello",
        "from_": "+15550001111",
        "to": "+15551234567",
        "status_callback": "https://portal.example.com/api/webhooks/twilio",
    }]


def test_twilio_transport_places_call_with_twiml():
    transport, client = _twilio()
    result = transport.send(models.CommunicationType.VOICE, "+15551234567", "Your appointment is tomorrow")
    assert result.message_id == "CA123"
    twiml = client.calls.calls[0]["twiml"]
    assert '<Say voice="alice">Your appointment is tomorrow</Say>' in twiml
    assert "status_callback" not in client.calls.calls[0]


def test_twilio_transport_turns_provider_errors_into_failed_results():
    error = TwilioRestException(400, "https://api.twilio.com", msg="The 'To' number is not valid")
    transport, _ = _twilio(messages=_FakeResource(error=error))
    result = transport.send(models.CommunicationType.SMS, "+15551234567", "Hello")
    assert result.success is False
    assert result.message_id is None
    assert result.error == "The 'To' number is not valid"


def test_twilio_transport_turns_timeouts_into_failed_results():
    transport, _ = _twilio(calls=_FakeResource(error=TimeoutError("read timed out")))
    result = transport.send(models.CommunicationType.VOICE, "+15551234567", "Hello")
    assert result.success is False
    assert "read timed out" in result.error


def test_live_mode_without_credentials_falls_back_to_demo():
    config = MessagingConfig(mode="live")
    assert config.effective_mode == "demo"
    assert isinstance(build_transport(config), DemoTransport)

    live = MessagingConfig(mode="live", account_sid="AC1", auth_token="t", from_number="+15550001111")
    assert live.effective_mode == "live"


def test_config_from_settings_builds_status_callback(monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://portal.example.com/")
    get_settings.cache_clear()
    config = messaging_config_from_settings(get_settings())
    assert config.status_callback_url == "https://portal.example.com/api/webhooks/twilio"


# --- Dispatcher ---

def _dispatcher(transport):
    return MessagingDispatcher(
        MessagingConfig(mode="demo"), transport=transport,
        clinic_defaults={"clinicName": "HealthComm Clinic"},
    )


def test_dispatcher_records_sent_communication(db):
    patient = make_patient(db, phone_number="5551234567")
    appointment = make_appointment(db, patient)
    transport = FakeTransport(message_id="SMabc")

    communication, result = _dispatcher(transport).send(
        db, models.CommunicationType.SMS, patient.phone_number,
        "Hi {firstName}, {clinicName} confirms {appointmentDate}", patient, appointment,
    )

    assert result.success is True
    assert communication.status == models.CommunicationStatus.SENT
    assert communication.transport_message_id == "SMabc"
    assert communication.sent_at is not None
    assert communication.phone_number == "+15551234567"
    assert communication.content == "Hi Jane, HealthComm Clinic confirms Monday, June 23, 2025"
    assert communication.appointment_id == appointment.id
    assert transport.calls[0]["to"] == "+15551234567"


def test_dispatcher_records_failed_communication(db, patient):
    transport = FakeTransport(success=False, message_id=None, error="Carrier rejected")
    communication, result = _dispatcher(transport).send(
        db, models.CommunicationType.SMS, patient.phone_number, "Hello", patient,
    )
    assert result.success is False
    assert communication.status == models.CommunicationStatus.FAILED
    assert communication.error_message == "Carrier rejected"
    assert communication.failed_at is not None
    assert communication.transport_message_id is None


def test_dispatcher_formats_voice_content_for_speech(db, patient):
    transport = FakeTransport(message_id="CA1")
    communication, _ = _dispatcher(transport).send(
        db, models.CommunicationType.VOICE, patient.phone_number, "See you at 2:30 & on time", patient,
    )
    assert transport.calls[0]["content"] == "See you at 2 30 and on time"
    # The stored content is the rendered text, not the speech rewrite
    assert communication.content == "See you at 2:30 & on time"


def test_dispatcher_rejects_bad_phone_before_sending(db, patient):
    transport = FakeTransport()
    with pytest.raises(ValidationError):
        _dispatcher(transport).send(db, models.CommunicationType.SMS, "123", "Hello", patient)
    assert transport.calls == []
    assert db.query(models.Communication).count() == 0


def test_dispatcher_rejects_empty_content(db, patient):
    transport = FakeTransport()
    with pytest.raises(ValidationError):
        _dispatcher(transport).send(db, models.CommunicationType.SMS, patient.phone_number, "   ", patient)
    assert transport.calls == []
